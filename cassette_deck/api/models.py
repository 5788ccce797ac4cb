"""Response dataclasses for the remote transcription capability.

WHY: The transcription endpoint returns verbose JSON with the full text
and a flat list of word timings in seconds, relative to the start of the
uploaded audio. Typed dataclasses make the shape explicit before the
orchestrator maps it onto the global timeline.

HOW: Each dataclass maps 1:1 to a JSON object of the verbose_json
response. from_dict factories parse raw response dicts.

RULES:
- start_s / end_s are float seconds relative to the snippet start
- words is empty when the backend returned no word timings
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RemoteWord:
    """One word with snippet-relative timing as returned by the backend."""

    word: str
    start_s: float
    end_s: float
    confidence: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> RemoteWord:
        return cls(
            word=data["word"].strip(),
            start_s=float(data["start"]),
            end_s=float(data["end"]),
            confidence=data.get("confidence"),
        )


@dataclass
class RemoteTranscription:
    """A completed transcription of a single audio snippet.

    RULES:
    - text is the backend's plaintext (convenience only, not used for timing)
    - words keep backend order
    """

    text: str
    words: list[RemoteWord] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> RemoteTranscription:
        """Parse a verbose_json transcription response.

        RULES:
        - text is required
        - words defaults to [] when word timestamps were not returned
        - words with blank text are discarded
        """
        words = [RemoteWord.from_dict(w) for w in data.get("words") or []]
        return cls(
            text=data["text"],
            words=[w for w in words if w.word],
        )
