"""Intermediate representation dataclasses for cassettes and transcripts.

WHY: Three coordinate systems meet in one session: per-take audio time,
the global timeline built by concatenating takes, and character offsets
in the transcript text. Every algorithm in the package speaks in terms of
the same small set of well-typed records, so they live here.

HOW: Five dataclasses form a hierarchy:
  TranscriptWord    one transcribed word with global timeline timing
  TranscriptSegment a contiguous run of words with derived text/bounds
  AudioSnippet      one recorded take placed on the global timeline
  CassetteMetadata  title, timestamps, total duration, summary
  CassetteData      the aggregate persisted as one .cass archive

RULES:
- All times are integer milliseconds on the global timeline
- Words and segments are immutable; transforms produce new copies
- segment.text == " ".join(w.word for w in segment.words), always
- segment bounds equal the first/last word bounds when words is non-empty
- JSON keys are camelCase (startTime, snippetId, ...) to match the
  container format; Python attributes are snake_case
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class TranscriptWord:
    """A single transcribed word anchored on the global timeline.

    RULES:
    - start_time <= end_time
    - snippet_id is a non-owning back-reference to the AudioSnippet
    - confidence is 0.0 to 1.0 or None when the backend does not report it
    """

    word: str
    start_time: int
    end_time: int
    snippet_id: str
    confidence: Optional[float] = None

    def shifted(self, offset_ms: int) -> TranscriptWord:
        """Return a copy moved by offset_ms on the timeline."""
        return TranscriptWord(
            word=self.word,
            start_time=self.start_time + offset_ms,
            end_time=self.end_time + offset_ms,
            snippet_id=self.snippet_id,
            confidence=self.confidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "word": self.word,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "snippetId": self.snippet_id,
        }
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TranscriptWord:
        return cls(
            word=data["word"],
            start_time=data["startTime"],
            end_time=data["endTime"],
            snippet_id=data["snippetId"],
            confidence=data.get("confidence"),
        )


@dataclass(frozen=True)
class TranscriptSegment:
    """A contiguous run of transcribed words.

    WHY: The editor shows text, the player needs times. A segment carries
    both and keeps them derivable from one source of truth, its words.

    HOW: Build segments with from_words() so text and bounds are derived
    rather than passed in by hand.

    RULES:
    - text is derived from words (space-joined)
    - start_time/end_time equal the first/last word bounds
    - A segment with no words is invalid; transforms drop it
    """

    id: str
    text: str
    words: List[TranscriptWord] = field(default_factory=list)
    start_time: int = 0
    end_time: int = 0

    @classmethod
    def from_words(cls, segment_id: str, words: List[TranscriptWord]) -> TranscriptSegment:
        """Build a segment whose text and bounds are derived from words."""
        words = list(words)
        return cls(
            id=segment_id,
            text=" ".join(w.word for w in words),
            words=words,
            start_time=words[0].start_time if words else 0,
            end_time=words[-1].end_time if words else 0,
        )

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "words": [w.to_dict() for w in self.words],
            "startTime": self.start_time,
            "endTime": self.end_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TranscriptSegment:
        return cls(
            id=data["id"],
            text=data["text"],
            words=[TranscriptWord.from_dict(w) for w in data.get("words", [])],
            start_time=data["startTime"],
            end_time=data["endTime"],
        )


@dataclass(frozen=True)
class AudioSnippet:
    """One recorded take placed on the global timeline.

    RULES:
    - order defines the snippet sequence
    - start_time of snippet n equals the sum of durations before it in
      order (restored by the rebuild logic after a reorder)
    - filename carries a numeric suffix ("snippet_007.m4a") that the
      container codec uses to recover order on load
    """

    id: str
    filename: str
    start_time: int
    duration: int
    order: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "startTime": self.start_time,
            "duration": self.duration,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AudioSnippet:
        return cls(
            id=data["id"],
            filename=data["filename"],
            start_time=data.get("startTime", 0),
            duration=data.get("duration", 0),
            order=data.get("order", 0),
        )


@dataclass
class CassetteMetadata:
    """Descriptive metadata stored as metadata.json inside a .cass archive.

    RULES:
    - created_at / updated_at are ISO 8601 strings
    - duration is the sum of snippet durations (ms)
    - summary is None until one has been generated
    """

    id: str
    title: str
    created_at: str
    updated_at: str
    duration: int = 0
    summary: Optional[str] = None
    thumbnail_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "duration": self.duration,
        }
        if self.summary is not None:
            data["summary"] = self.summary
        if self.thumbnail_path is not None:
            data["thumbnailPath"] = self.thumbnail_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CassetteMetadata:
        return cls(
            id=data["id"],
            title=data["title"],
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
            duration=data.get("duration", 0),
            summary=data.get("summary"),
            thumbnail_path=data.get("thumbnailPath"),
        )


@dataclass
class CassetteData:
    """The complete aggregate for one recording session.

    WHY: A cassette is saved and loaded as a whole: metadata, snippet
    list, and transcript always travel together.

    RULES:
    - audio_snippets is ordered by snippet order
    - transcript is ordered by timeline position
    - Owned exclusively by the editing session while it is open
    """

    metadata: CassetteMetadata
    audio_snippets: List[AudioSnippet] = field(default_factory=list)
    transcript: List[TranscriptSegment] = field(default_factory=list)
