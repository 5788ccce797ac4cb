"""Editing session over one open cassette.

WHY: Recording, cursor seeking, cut/copy/paste/delete, and drag-reorder
all touch the snippet list and the transcript together. The session is
the one place that applies those gestures to a CassetteData so the
transcript, the snippets, and the metadata stay consistent.

HOW: CassetteSession owns a CassetteData, the map from snippet id to
recorded blob, and a clipboard of transcript segments. Each gesture is a
short composition of the core algebra (timeline.py, sync.py) plus, for
recording and summaries, a call into the TranscriptionOrchestrator.

RULES:
- Selections are character offsets into session.text
- Delete and cut remove transcript words only; the timeline keeps the gap
- Paste splits the transcript at the cursor time and pushes the rest
  later by the clipboard's span
- Reorder and mid-timeline insertion restore "snippet n starts where
  snippet n-1 ends" and move each snippet's transcript with it
- Every mutating gesture bumps metadata.updated_at
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from cassette_deck.api.models import RemoteTranscription
from cassette_deck.core import sync, timeline
from cassette_deck.core.ir import AudioSnippet, CassetteData, CassetteMetadata, TranscriptSegment
from cassette_deck.services.orchestrator import (
    TranscriptionOrchestrator,
    build_segment,
    segment_id_for_snippet,
)
from cassette_deck.storage.container import CassetteStore, LoadedCassette

logger = logging.getLogger(__name__)

_SNIPPET_EXTENSION = ".m4a"
_SNIPPET_NUMBER_RE = re.compile(r"snippet_(\d+)")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CassetteSession:
    """Mutable editing state for one open cassette."""

    def __init__(
        self,
        cassette: CassetteData,
        orchestrator: TranscriptionOrchestrator,
        audio_files: Optional[Dict[str, str]] = None,
    ) -> None:
        self.cassette = cassette
        self.audio_files: Dict[str, str] = dict(audio_files or {})
        self.clipboard: List[TranscriptSegment] = []
        self._orchestrator = orchestrator

    @classmethod
    def new(cls, orchestrator: TranscriptionOrchestrator, title: Optional[str] = None) -> CassetteSession:
        """Start an empty cassette."""
        now = datetime.now(timezone.utc)
        metadata = CassetteMetadata(
            id=f"cassette_{uuid.uuid4().hex[:12]}",
            title=title or f"Recording {now.date().isoformat()}",
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
        )
        return cls(CassetteData(metadata=metadata), orchestrator)

    @classmethod
    def from_loaded(cls, loaded: LoadedCassette, orchestrator: TranscriptionOrchestrator) -> CassetteSession:
        return cls(loaded.cassette, orchestrator, audio_files=loaded.audio_files)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> List[TranscriptSegment]:
        return self.cassette.transcript

    @property
    def snippets(self) -> List[AudioSnippet]:
        return self.cassette.audio_snippets

    @property
    def text(self) -> str:
        """The flattened transcript exactly as the editor shows it."""
        return " ".join(w.word for w in timeline.iter_words(self.transcript))

    def time_for_cursor(self, cursor_position: int) -> int:
        return sync.timestamp_for_cursor(self.transcript, cursor_position)

    def cursor_for_time(self, timestamp: int) -> int:
        return sync.cursor_for_timestamp(self.transcript, timestamp)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_take(
        self,
        audio_uri: str | Path,
        duration_ms: int,
        insert_at: Optional[int] = None,
    ) -> AudioSnippet:
        """Add a finished take to the cassette and transcribe it.

        HOW: Creates the next "snippet_NNN" snippet and asks the orchestrator
        for a segment (real or placeholder). Appending places both at the
        end of the timeline. Inserting places the new snippet after every
        snippet starting at or before insert_at, then rebuilds transcript and
        snippets from that order so takes stay back to back.

        RULES:
        - A take inserted inside another take lands at the end of that take
        - Later takes and their transcript move later by duration_ms

        Args:
            audio_uri: Path of the recorded blob.
            duration_ms: Take length.
            insert_at: Timeline time (ms) to insert at; None appends.

        Returns:
            The new AudioSnippet, with its final start_time and order.
        """
        number = self._next_snippet_number()
        snippet_id = f"snippet_{number:03d}"
        ordered = sorted(self.snippets, key=lambda s: s.order)

        if insert_at is None:
            index = len(ordered)
            start_time = self.cassette.metadata.duration
        else:
            index = sum(1 for s in ordered if s.start_time <= insert_at)
            start_time = insert_at

        snippet = AudioSnippet(
            id=snippet_id,
            filename=f"{snippet_id}{_SNIPPET_EXTENSION}",
            start_time=start_time,
            duration=duration_ms,
            order=index,
        )

        segment = await self._orchestrator.transcribe_audio(
            str(audio_uri),
            snippet_id,
            start_time,
            cassette_id=self.cassette.metadata.id,
            duration_seconds=duration_ms / 1000,
        )

        if insert_at is None:
            self.cassette.transcript = [*self.transcript, segment]
            self.cassette.audio_snippets = [*self.snippets, snippet]
        else:
            by_snippet = sync.group_segments_by_snippet(self.transcript)
            by_snippet[snippet_id] = [segment]
            ordered.insert(index, snippet)
            self._retime(ordered, by_snippet)
            snippet = next(s for s in self.snippets if s.id == snippet_id)

        self.audio_files[snippet_id] = str(audio_uri)
        self.cassette.metadata.duration += duration_ms
        self._touch()

        logger.info("Recorded %s (%d ms) into cassette %s", snippet_id, duration_ms, self.cassette.metadata.id)
        return snippet

    def apply_transcription(self, audio_uri: str, remote: RemoteTranscription) -> bool:
        """Replace the placeholder of the take recorded at audio_uri.

        HOW: Finds the snippet owning audio_uri, builds the real segment at
        the placeholder's current start time, and swaps it in by id.

        Returns:
            False when no snippet or placeholder matches.
        """
        snippet_id = next((sid for sid, uri in self.audio_files.items() if uri == str(audio_uri)), None)
        if snippet_id is None:
            return False

        target_id = segment_id_for_snippet(snippet_id)
        for index, segment in enumerate(self.transcript):
            if segment.id == target_id:
                replacement = build_segment(remote, snippet_id, segment.start_time)
                self.cassette.transcript = [
                    *self.transcript[:index],
                    replacement,
                    *self.transcript[index + 1:],
                ]
                self._touch()
                return True
        return False

    # ------------------------------------------------------------------
    # Clipboard gestures
    # ------------------------------------------------------------------

    def copy_selection(self, char_start: int, char_end: int) -> List[TranscriptSegment]:
        selection = timeline.words_in_selection(self.transcript, char_start, char_end)
        if selection.is_empty:
            self.clipboard = []
        else:
            self.clipboard = timeline.extract_time_range(
                self.transcript, selection.start_time, selection.end_time
            )
        return self.clipboard

    def delete_selection(self, char_start: int, char_end: int) -> bool:
        selection = timeline.words_in_selection(self.transcript, char_start, char_end)
        if selection.is_empty:
            return False
        self.cassette.transcript = timeline.delete_time_range(
            self.transcript, selection.start_time, selection.end_time
        )
        self._touch()
        return True

    def cut_selection(self, char_start: int, char_end: int) -> List[TranscriptSegment]:
        clipboard = self.copy_selection(char_start, char_end)
        if clipboard:
            self.delete_selection(char_start, char_end)
        return clipboard

    def paste_at_cursor(self, cursor_position: int) -> bool:
        """Insert the clipboard at the word under the cursor.

        Returns:
            False when the clipboard is empty.
        """
        if not self.clipboard:
            return False

        paste_time = self.time_for_cursor(cursor_position)
        span = self.clipboard[-1].end_time - self.clipboard[0].start_time
        halves = timeline.split_at_time(self.transcript, paste_time)

        pasted = timeline.shift_timestamps(self.clipboard, paste_time - self.clipboard[0].start_time)
        suffix = uuid.uuid4().hex[:6]
        pasted = [
            TranscriptSegment(
                id=f"{s.id}_paste_{suffix}",
                text=s.text,
                words=s.words,
                start_time=s.start_time,
                end_time=s.end_time,
            )
            for s in pasted
        ]

        self.cassette.transcript = [
            *halves.before,
            *pasted,
            *timeline.shift_timestamps(halves.after, span),
        ]
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Reorder / summary / save
    # ------------------------------------------------------------------

    def reorder_snippet(self, snippet_id: str, new_index: int) -> None:
        """Move a snippet to new_index and re-time the whole timeline.

        Raises:
            ValueError: snippet_id is not part of the cassette.
        """
        ordered = sorted(self.snippets, key=lambda s: s.order)
        moving = next((s for s in ordered if s.id == snippet_id), None)
        if moving is None:
            raise ValueError(f"Unknown snippet: {snippet_id}")
        ordered.remove(moving)
        ordered.insert(max(0, min(new_index, len(ordered))), moving)

        self._retime(ordered, sync.group_segments_by_snippet(self.transcript))
        self._touch()

    async def summarize(self) -> str:
        summary = await self._orchestrator.generate_summary(
            self.transcript, cassette_id=self.cassette.metadata.id
        )
        self.cassette.metadata.summary = summary
        self._touch()
        return summary

    async def eject(self, store: CassetteStore) -> Path:
        """Persist the cassette as one archive."""
        return await store.save_cassette(self.cassette, self.audio_files)

    def _retime(
        self,
        ordered: List[AudioSnippet],
        by_snippet: Dict[str, List[TranscriptSegment]],
    ) -> None:
        # start_time of each input snippet must still be where its segments were timed
        resequenced = [
            AudioSnippet(s.id, s.filename, s.start_time, s.duration, order)
            for order, s in enumerate(ordered)
        ]
        self.cassette.transcript = sync.rebuild_from_snippets(resequenced, by_snippet)
        self.cassette.audio_snippets = sync.restack_snippets(resequenced)

    def _next_snippet_number(self) -> int:
        # reorders renumber order, ids keep their number
        numbers = [
            int(match.group(1))
            for match in (_SNIPPET_NUMBER_RE.search(s.id) for s in self.snippets)
            if match
        ]
        return max(numbers, default=0) + 1

    def _touch(self) -> None:
        self.cassette.metadata.updated_at = _now_iso()
