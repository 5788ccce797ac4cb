"""Transcription orchestrator: call the remote capability now or defer it.

WHY: A finished take should land in the transcript immediately, whether
or not the transcription service is reachable. The orchestrator decides
per request between calling the backend and parking the work in the
offline queue, and always hands back something the timeline can hold:
a real segment or a clearly marked placeholder.

HOW: transcribe_audio() and generate_summary() consult the connectivity
monitor, call the SpeechBackend when online, and route failures through
is_network_error(): network failures are queued for retry (when a
cassette id is known), everything else falls back to a deterministic
local value. start() subscribes to connectivity flips and schedules one
process_pending() task each time the device comes back online.

RULES:
- Remote failures never propagate out of transcribe_audio/generate_summary
- Placeholder segment ids are derived from the snippet id, so the real
  result can replace the placeholder later
- Offline-pending and unavailable placeholders use distinct texts
- The connectivity callback only schedules work; it never awaits
"""

from __future__ import annotations

import asyncio
import errno
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set

import httpx

from cassette_deck.api.models import RemoteTranscription
from cassette_deck.config import (
    EMPTY_RECORDING_SUMMARY,
    PENDING_SUMMARY_TEXT,
    PENDING_TRANSCRIPTION_TEXT,
    PLACEHOLDER_DURATION_MS,
    UNAVAILABLE_TRANSCRIPTION_TEXT,
)
from cassette_deck.core import sync
from cassette_deck.core.ir import TranscriptSegment, TranscriptWord
from cassette_deck.services.connectivity import ConnectivityMonitor
from cassette_deck.services.queue import OfflineQueue, QueuePassResult

logger = logging.getLogger(__name__)

_NETWORK_KEYWORDS = ("network", "fetch", "timeout")

_CONNECTION_ERROR_CODES = frozenset({
    "ECONNREFUSED",
    "ECONNRESET",
    "ECONNABORTED",
    "ETIMEDOUT",
    "ENETUNREACH",
    "ENETDOWN",
    "EHOSTUNREACH",
    "ENOTFOUND",
    "EAI_AGAIN",
})

_CONNECTION_ERRNOS = frozenset({
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.ECONNABORTED,
    errno.ETIMEDOUT,
    errno.ENETUNREACH,
    errno.ENETDOWN,
    errno.EHOSTUNREACH,
})

TranscriptionReadyCallback = Callable[[str, str, RemoteTranscription], Awaitable[None]]
SummaryReadyCallback = Callable[[str, str], Awaitable[None]]


class SpeechBackend(Protocol):
    """The remote capability as seen by the orchestrator."""

    async def transcribe(self, audio_path: str) -> RemoteTranscription:
        ...

    async def summarize(self, text: str) -> str:
        ...


def is_network_error(error: BaseException) -> bool:
    """Classify an exception as network-related (retryable via the queue).

    HOW: True when any of the following holds:
    - str(error) contains "network", "fetch" or "timeout" (case-insensitive)
    - error is an httpx.TransportError, ConnectionError or TimeoutError
    - error is an OSError whose errno is a connection-failure errno
    - error has a ``code`` attribute naming a connection-failure code
      such as "ECONNREFUSED" or "ENOTFOUND"
    """
    message = str(error).lower()
    if any(keyword in message for keyword in _NETWORK_KEYWORDS):
        return True

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True

    if isinstance(error, OSError) and error.errno in _CONNECTION_ERRNOS:
        return True

    code = getattr(error, "code", None)
    return isinstance(code, str) and code.upper() in _CONNECTION_ERROR_CODES


def segment_id_for_snippet(snippet_id: str) -> str:
    return f"segment_{snippet_id}"


def build_segment(
    remote: RemoteTranscription,
    snippet_id: str,
    start_time: int,
) -> TranscriptSegment:
    """Map a snippet-relative transcription onto the global timeline.

    HOW: Converts each word's seconds to milliseconds and offsets it by
    start_time, the snippet's position on the global timeline.

    RULES:
    - Segment id is "segment_<snippet_id>"
    - Bounds are the first word's start_time and the last word's end_time,
      so leading silence in the take is not part of the segment
    - With no words the segment is empty at start_time
    """
    segment_id = segment_id_for_snippet(snippet_id)
    words = [
        TranscriptWord(
            word=w.word,
            start_time=start_time + round(w.start_s * 1000),
            end_time=start_time + round(w.end_s * 1000),
            snippet_id=snippet_id,
            confidence=w.confidence,
        )
        for w in remote.words
    ]
    if words:
        return TranscriptSegment.from_words(segment_id, words)
    return TranscriptSegment(id=segment_id, text="", words=[], start_time=start_time, end_time=start_time)


def placeholder_segment(snippet_id: str, start_time: int, text: str) -> TranscriptSegment:
    """A one-word segment standing in for a transcription not yet available."""
    word = TranscriptWord(
        word=text,
        start_time=start_time,
        end_time=start_time + PLACEHOLDER_DURATION_MS,
        snippet_id=snippet_id,
    )
    return TranscriptSegment.from_words(segment_id_for_snippet(snippet_id), [word])


def fallback_summary(segments: List[TranscriptSegment]) -> str:
    """Deterministic summary computed from local data only."""
    full_text = " ".join(s.text for s in segments)
    word_count = len(full_text.split())
    duration_ms = segments[-1].end_time if segments else 0
    return f"Recording contains {word_count} words over {round(duration_ms / 1000)} seconds."


class TranscriptionOrchestrator:
    """Routes transcription and summary requests to the backend or the queue.

    WHY: Recording must never block on, or fail because of, the network.

    HOW: Holds references to the backend, the offline queue, and the
    connectivity monitor; all three are injected. Results of queued work
    are delivered through the optional on_transcription_ready and
    on_summary_ready callbacks.
    """

    def __init__(
        self,
        backend: SpeechBackend,
        queue: OfflineQueue,
        connectivity: ConnectivityMonitor,
        on_transcription_ready: Optional[TranscriptionReadyCallback] = None,
        on_summary_ready: Optional[SummaryReadyCallback] = None,
    ) -> None:
        self._backend = backend
        self._queue = queue
        self._connectivity = connectivity
        self.on_transcription_ready = on_transcription_ready
        self.on_summary_ready = on_summary_ready
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._replay_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def transcribe_audio(
        self,
        audio_uri: str,
        snippet_id: str,
        start_time: int,
        cassette_id: Optional[str] = None,
        duration_seconds: Optional[float] = None,
    ) -> TranscriptSegment:
        """Transcribe one take, or return a placeholder and defer the work.

        RULES:
        - Offline: enqueue (when cassette_id is given) and return the
          pending placeholder
        - Online: word times are offset by start_time (ms)
        - Remote failure: enqueue only for network errors with a
          cassette_id; always return the unavailable placeholder

        Args:
            audio_uri: Path of the recorded take.
            snippet_id: Id of the AudioSnippet the words belong to.
            start_time: Snippet position on the global timeline (ms).
            cassette_id: Owning cassette, needed to queue the work.
            duration_seconds: Take length, used for logging only.

        Returns:
            The transcribed segment or a placeholder segment.
        """
        if not self._connectivity.is_connected():
            logger.info("Offline - deferring transcription of %s", audio_uri)
            if cassette_id:
                await self._queue.enqueue_transcription(cassette_id, audio_uri)
            return placeholder_segment(snippet_id, start_time, PENDING_TRANSCRIPTION_TEXT)

        logger.info(
            "Transcribing %s (%s)",
            audio_uri,
            f"{duration_seconds:.1f}s" if duration_seconds is not None else "unknown length",
        )
        try:
            remote = await self._backend.transcribe(audio_uri)
        except Exception as exc:
            if is_network_error(exc) and cassette_id:
                logger.warning("Network error transcribing %s, queued for retry: %s", audio_uri, exc)
                await self._queue.enqueue_transcription(cassette_id, audio_uri)
            else:
                logger.exception("Transcription failed for %s", audio_uri)
            return placeholder_segment(snippet_id, start_time, UNAVAILABLE_TRANSCRIPTION_TEXT)

        return build_segment(remote, snippet_id, start_time)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    async def generate_summary(
        self,
        segments: List[TranscriptSegment],
        cassette_id: Optional[str] = None,
    ) -> str:
        """Summarize a transcript, deferring or falling back when needed.

        RULES:
        - Empty transcript text: EMPTY_RECORDING_SUMMARY, no remote call
        - Offline: enqueue (when cassette_id is given), PENDING_SUMMARY_TEXT
        - Network failure with cassette_id: enqueue, PENDING_SUMMARY_TEXT
        - Any other failure: fallback_summary(segments)
        """
        full_text = " ".join(s.text for s in segments).strip()
        if not full_text:
            return EMPTY_RECORDING_SUMMARY

        if not self._connectivity.is_connected():
            if cassette_id:
                await self._queue.enqueue_summary(cassette_id, full_text)
            return PENDING_SUMMARY_TEXT

        try:
            return await self._backend.summarize(full_text)
        except Exception as exc:
            if is_network_error(exc) and cassette_id:
                logger.warning("Network error summarizing cassette %s, queued for retry: %s", cassette_id, exc)
                await self._queue.enqueue_summary(cassette_id, full_text)
                return PENDING_SUMMARY_TEXT
            logger.exception("Summary generation failed, using local fallback")
            return fallback_summary(segments)

    # ------------------------------------------------------------------
    # Timeline helpers
    # ------------------------------------------------------------------

    @staticmethod
    def find_timestamp_for_cursor_position(segments: List[TranscriptSegment], cursor_position: int) -> int:
        return sync.timestamp_for_cursor(segments, cursor_position)

    @staticmethod
    def find_cursor_position_for_timestamp(segments: List[TranscriptSegment], timestamp: int) -> int:
        return sync.cursor_for_timestamp(segments, timestamp)

    @staticmethod
    def insert_segment_at_position(
        segments: List[TranscriptSegment],
        new_segment: TranscriptSegment,
        insert_time: int,
    ) -> List[TranscriptSegment]:
        return sync.insert_segment_at_position(segments, new_segment, insert_time)

    # ------------------------------------------------------------------
    # Queue replay
    # ------------------------------------------------------------------

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Replay the queue whenever connectivity comes back.

        HOW: Remembers the event loop replays run on (the running loop
        unless one is passed) and subscribes to connectivity flips. A flip
        may be reported from any thread; the replay is handed to the loop
        with call_soon_threadsafe().
        """
        self._loop = loop or asyncio.get_running_loop()
        if self._unsubscribe is None:
            self._unsubscribe = self._connectivity.subscribe(self._on_connectivity_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_connectivity_change(self, connected: bool) -> None:
        if connected and self._loop is not None:
            self._loop.call_soon_threadsafe(self._schedule_replay)

    def _schedule_replay(self) -> None:
        task = self._loop.create_task(self.process_pending())
        self._replay_tasks.add(task)
        task.add_done_callback(self._on_replay_done)

    def _on_replay_done(self, task: asyncio.Task) -> None:
        self._replay_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Queue replay failed", exc_info=error)

    async def wait_for_pending(self) -> None:
        """Await every replay scheduled so far, including ones not yet started."""
        await asyncio.sleep(0)
        if self._replay_tasks:
            await asyncio.gather(*self._replay_tasks, return_exceptions=True)

    async def process_pending(self) -> QueuePassResult:
        """Run one queue pass with handlers backed by the remote capability."""
        return await self._queue.process_queue(self._replay_transcription, self._replay_summary)

    async def _replay_transcription(self, cassette_id: str, audio_uri: str) -> Any:
        remote = await self._backend.transcribe(audio_uri)
        if self.on_transcription_ready is not None:
            await self.on_transcription_ready(cassette_id, audio_uri, remote)
        return remote

    async def _replay_summary(self, cassette_id: str, text: str) -> str:
        summary = await self._backend.summarize(text)
        if self.on_summary_ready is not None:
            await self.on_summary_ready(cassette_id, summary)
        return summary
