"""Shared test fixtures for the cassette_deck test suite.

WHY: Most test modules need the same small transcripts, a fake remote
backend, and an in-memory queue. Centralizing them keeps every test
working from the same timings.

HOW: Plain helper functions build words and segments; pytest fixtures
wrap them. FakeBackend records calls and can be told to fail.

RULES:
- All times are integer milliseconds
- "This is a test recording" timings match the reference take:
  This 0-200, is 200-350, a 350-450, test 450-800, recording 800-1500
- Fixtures never touch the network or the user's home directory
"""

from __future__ import annotations

from typing import List, Optional

import pytest

from cassette_deck.api.models import RemoteTranscription, RemoteWord
from cassette_deck.core.ir import TranscriptSegment, TranscriptWord
from cassette_deck.services.connectivity import ConnectivityMonitor
from cassette_deck.services.kv_store import MemoryKeyValueStore
from cassette_deck.services.orchestrator import TranscriptionOrchestrator
from cassette_deck.services.queue import OfflineQueue


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_word(word: str, start: int, end: int, snippet_id: str = "snippet_001") -> TranscriptWord:
    return TranscriptWord(word=word, start_time=start, end_time=end, snippet_id=snippet_id)


def make_segment(segment_id: str, words: List[tuple], snippet_id: str = "snippet_001") -> TranscriptSegment:
    """Build a segment from (word, start, end) tuples."""
    return TranscriptSegment.from_words(
        segment_id,
        [make_word(w, s, e, snippet_id) for w, s, e in words],
    )


REFERENCE_WORDS = [
    ("This", 0, 200),
    ("is", 200, 350),
    ("a", 350, 450),
    ("test", 450, 800),
    ("recording", 800, 1500),
]


class FakeBackend:
    """In-process stand-in for SpeechClient."""

    def __init__(
        self,
        remote: Optional[RemoteTranscription] = None,
        summary: str = "A short test summary.",
    ) -> None:
        self.remote = remote or RemoteTranscription(
            text="hello world",
            words=[RemoteWord("hello", 0.0, 0.4), RemoteWord("world", 0.5, 1.0)],
        )
        self.summary = summary
        self.transcribe_error: Optional[BaseException] = None
        self.summarize_error: Optional[BaseException] = None
        self.transcribe_calls: List[str] = []
        self.summarize_calls: List[str] = []

    async def transcribe(self, audio_path: str) -> RemoteTranscription:
        self.transcribe_calls.append(audio_path)
        if self.transcribe_error is not None:
            raise self.transcribe_error
        return self.remote

    async def summarize(self, text: str) -> str:
        self.summarize_calls.append(text)
        if self.summarize_error is not None:
            raise self.summarize_error
        return self.summary


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def reference_segments() -> List[TranscriptSegment]:
    """One segment reading "This is a test recording" (chars 0-23)."""
    return [make_segment("segment_snippet_001", REFERENCE_WORDS)]


@pytest.fixture
def two_segments() -> List[TranscriptSegment]:
    """Two segments from two snippets with a gap between them.

    "one two three" 0-3000 (snippet_001), "four five" 4000-6000 (snippet_002).
    """
    return [
        make_segment("seg_a", [("one", 0, 1000), ("two", 1000, 2000), ("three", 2000, 3000)]),
        make_segment("seg_b", [("four", 4000, 5000), ("five", 5000, 6000)], snippet_id="snippet_002"),
    ]


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def queue(kv_store) -> OfflineQueue:
    return OfflineQueue(kv_store)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(initial=True)


@pytest.fixture
def orchestrator(backend, queue, connectivity) -> TranscriptionOrchestrator:
    return TranscriptionOrchestrator(backend, queue, connectivity)
