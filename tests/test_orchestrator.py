"""Tests for the transcription orchestrator.

WHY: The orchestrator decides, per take, between calling the backend,
parking the work in the queue, and handing back a placeholder. Getting
that wrong either loses work or blocks recording on the network.

HOW: A FakeBackend stands in for SpeechClient; the queue runs on a
MemoryKeyValueStore; connectivity is flipped by hand with
set_connected().

RULES:
- The backend is never a real HTTP client here
- Async code runs through asyncio.run()
"""

from __future__ import annotations

import asyncio
import errno
from unittest.mock import AsyncMock

import httpx
import pytest

from cassette_deck.api.client import TranscriptionAPIError
from cassette_deck.api.models import RemoteTranscription, RemoteWord
from cassette_deck.config import (
    EMPTY_RECORDING_SUMMARY,
    PENDING_SUMMARY_TEXT,
    PENDING_TRANSCRIPTION_TEXT,
    UNAVAILABLE_TRANSCRIPTION_TEXT,
)
from cassette_deck.services.orchestrator import (
    TranscriptionOrchestrator,
    build_segment,
    fallback_summary,
    is_network_error,
)
from cassette_deck.services.queue import OperationType


class _CodedError(Exception):
    def __init__(self, code: str) -> None:
        super().__init__("request failed")
        self.code = code


# ---------------------------------------------------------------------------
# TestIsNetworkError
# ---------------------------------------------------------------------------


class TestIsNetworkError:
    """is_network_error() separates retryable failures from the rest."""

    @pytest.mark.parametrize("error", [
        Exception("Network request failed"),
        RuntimeError("Failed to fetch"),
        Exception("Request TIMEOUT after 30s"),
        TimeoutError(),
        ConnectionRefusedError(),
        OSError(errno.ENETUNREACH, "unreachable"),
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("slow"),
        _CodedError("ECONNREFUSED"),
        _CodedError("enotfound"),
    ])
    def test_network_errors(self, error):
        assert is_network_error(error)

    @pytest.mark.parametrize("error", [
        ValueError("bad audio format"),
        TranscriptionAPIError(400, "Invalid file"),
        _CodedError("EACCES"),
        KeyError("words"),
    ])
    def test_other_errors(self, error):
        assert not is_network_error(error)


# ---------------------------------------------------------------------------
# TestTranscribeAudio
# ---------------------------------------------------------------------------


class TestTranscribeAudio:
    """transcribe_audio() always returns a segment."""

    def test_online_maps_words_onto_timeline(self, orchestrator, backend):
        segment = asyncio.run(orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_002", 2000, "cas_1"))

        assert segment.id == "segment_snippet_002"
        assert segment.text == "hello world"
        assert [(w.start_time, w.end_time) for w in segment.words] == [(2000, 2400), (2500, 3000)]
        assert all(w.snippet_id == "snippet_002" for w in segment.words)
        assert segment.start_time == 2000
        assert segment.end_time == 3000
        assert backend.transcribe_calls == ["/tmp/a.m4a"]

    def test_offline_returns_pending_placeholder_and_queues(self, orchestrator, backend, queue, connectivity):
        connectivity.set_connected(False)
        segment = asyncio.run(orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 3000, "cas_1"))

        assert segment.id == "segment_snippet_001"
        assert segment.text == PENDING_TRANSCRIPTION_TEXT
        assert segment.start_time == 3000
        assert segment.end_time == 4000
        assert backend.transcribe_calls == []

        ops = queue.get_all_operations()
        assert len(ops) == 1
        assert ops[0].type is OperationType.TRANSCRIPTION
        assert ops[0].audio_uri == "/tmp/a.m4a"
        assert ops[0].cassette_id == "cas_1"

    def test_offline_without_cassette_id_does_not_queue(self, orchestrator, queue, connectivity):
        connectivity.set_connected(False)
        segment = asyncio.run(orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0))
        assert segment.text == PENDING_TRANSCRIPTION_TEXT
        assert queue.get_queue_length() == 0

    def test_network_failure_queues_and_returns_unavailable(self, orchestrator, backend, queue):
        backend.transcribe_error = httpx.ConnectError("connection refused")
        segment = asyncio.run(orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1"))

        assert segment.text == UNAVAILABLE_TRANSCRIPTION_TEXT
        assert queue.get_queue_length() == 1

    def test_service_failure_does_not_queue(self, orchestrator, backend, queue):
        """A rejected file will not get better on retry."""
        backend.transcribe_error = TranscriptionAPIError(400, "Invalid file")
        segment = asyncio.run(orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1"))

        assert segment.text == UNAVAILABLE_TRANSCRIPTION_TEXT
        assert queue.get_queue_length() == 0

    def test_pending_and_unavailable_texts_differ(self):
        assert PENDING_TRANSCRIPTION_TEXT != UNAVAILABLE_TRANSCRIPTION_TEXT


# ---------------------------------------------------------------------------
# TestGenerateSummary
# ---------------------------------------------------------------------------


class TestGenerateSummary:
    """generate_summary() returns text in every connectivity state."""

    def test_empty_transcript_skips_backend(self, orchestrator, backend):
        assert asyncio.run(orchestrator.generate_summary([], "cas_1")) == EMPTY_RECORDING_SUMMARY
        assert backend.summarize_calls == []

    def test_online_returns_backend_summary(self, orchestrator, backend, two_segments):
        summary = asyncio.run(orchestrator.generate_summary(two_segments, "cas_1"))
        assert summary == "A short test summary."
        assert backend.summarize_calls == ["one two three four five"]

    def test_offline_queues_summary(self, orchestrator, queue, connectivity, two_segments):
        connectivity.set_connected(False)
        summary = asyncio.run(orchestrator.generate_summary(two_segments, "cas_1"))

        assert summary == PENDING_SUMMARY_TEXT
        ops = queue.get_all_operations()
        assert ops[0].type is OperationType.SUMMARY
        assert ops[0].text == "one two three four five"

    def test_network_failure_queues_summary(self, orchestrator, backend, queue, two_segments):
        backend.summarize_error = httpx.ConnectTimeout("timed out")
        summary = asyncio.run(orchestrator.generate_summary(two_segments, "cas_1"))
        assert summary == PENDING_SUMMARY_TEXT
        assert queue.get_queue_length() == 1

    def test_other_failure_falls_back_locally(self, orchestrator, backend, queue, two_segments):
        backend.summarize_error = TranscriptionAPIError(500, "server exploded")
        summary = asyncio.run(orchestrator.generate_summary(two_segments, "cas_1"))
        assert summary == "Recording contains 5 words over 6 seconds."
        assert queue.get_queue_length() == 0

    def test_network_failure_without_cassette_id_falls_back(self, orchestrator, backend, two_segments):
        backend.summarize_error = httpx.ConnectError("down")
        summary = asyncio.run(orchestrator.generate_summary(two_segments))
        assert summary == fallback_summary(two_segments)


# ---------------------------------------------------------------------------
# TestBuildSegment
# ---------------------------------------------------------------------------


class TestBuildSegment:
    """build_segment() converts seconds to offset milliseconds."""

    def test_rounds_to_milliseconds(self, backend):
        backend.remote.words[0].end_s = 0.4004
        segment = build_segment(backend.remote, "snippet_001", 100)
        assert segment.words[0].end_time == 500
        assert segment.start_time == segment.words[0].start_time
        assert segment.end_time == segment.words[-1].end_time

    def test_leading_silence_not_in_bounds(self):
        remote = RemoteTranscription(text="hi", words=[RemoteWord("hi", 0.3, 0.6)])
        segment = build_segment(remote, "snippet_001", 1000)
        assert (segment.start_time, segment.end_time) == (1300, 1600)
        assert segment.text == "hi"

    def test_no_words(self):
        segment = build_segment(RemoteTranscription(text=""), "snippet_001", 7000)
        assert segment.words == []
        assert segment.start_time == 7000
        assert segment.end_time == 7000


# ---------------------------------------------------------------------------
# TestQueueReplay
# ---------------------------------------------------------------------------


class TestQueueReplay:
    """start() replays queued work once per reconnection."""

    def test_reconnect_triggers_one_pass(self, backend, queue, connectivity):
        delivered = []

        async def on_ready(cassette_id, audio_uri, remote):
            delivered.append((cassette_id, audio_uri, remote.text))

        async def _run():
            orchestrator = TranscriptionOrchestrator(
                backend, queue, connectivity, on_transcription_ready=on_ready
            )
            orchestrator.start()
            connectivity.set_connected(False)
            await orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1")

            connectivity.set_connected(True)
            connectivity.set_connected(True)
            await orchestrator.wait_for_pending()
            orchestrator.stop()

        asyncio.run(_run())
        assert backend.transcribe_calls == ["/tmp/a.m4a"]
        assert delivered == [("cas_1", "/tmp/a.m4a", "hello world")]
        assert queue.get_queue_length() == 0

    def test_summary_replay_delivers_result(self, backend, queue, connectivity, two_segments):
        delivered = []

        async def on_summary(cassette_id, summary):
            delivered.append((cassette_id, summary))

        async def _run():
            orchestrator = TranscriptionOrchestrator(
                backend, queue, connectivity, on_summary_ready=on_summary
            )
            connectivity.set_connected(False)
            await orchestrator.generate_summary(two_segments, "cas_1")
            connectivity.set_connected(True)
            return await orchestrator.process_pending()

        result = asyncio.run(_run())
        assert len(result.completed) == 1
        assert delivered == [("cas_1", "A short test summary.")]

    def test_stop_unsubscribes(self, backend, queue, connectivity):
        async def _run():
            orchestrator = TranscriptionOrchestrator(backend, queue, connectivity)
            orchestrator.start()
            orchestrator.stop()
            connectivity.set_connected(False)
            await orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1")
            connectivity.set_connected(True)
            await orchestrator.wait_for_pending()

        asyncio.run(_run())
        assert backend.transcribe_calls == []
        assert queue.get_queue_length() == 1

    def test_failed_replay_stays_queued(self, backend, queue, connectivity):
        async def _run():
            orchestrator = TranscriptionOrchestrator(backend, queue, connectivity)
            connectivity.set_connected(False)
            await orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1")
            connectivity.set_connected(True)
            backend.transcribe_error = httpx.ConnectError("still down")
            return await orchestrator.process_pending()

        result = asyncio.run(_run())
        assert len(result.retrying) == 1
        assert queue.get_all_operations()[0].retry_count == 1

    def test_failing_callback_counts_as_failed_attempt(self, backend, queue, connectivity):
        on_ready = AsyncMock(side_effect=RuntimeError("editor closed"))

        async def _run():
            orchestrator = TranscriptionOrchestrator(
                backend, queue, connectivity, on_transcription_ready=on_ready
            )
            connectivity.set_connected(False)
            await orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1")
            connectivity.set_connected(True)
            return await orchestrator.process_pending()

        result = asyncio.run(_run())
        on_ready.assert_awaited_once()
        assert on_ready.await_args.args[:2] == ("cas_1", "/tmp/a.m4a")
        assert len(result.retrying) == 1

    def test_reconnect_reported_outside_the_loop(self, backend, queue, connectivity):
        """A flip from another thread or callback still replays on the loop."""
        loop = asyncio.new_event_loop()
        try:
            orchestrator = TranscriptionOrchestrator(backend, queue, connectivity)
            orchestrator.start(loop=loop)
            connectivity.set_connected(False)
            loop.run_until_complete(
                orchestrator.transcribe_audio("/tmp/a.m4a", "snippet_001", 0, "cas_1")
            )

            connectivity.set_connected(True)
            loop.run_until_complete(orchestrator.wait_for_pending())
        finally:
            loop.close()

        assert backend.transcribe_calls == ["/tmp/a.m4a"]
        assert queue.get_queue_length() == 0

    def test_failed_replay_is_logged(self, backend, queue, connectivity, caplog):
        async def _run():
            orchestrator = TranscriptionOrchestrator(backend, queue, connectivity)
            orchestrator.process_pending = AsyncMock(side_effect=RuntimeError("boom"))
            orchestrator.start()
            connectivity.set_connected(False)
            connectivity.set_connected(True)
            await orchestrator.wait_for_pending()
            await asyncio.sleep(0)

        with caplog.at_level("ERROR", logger="cassette_deck.services.orchestrator"):
            asyncio.run(_run())
        assert "Queue replay failed" in caplog.text

    def test_every_flip_is_awaited(self, backend, queue, connectivity):
        async def _run():
            orchestrator = TranscriptionOrchestrator(backend, queue, connectivity)
            orchestrator.process_pending = AsyncMock()
            orchestrator.start()
            for _ in range(3):
                connectivity.set_connected(False)
                connectivity.set_connected(True)
            await orchestrator.wait_for_pending()
            return orchestrator

        orchestrator = asyncio.run(_run())
        assert orchestrator.process_pending.await_count == 3


class TestTimelineHelpers:
    """The static helpers delegate to core.sync."""

    def test_cursor_round_trip(self, reference_segments):
        ts = TranscriptionOrchestrator.find_timestamp_for_cursor_position(reference_segments, 12)
        assert ts == 450
        assert TranscriptionOrchestrator.find_cursor_position_for_timestamp(reference_segments, ts + 1) == 10
