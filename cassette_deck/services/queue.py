"""Durable, retry-bounded queue of deferred remote operations.

WHY: Transcription and summarization need the network. When a take is
recorded offline, or a remote call fails for network reasons, the work
is parked here and replayed once connectivity returns, across app
restarts if necessary.

HOW: Three components work together:
  OperationType    enum of the two kinds of deferred work
  QueuedOperation  dataclass persisted as one JSON object per operation
  OfflineQueue     in-memory list mirrored wholesale to a key-value store
                   after every mutation, processed by process_queue()

Lifecycle of an operation: pending → (in flight during a pass) →
completed (removed) | failed-retryable (retry_count + 1, kept) |
failed-permanent (removed once retry_count reaches max_retries).

RULES:
- initialize() loads the queue once; unreadable data starts an empty queue
- Every mutation rewrites the whole list before returning
- process_queue() runs at most once at a time; a call made while a pass
  is running returns immediately without touching any operation
- A pass works on a snapshot: operations enqueued mid-pass wait for the
  next pass
- Operations are attempted in FIFO enqueue order, one attempt per pass
- One operation's failure never stops the rest of the pass
"""

from __future__ import annotations

import enum
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from cassette_deck.config import QUEUE_MAX_RETRIES, QUEUE_STORAGE_KEY
from cassette_deck.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

TranscriptionHandler = Callable[[str, str], Awaitable[Any]]
"""Called with (cassette_id, audio_uri); raising marks the attempt failed."""

SummaryHandler = Callable[[str, str], Awaitable[Any]]
"""Called with (cassette_id, text); raising marks the attempt failed."""


class OperationType(str, enum.Enum):
    """Kinds of deferred remote work.

    HOW: Inherits from str so values serialize cleanly to JSON.
    """

    TRANSCRIPTION = "transcription"
    SUMMARY = "summary"


@dataclass
class QueuedOperation:
    """One deferred remote call.

    RULES:
    - id: "<type>_<cassette_id>_<hex>", unique and immutable
    - cassette_id is a weak reference; the queue never owns the cassette
    - audio_uri is set for transcriptions, text for summaries
    - timestamp: epoch milliseconds at enqueue time
    - retry_count: failed attempts so far, never above max_retries
    """

    id: str
    type: OperationType
    cassette_id: str
    timestamp: int
    retry_count: int = 0
    audio_uri: Optional[str] = None
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "cassetteId": self.cassette_id,
            "timestamp": self.timestamp,
            "retryCount": self.retry_count,
        }
        if self.audio_uri is not None:
            data["audioUri"] = self.audio_uri
        if self.text is not None:
            data["text"] = self.text
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QueuedOperation:
        return cls(
            id=data["id"],
            type=OperationType(data["type"]),
            cassette_id=data["cassetteId"],
            timestamp=data.get("timestamp", 0),
            retry_count=data.get("retryCount", 0),
            audio_uri=data.get("audioUri"),
            text=data.get("text"),
        )


@dataclass
class QueuePassResult:
    """Outcome of one process_queue() call.

    RULES:
    - skipped is True when the call was coalesced into a running pass
    - completed / retrying / dropped hold operation ids
    """

    skipped: bool = False
    completed: List[str] = field(default_factory=list)
    retrying: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


@dataclass
class QueueSummary:
    """Pending operation counts by type."""

    transcriptions: int = 0
    summaries: int = 0


class OfflineQueue:
    """Durable FIFO of QueuedOperation objects with bounded retries.

    WHY: Remote work must outlive connectivity gaps and restarts, and a
    permanently broken request must not be retried forever.

    HOW: The list lives in memory and is serialized as a JSON array under
    a fixed key of the injected KeyValueStore after every change. A busy
    flag guards process_queue(); no lock is needed because all mutation
    happens on one event loop.

    RULES:
    - Call initialize() once before use
    - Read-only accessors never touch storage
    - max_retries defaults to QUEUE_MAX_RETRIES (3)
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_retries: int = QUEUE_MAX_RETRIES,
        storage_key: str = QUEUE_STORAGE_KEY,
    ) -> None:
        self._store = store
        self._max_retries = max_retries
        self._storage_key = storage_key
        self._queue: List[QueuedOperation] = []
        self._processing = False

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def is_processing(self) -> bool:
        return self._processing

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the persisted queue from the key-value store."""
        try:
            raw = await self._store.get(self._storage_key)
            if raw:
                self._queue = [QueuedOperation.from_dict(d) for d in json.loads(raw)]
                logger.info("Loaded %d queued operations from storage", len(self._queue))
        except (OSError, ValueError, KeyError, TypeError):
            logger.exception("Failed to load offline queue, starting empty")
            self._queue = []

    async def _save(self) -> None:
        payload = json.dumps([op.to_dict() for op in self._queue])
        await self._store.set(self._storage_key, payload)

    # ------------------------------------------------------------------
    # Enqueue / dequeue
    # ------------------------------------------------------------------

    async def enqueue_transcription(self, cassette_id: str, audio_uri: str) -> str:
        """Queue a transcription; returns the operation id once persisted."""
        operation = self._new_operation(OperationType.TRANSCRIPTION, cassette_id, audio_uri=audio_uri)
        self._queue.append(operation)
        await self._save()
        logger.info("Queued transcription for cassette %s", cassette_id)
        return operation.id

    async def enqueue_summary(self, cassette_id: str, text: str) -> str:
        """Queue a summary generation; returns the operation id once persisted."""
        operation = self._new_operation(OperationType.SUMMARY, cassette_id, text=text)
        self._queue.append(operation)
        await self._save()
        logger.info("Queued summary generation for cassette %s", cassette_id)
        return operation.id

    async def remove_operation(self, operation_id: str) -> None:
        self._queue = [op for op in self._queue if op.id != operation_id]
        await self._save()

    async def clear_queue(self) -> None:
        self._queue = []
        await self._save()
        logger.info("Offline queue cleared")

    @staticmethod
    def _new_operation(
        op_type: OperationType,
        cassette_id: str,
        audio_uri: Optional[str] = None,
        text: Optional[str] = None,
    ) -> QueuedOperation:
        return QueuedOperation(
            id=f"{op_type.value}_{cassette_id}_{uuid.uuid4().hex[:12]}",
            type=op_type,
            cassette_id=cassette_id,
            timestamp=int(time.time() * 1000),
            audio_uri=audio_uri,
            text=text,
        )

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def get_queue_length(self) -> int:
        return len(self._queue)

    def get_all_operations(self) -> List[QueuedOperation]:
        return list(self._queue)

    def get_operations_for_cassette(self, cassette_id: str) -> List[QueuedOperation]:
        return [op for op in self._queue if op.cassette_id == cassette_id]

    def get_queue_summary(self) -> QueueSummary:
        return QueueSummary(
            transcriptions=sum(1 for op in self._queue if op.type is OperationType.TRANSCRIPTION),
            summaries=sum(1 for op in self._queue if op.type is OperationType.SUMMARY),
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_queue(
        self,
        on_transcription: TranscriptionHandler,
        on_summary: SummaryHandler,
    ) -> QueuePassResult:
        """Attempt every queued operation once, in FIFO order.

        WHY: Called when connectivity returns (and on demand) to drain the
        work parked while offline.

        HOW: Takes a snapshot of the queue, then for each operation awaits
        the matching handler. Success removes the operation. Failure bumps
        retry_count; reaching max_retries drops the operation, otherwise
        the new count is persisted for the next pass.

        RULES:
        - Returns QueuePassResult(skipped=True) if a pass is already running
        - Each failing operation's retry_count grows by exactly 1 per pass
        - Operations missing their payload are dropped with a warning

        Args:
            on_transcription: Awaitable handler for (cassette_id, audio_uri).
            on_summary: Awaitable handler for (cassette_id, text).

        Returns:
            QueuePassResult listing completed, retrying, and dropped ids.
        """
        if self._processing:
            return QueuePassResult(skipped=True)

        result = QueuePassResult()
        if not self._queue:
            return result

        self._processing = True
        try:
            snapshot = list(self._queue)
            logger.info("Processing %d queued operations...", len(snapshot))

            for operation in snapshot:
                await self._process_one(operation, on_transcription, on_summary, result)

            logger.info(
                "Queue processing complete. %d operations remaining.",
                len(self._queue),
            )
        finally:
            self._processing = False

        return result

    async def _process_one(
        self,
        operation: QueuedOperation,
        on_transcription: TranscriptionHandler,
        on_summary: SummaryHandler,
        result: QueuePassResult,
    ) -> None:
        if operation.type is OperationType.TRANSCRIPTION:
            handler, payload = on_transcription, operation.audio_uri
        else:
            handler, payload = on_summary, operation.text

        if payload is None:
            logger.warning("Operation %s has no payload, removing from queue", operation.id)
            await self.remove_operation(operation.id)
            result.dropped.append(operation.id)
            return

        logger.info("Processing %s for cassette %s", operation.type.value, operation.cassette_id)
        try:
            await handler(operation.cassette_id, payload)
        except Exception:
            logger.exception("Failed to process operation %s", operation.id)
            await self._record_failure(operation, result)
            return

        await self.remove_operation(operation.id)
        result.completed.append(operation.id)
        logger.info("%s completed for cassette %s", operation.type.value, operation.cassette_id)

    async def _record_failure(self, operation: QueuedOperation, result: QueuePassResult) -> None:
        operation.retry_count += 1

        if operation.retry_count >= self._max_retries:
            logger.warning(
                "Operation %s exceeded max retries (%d), removing from queue",
                operation.id,
                self._max_retries,
            )
            await self.remove_operation(operation.id)
            result.dropped.append(operation.id)
            return

        logger.warning(
            "Will retry operation %s (attempt %d/%d)",
            operation.id,
            operation.retry_count + 1,
            self._max_retries,
        )
        await self._save()
        result.retrying.append(operation.id)
