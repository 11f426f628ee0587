"""Queue for operations that exhausted their retries, replayed later."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from lifeline.core.config import get_config
from lifeline.core.models import ProcessQueueResult, QueueStats
from lifeline.core.operation import BoundOperation, operation_label
from lifeline.core.store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "failed-operations:"


@dataclass
class FailedOperationEntry:
    """Operation awaiting replay."""

    queue_name: str
    operation: Callable[[], Awaitable[Any]]
    attempts_remaining: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    entry_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    last_error: Optional[str] = None

    def describe(self) -> Dict[str, Any]:
        """JSON-friendly view for admin listings."""
        if isinstance(self.operation, BoundOperation):
            operation = self.operation.describe()
        else:
            operation = {"name": operation_label(self.operation)}
        return {
            "entry_id": self.entry_id,
            "queue_name": self.queue_name,
            "operation": operation,
            "attempts_remaining": self.attempts_remaining,
            "metadata": self.metadata,
            "enqueued_at": self.enqueued_at.isoformat(),
            "last_error": self.last_error,
        }


class FailedOperationQueue:
    """Named queues of failed operations backed by a KeyValueStore.

    Each processing pass attempts every entry once: successes are removed,
    failures lose one attempt and stay queued until none remain, then the
    entry is dropped and only counted in ``get_stats``.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        default_max_retries: Optional[int] = None,
    ):
        self.store = store or InMemoryStore()
        self.default_max_retries = (
            get_config().queue_max_retries
            if default_max_retries is None
            else default_max_retries
        )
        self._names: List[str] = []
        self._dropped: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def _load(self, queue_name: str) -> List[FailedOperationEntry]:
        return list(await self.store.get(KEY_PREFIX + queue_name) or [])

    async def _save(self, queue_name: str, entries: List[FailedOperationEntry]) -> None:
        await self.store.set(KEY_PREFIX + queue_name, entries)

    async def enqueue(
        self,
        queue_name: str,
        operation: Callable[[], Awaitable[Any]],
        max_retries: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FailedOperationEntry:
        """Add a failed operation to the queue.

        Args:
            queue_name: Queue to add to (created on first use)
            operation: Zero-argument coroutine function to replay
            max_retries: Processing attempts allowed before the entry is dropped
            metadata: Free-form context for logs and admin listings
        """
        attempts = self.default_max_retries if max_retries is None else max_retries
        if attempts < 1:
            raise ValueError(f"max_retries must be at least 1, got {attempts}")

        entry = FailedOperationEntry(
            queue_name=queue_name,
            operation=operation,
            attempts_remaining=attempts,
            metadata=dict(metadata or {}),
        )
        async with self._lock:
            entries = await self._load(queue_name)
            entries.append(entry)
            await self._save(queue_name, entries)
            if queue_name not in self._names:
                self._names.append(queue_name)

        logger.info(
            f"Operation {operation_label(operation)} enqueued for retry in "
            f"'{queue_name}' (size={len(entries)}, metadata={entry.metadata})"
        )
        return entry

    async def process_queue(self, queue_name: str) -> ProcessQueueResult:
        """Attempt every queued entry once."""
        async with self._lock:
            entries = await self._load(queue_name)
            if not entries:
                return ProcessQueueResult()
            # Entries enqueued while this pass runs are kept for the next one
            await self._save(queue_name, [])

        logger.info(f"Processing failed operation queue '{queue_name}': {len(entries)} entries")

        succeeded = 0
        failed = 0
        remaining: List[FailedOperationEntry] = []

        for entry in entries:
            try:
                await entry.operation()
            except Exception as e:
                entry.attempts_remaining -= 1
                entry.last_error = f"{type(e).__name__}: {e}"

                if entry.attempts_remaining > 0:
                    remaining.append(entry)
                    logger.warning(
                        f"Queued operation {operation_label(entry.operation)} failed, "
                        f"{entry.attempts_remaining} attempts left: {entry.last_error}"
                    )
                else:
                    failed += 1
                    logger.error(
                        f"Queued operation {operation_label(entry.operation)} failed "
                        f"permanently in '{queue_name}': {entry.last_error} "
                        f"(metadata={entry.metadata})"
                    )
                continue

            succeeded += 1
            logger.info(
                f"Queued operation {operation_label(entry.operation)} succeeded "
                f"(metadata={entry.metadata})"
            )

        async with self._lock:
            newer = await self._load(queue_name)
            await self._save(queue_name, remaining + newer)
            if failed:
                self._dropped[queue_name] = self._dropped.get(queue_name, 0) + failed

        return ProcessQueueResult(
            processed=len(entries),
            succeeded=succeeded,
            requeued=len(remaining),
            failed=failed,
        )

    async def process_all(self) -> Dict[str, ProcessQueueResult]:
        """One processing pass over every known queue."""
        return {name: await self.process_queue(name) for name in self.get_queue_names()}

    async def get_queue_size(self, queue_name: str) -> int:
        return len(await self._load(queue_name))

    def get_queue_names(self) -> List[str]:
        return list(self._names)

    async def peek(self, queue_name: str) -> List[Dict[str, Any]]:
        """Descriptions of the entries currently queued."""
        return [entry.describe() for entry in await self._load(queue_name)]

    async def clear_queue(self, queue_name: str) -> int:
        """Remove a queue and its entries. Returns how many entries were dropped."""
        async with self._lock:
            entries = await self._load(queue_name)
            await self.store.delete(KEY_PREFIX + queue_name)
            if queue_name in self._names:
                self._names.remove(queue_name)
            self._dropped.pop(queue_name, None)

        logger.warning(f"Queue '{queue_name}' cleared ({len(entries)} entries discarded)")
        return len(entries)

    async def get_stats(self) -> Dict[str, QueueStats]:
        """Size, oldest entry time and dropped count per queue."""
        stats: Dict[str, QueueStats] = {}
        for name in self.get_queue_names():
            entries = await self._load(name)
            stats[name] = QueueStats(
                size=len(entries),
                oldest_item=min((e.enqueued_at for e in entries), default=None),
                dropped=self._dropped.get(name, 0),
            )
        return stats
