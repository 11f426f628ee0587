"""At-most-once execution per idempotency key.

The first caller for a key runs the work; concurrent callers with the same
key await that run's outcome instead of repeating side effects. Successful
outcomes are persisted in the backing store for ``ttl`` seconds; failures are
never stored, so a later call with the same key tries again.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from lifeline.core.config import get_config
from lifeline.core.models import IdempotencyStats
from lifeline.core.store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "idempotency:"

_ABANDONED = object()


@dataclass(frozen=True)
class IdempotencyRecord:
    """Stored outcome of a completed execution."""

    key: str
    result: Any
    created_at: float
    expires_at: Optional[float]

    def is_live(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at


class IdempotencyStore:
    """In-flight coordination plus a pluggable record store."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or InMemoryStore()
        self.ttl = get_config().idempotency_ttl if ttl is None else ttl
        self._clock = clock
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    async def get_record(self, key: str) -> Optional[IdempotencyRecord]:
        """Live record for ``key``, if any."""
        record = await self.store.get(KEY_PREFIX + key)
        if record is None or not record.is_live(self._clock()):
            return None
        return record

    async def run_once(
        self,
        key: str,
        work: Callable[[], Awaitable[T]],
        is_success: Callable[[T], bool] = lambda _: True,
        to_record: Callable[[T], Any] = lambda outcome: outcome,
    ) -> Tuple[Any, str]:
        """Execute ``work`` at most once for ``key``.

        If the caller running the work is cancelled, callers waiting on the
        same key are not: the next one takes over and runs its own work.

        Returns:
            ``(value, source)`` where source is ``"executed"`` for the caller
            that ran the work, ``"joined"`` for callers that awaited an
            in-flight run, and ``"replayed"`` when served from a stored
            record (value is then the stored record result)
        """
        while True:
            async with self._lock:
                record = await self.get_record(key)
                if record is not None:
                    logger.info(f"Idempotency key {key!r} already completed, replaying")
                    return record.result, "replayed"

                future = self._in_flight.get(key)
                owner = future is None
                if owner:
                    future = asyncio.get_running_loop().create_future()
                    self._in_flight[key] = future

            if owner:
                break

            logger.info(f"Idempotency key {key!r} in flight, awaiting first caller")
            outcome = await asyncio.shield(future)
            if outcome is _ABANDONED:
                logger.info(f"Idempotency key {key!r} abandoned by a cancelled caller, retrying")
                continue
            return outcome, "joined"

        try:
            outcome = await work()
            if is_success(outcome):
                now = self._clock()
                record = IdempotencyRecord(
                    key=key,
                    result=to_record(outcome),
                    created_at=now,
                    expires_at=now + self.ttl if self.ttl else None,
                )
                await self.store.set(KEY_PREFIX + key, record, self.ttl or None)
        except asyncio.CancelledError:
            # Free the key before waking waiters so one of them can own it
            self._release_in_flight(key, future)
            future.set_result(_ABANDONED)
            raise
        except BaseException as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure is not logged by asyncio
            future.exception()
            raise
        else:
            future.set_result(outcome)
            return outcome, "executed"
        finally:
            self._release_in_flight(key, future)

    def _release_in_flight(self, key: str, future: asyncio.Future) -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]

    async def release(self, key: str) -> None:
        """Forget a stored record so the key can run again."""
        await self.store.delete(KEY_PREFIX + key)

    async def clear(self) -> None:
        """Drop every stored record. Keys currently executing are untouched."""
        for full_key in await self.store.keys(KEY_PREFIX):
            await self.store.delete(full_key)

    async def get_stats(self) -> IdempotencyStats:
        keys = [k[len(KEY_PREFIX):] for k in await self.store.keys(KEY_PREFIX)]
        return IdempotencyStats(
            completed_transactions=len(keys),
            in_flight=len(self._in_flight),
            keys=sorted(keys),
        )
