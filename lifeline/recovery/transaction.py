"""Idempotent transaction manager.

Each attempt runs inside a fresh ``UnitOfWork``: work registers undo actions
(or inserts through the unit, which registers them itself), and a failed or
timed-out attempt rolls back before the retry executor decides whether to
try again. An attempt either commits or rolls back; it is never abandoned
half-applied.
"""

import asyncio
import functools
import inspect
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from lifeline.core.config import get_config
from lifeline.core.models import IdempotencyStats, TransactionResult
from lifeline.core.types import TransactionStatus
from lifeline.resilience.classification import is_retryable_error
from lifeline.resilience.retry import RetryExecutor, RetryPolicy, Sleep, run_with_timeout

from .idempotency import IdempotencyStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_TRANSACTION_MESSAGES = (
    "deadlock detected",
    "could not serialize access",
    "connection refused",
    "connection reset",
    "timeout",
)


def is_retryable_transaction_error(error: BaseException) -> bool:
    """Default predicate plus lock-conflict and dropped-connection messages."""
    if is_retryable_error(error):
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_TRANSACTION_MESSAGES)


class RecordSink(ABC):
    """Where batch inserts land. Adapt to an ORM or driver in the host."""

    @abstractmethod
    async def insert_many(self, entity: str, records: Sequence[Any]) -> int:
        """Insert records, returning how many were written."""
        pass

    @abstractmethod
    async def delete_many(self, entity: str, records: Sequence[Any]) -> None:
        """Remove records previously inserted (rollback path)."""
        pass


class InMemoryRecordSink(RecordSink):
    """Lists of records per entity name."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Any]] = {}
        self._lock = asyncio.Lock()

    async def insert_many(self, entity: str, records: Sequence[Any]) -> int:
        async with self._lock:
            self.tables.setdefault(entity, []).extend(records)
        return len(records)

    async def delete_many(self, entity: str, records: Sequence[Any]) -> None:
        async with self._lock:
            table = self.tables.get(entity, [])
            for record in records:
                for index in range(len(table) - 1, -1, -1):
                    if table[index] is record:
                        del table[index]
                        break

    def rows(self, entity: str) -> List[Any]:
        return list(self.tables.get(entity, []))


UndoAction = Callable[[], Any]


class UnitOfWork:
    """Rollback scope for one transaction attempt."""

    def __init__(self, transaction_id: str, sink: Optional[RecordSink] = None):
        self.transaction_id = transaction_id
        self.sink = sink
        self.status = TransactionStatus.ACTIVE
        self._undo: List[tuple[str, UndoAction]] = []

    def on_rollback(self, action: UndoAction, name: Optional[str] = None) -> None:
        """Register an undo action. Actions run in reverse registration order."""
        if self.status != TransactionStatus.ACTIVE:
            raise RuntimeError(
                f"Transaction {self.transaction_id} is {self.status.value}, "
                f"cannot register rollback actions"
            )
        self._undo.append((name or getattr(action, "__name__", "undo"), action))

    async def insert_many(self, entity: str, records: Sequence[Any]) -> int:
        """Insert through the sink and register the matching delete."""
        if self.sink is None:
            raise RuntimeError("UnitOfWork has no record sink configured")
        records = list(records)
        count = await self.sink.insert_many(entity, records)
        self.on_rollback(
            functools.partial(self.sink.delete_many, entity, records),
            name=f"delete {len(records)} {entity}",
        )
        return count

    async def commit(self) -> None:
        self.status = TransactionStatus.COMMITTED
        self._undo.clear()

    async def rollback(self) -> List[BaseException]:
        """Run undo actions newest first. Errors are logged and returned."""
        if self.status != TransactionStatus.ACTIVE:
            return []
        errors: List[BaseException] = []
        while self._undo:
            name, action = self._undo.pop()
            try:
                result = action()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Rollback action '{name}' failed in transaction "
                    f"{self.transaction_id}: {type(e).__name__}: {e}"
                )
                errors.append(e)
        self.status = TransactionStatus.ROLLED_BACK
        return errors

    @property
    def pending_rollbacks(self) -> int:
        return len(self._undo)


Work = Callable[[UnitOfWork], Awaitable[T]]


class TransactionManager:
    """Executes units of work with retry, rollback and idempotency keys.

    Example:
        ```python
        manager = TransactionManager()
        result = await manager.execute(
            charge_customer,
            idempotency_key=f"charge:{request_id}",
        )
        if not result.success:
            raise result.error
        ```
    """

    def __init__(
        self,
        idempotency: Optional[IdempotencyStore] = None,
        sink: Optional[RecordSink] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        cfg = get_config()
        self.idempotency = idempotency or IdempotencyStore()
        self.sink = sink or InMemoryRecordSink()
        self.policy = policy or RetryPolicy.from_global(
            retryable=is_retryable_transaction_error
        )
        self.timeout = cfg.transaction_timeout if timeout is None else timeout
        self._sleep = sleep

    async def execute(
        self,
        work: Work,
        *,
        idempotency_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> TransactionResult:
        """Execute ``work`` within a unit of work with automatic retries.

        Args:
            work: Coroutine function receiving the active UnitOfWork
            idempotency_key: Runs at most once per key while its record lives
            max_retries: Overrides the manager's retry budget
            timeout: Per-attempt timeout in seconds

        Returns:
            TransactionResult; failures are reported, not raised
        """
        if idempotency_key is None:
            return await self._run(work, max_retries, timeout, None)

        outcome, source = await self.idempotency.run_once(
            idempotency_key,
            lambda: self._run(work, max_retries, timeout, idempotency_key),
            is_success=lambda result: result.success,
            to_record=lambda result: result.data,
        )
        if source == "replayed":
            return TransactionResult(
                success=True, data=outcome, attempts=0, duration=0.0, replayed=True
            )
        return outcome

    async def _run(
        self,
        work: Work,
        max_retries: Optional[int],
        timeout: Optional[float],
        idempotency_key: Optional[str],
    ) -> TransactionResult:
        transaction_id = str(uuid.uuid4())
        timeout = self.timeout if timeout is None else timeout
        policy = self.policy
        if max_retries is not None:
            policy = policy.with_overrides(max_retries=max_retries)
        attempts = 0
        start = time.monotonic()

        logger.info(
            f"Starting transaction {transaction_id}: key={idempotency_key}, "
            f"max_retries={policy.max_retries}, timeout={timeout}s"
        )

        async def attempt() -> Any:
            nonlocal attempts
            attempts += 1
            unit = UnitOfWork(transaction_id, self.sink)
            try:
                result = await run_with_timeout(lambda: work(unit), timeout or None)
            except BaseException:
                await asyncio.shield(unit.rollback())
                raise
            await unit.commit()
            return result

        executor = RetryExecutor(policy, sleep=self._sleep)
        try:
            data = await executor.execute(attempt)
        except Exception as e:
            duration = time.monotonic() - start
            logger.error(
                f"Transaction {transaction_id} failed permanently after "
                f"{attempts} attempts: {type(e).__name__}: {e}"
            )
            return TransactionResult(
                success=False, error=e, attempts=attempts, duration=duration
            )

        duration = time.monotonic() - start
        logger.info(
            f"Transaction {transaction_id} committed: attempts={attempts}, "
            f"duration={duration:.3f}s"
        )
        return TransactionResult(
            success=True, data=data, attempts=attempts, duration=duration
        )

    async def execute_parallel(
        self, works: Sequence[Work], **options: Any
    ) -> TransactionResult:
        """Run independent works concurrently inside one unit.

        Every work is allowed to settle; if any failed, the whole unit rolls
        back (undo actions newest first across all works). This is best-effort
        cleanup, not atomicity across heterogeneous resources.
        """

        async def parallel(unit: UnitOfWork) -> List[Any]:
            results = await asyncio.gather(
                *(work(unit) for work in works), return_exceptions=True
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            return list(results)

        return await self.execute(parallel, **options)

    async def execute_sequence(
        self,
        works: Sequence[Callable[[UnitOfWork, Any], Awaitable[Any]]],
        **options: Any,
    ) -> TransactionResult:
        """Run works in order, passing each the previous result.

        The first work receives None. Aborts on the first failure; data is
        the list of every step's result.
        """

        async def sequence(unit: UnitOfWork) -> List[Any]:
            results: List[Any] = []
            previous: Any = None
            for work in works:
                previous = await work(unit, previous)
                results.append(previous)
            return results

        return await self.execute(sequence, **options)

    async def batch_insert(
        self,
        entity: str,
        records: Sequence[Any],
        chunk_size: int = 1000,
        **options: Any,
    ) -> TransactionResult:
        """Insert records in chunks of ``chunk_size`` inside one transaction.

        ``data`` on success is the number of records inserted.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        records = list(records)

        async def insert(unit: UnitOfWork) -> int:
            total = 0
            for offset in range(0, len(records), chunk_size):
                chunk = records[offset:offset + chunk_size]
                total += await unit.insert_many(entity, chunk)
                logger.debug(
                    f"Inserted chunk of {len(chunk)} {entity} records "
                    f"({total}/{len(records)})"
                )
            return total

        return await self.execute(insert, **options)

    async def get_stats(self) -> IdempotencyStats:
        """Idempotency records held and keys currently executing."""
        return await self.idempotency.get_stats()

    async def clear_idempotency_cache(self) -> None:
        """Forget every completed idempotency key."""
        await self.idempotency.clear()
        logger.warning("Idempotency cache cleared")


async def create_idempotent_transaction(
    manager: TransactionManager,
    key: str,
    work: Work,
    **options: Any,
) -> TransactionResult:
    """Shorthand for ``manager.execute(work, idempotency_key=key)``."""
    return await manager.execute(work, idempotency_key=key, **options)


def transactional(
    manager: TransactionManager, **options: Any
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator running every call of a coroutine function as a transaction.

    The function receives the active UnitOfWork as its first argument,
    followed by the caller's arguments. ``options`` are passed to
    ``TransactionManager.execute``. A failed transaction raises its error;
    a successful one returns the function's result.

    Example:
        ```python
        @transactional(manager, max_retries=3)
        async def create_user_with_profile(unit: UnitOfWork, data: dict) -> int:
            return await unit.insert_many("users", [data])
        ```
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            result = await manager.execute(
                functools.partial(_call_in_unit, func, args, kwargs), **options
            )
            if not result.success:
                raise result.error
            return result.data

        return wrapper

    return decorator


async def _call_in_unit(
    func: Callable[..., Awaitable[T]],
    args: tuple,
    kwargs: Dict[str, Any],
    unit: UnitOfWork,
) -> T:
    return await func(unit, *args, **kwargs)
