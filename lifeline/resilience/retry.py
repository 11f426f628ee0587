"""Retry strategy with exponential backoff and jitter.

Attempt 0 runs immediately. Each retryable failure sleeps for the computed
backoff delay and tries again until ``max_retries`` is spent, then the last
error propagates unchanged so callers can match on the root cause.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from lifeline.core.config import get_config
from lifeline.core.exceptions import InvalidResultError, OperationTimeoutError
from lifeline.core.models import BatchItemResult
from lifeline.core.operation import RetryHook, notify, operation_label

from .backoff import compute_backoff_delay
from .circuit_breaker import CircuitBreakerRegistry, CircuitOpenError
from .classification import is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.25
    retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)
    timeout: Optional[float] = None
    """Per-attempt timeout in seconds; exceeding it raises OperationTimeoutError."""
    retry_on_timeout: bool = True

    @classmethod
    def from_global(cls, **overrides: Any) -> "RetryPolicy":
        """Build a policy from LIFELINE_RETRY_* settings."""
        cfg = get_config()
        values = {
            "max_retries": cfg.retry_max_retries,
            "initial_delay": cfg.retry_initial_delay,
            "max_delay": cfg.retry_max_delay,
            "backoff_multiplier": cfg.retry_backoff_multiplier,
            "jitter_ratio": cfg.retry_jitter_ratio,
        }
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "RetryPolicy":
        """Copy of this policy with some fields replaced."""
        return replace(self, **changes)

    def delay_for(
        self, attempt: int, rand: Callable[[], float] = random.random
    ) -> float:
        """Backoff delay before retry number ``attempt``."""
        return compute_backoff_delay(
            attempt,
            self.initial_delay,
            self.max_delay,
            self.backoff_multiplier,
            self.jitter_ratio,
            rand,
        )

    def should_retry(self, error: BaseException) -> bool:
        """Whether ``error`` is worth another attempt under this policy."""
        if isinstance(error, CircuitOpenError):
            return False
        if isinstance(error, OperationTimeoutError):
            return self.retry_on_timeout
        return bool(self.retryable(error))


async def run_with_timeout(
    operation: Callable[[], Awaitable[T]], timeout: Optional[float]
) -> T:
    """Await ``operation()``, converting a timeout into OperationTimeoutError."""
    if timeout is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(
            f"Operation {operation_label(operation)} timed out after {timeout}s",
            timeout=timeout,
        ) from e


class RetryExecutor:
    """Re-invokes failing operations according to a RetryPolicy.

    The executor refers to its circuit breaker by name only; the breaker is
    looked up in the registry on every attempt and never owned here.

    Example:
        ```python
        executor = RetryExecutor(
            RetryPolicy(max_retries=3, initial_delay=1.0),
            breaker="email_provider",
            registry=context.breakers,
        )
        await executor.execute(lambda: mailer.send(message))
        ```
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        breaker: Optional[str] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        on_retry: Optional[RetryHook] = None,
        sleep: Sleep = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        if breaker is not None and registry is None:
            raise ValueError("A registry is required when a breaker name is given")
        self.policy = policy or RetryPolicy.from_global()
        self.breaker = breaker
        self.registry = registry
        self.on_retry = on_retry
        self._sleep = sleep
        self._rand = rand

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        timeout = self.policy.timeout

        async def guarded() -> T:
            return await run_with_timeout(operation, timeout)

        if self.breaker is not None:
            breaker = self.registry.get(self.breaker)
            if breaker is not None:
                return await breaker.execute(guarded)
        return await guarded()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute operation with exponential backoff retry.

        Returns:
            Result from the operation

        Raises:
            The last exception, unchanged, once retries are exhausted or the
            error is not retryable
        """
        max_retries = self.policy.max_retries
        label = operation_label(operation)

        for attempt in range(max_retries + 1):
            try:
                result = await self._attempt(operation)
            except Exception as e:
                if attempt >= max_retries or not self.policy.should_retry(e):
                    if attempt > 0:
                        logger.error(
                            f"{label} failed after {attempt + 1} attempts: "
                            f"{type(e).__name__}: {e}"
                        )
                    raise

                delay = self.policy.delay_for(attempt + 1, self._rand)
                logger.warning(
                    f"Retrying {label} (attempt {attempt + 1}/{max_retries}) "
                    f"after {delay:.2f}s: {type(e).__name__}: {e}"
                )
                notify(self.on_retry, e, attempt + 1)
                await self._sleep(delay)
            else:
                if attempt > 0:
                    logger.info(f"{label} succeeded after {attempt + 1} attempts")
                return result

        # This should never be reached, but mypy needs it
        raise RuntimeError("Retry loop completed without returning or raising")

    async def execute_with_predicate(
        self,
        operation: Callable[[], Awaitable[T]],
        validate: Callable[[T], bool],
    ) -> T:
        """Retry until the result passes ``validate``.

        An invalid result counts as a retryable failure. If the budget runs
        out on invalid results, InvalidResultError carries the last one.
        """

        async def validated() -> T:
            result = await operation()
            if not validate(result):
                raise InvalidResultError(
                    f"Result of {operation_label(operation)} did not pass validation",
                    last_result=result,
                )
            return result

        policy = self.policy
        base_retryable = policy.retryable

        def retryable(error: BaseException) -> bool:
            return isinstance(error, InvalidResultError) or base_retryable(error)

        executor = RetryExecutor(
            policy.with_overrides(retryable=retryable),
            breaker=self.breaker,
            registry=self.registry,
            on_retry=self.on_retry,
            sleep=self._sleep,
            rand=self._rand,
        )
        return await executor.execute(validated)

    async def execute_batch(
        self, operations: Sequence[Callable[[], Awaitable[Any]]]
    ) -> List[BatchItemResult]:
        """Run each operation with its own retry budget, concurrently.

        Always returns one result per operation, in input order.
        """

        async def run_one(operation: Callable[[], Awaitable[Any]]) -> BatchItemResult:
            try:
                result = await self.execute(operation)
            except Exception as e:
                return BatchItemResult(success=False, error=e)
            return BatchItemResult(success=True, result=result)

        return list(await asyncio.gather(*(run_one(op) for op in operations)))


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    policy: RetryPolicy,
    *args: Any,
    **kwargs: Any
) -> T:
    """Execute function with exponential backoff retry.

    Args:
        func: Async function to execute
        policy: Retry policy
        *args: Positional arguments for function
        **kwargs: Keyword arguments for function

    Returns:
        Result from function

    Raises:
        Last exception if all retries exhausted
    """
    return await RetryExecutor(policy).execute(functools.partial(func, *args, **kwargs))


async def retry_with_predicate(
    operation: Callable[[], Awaitable[T]],
    validate: Callable[[T], bool],
    policy: Optional[RetryPolicy] = None,
    **executor_kwargs: Any,
) -> T:
    """Retry ``operation`` until its result passes ``validate``."""
    return await RetryExecutor(policy, **executor_kwargs).execute_with_predicate(
        operation, validate
    )


async def retry_batch(
    operations: Sequence[Callable[[], Awaitable[Any]]],
    policy: Optional[RetryPolicy] = None,
    **executor_kwargs: Any,
) -> List[BatchItemResult]:
    """Retry each operation independently; one result per operation."""
    return await RetryExecutor(policy, **executor_kwargs).execute_batch(operations)


def retryable(
    policy: Optional[RetryPolicy] = None, **executor_kwargs: Any
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator retrying every call of a coroutine function."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            executor = RetryExecutor(policy, **executor_kwargs)
            return await executor.execute(functools.partial(func, *args, **kwargs))

        return wrapper

    return decorator
