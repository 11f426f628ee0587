"""Circuit breaker pattern implementation.

Prevents cascading failures by stopping calls to failing dependencies
(databases, payment providers, email services).

Based on Michael Nygard's "Release It!" patterns.
"""

import asyncio
import functools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from lifeline.core.config import get_config
from lifeline.core.exceptions import LifelineError
from lifeline.core.models import CircuitBreakerSnapshot
from lifeline.core.operation import StateChangeHook, notify

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests allowed
    OPEN = "open"  # Failure threshold exceeded, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5
    """Consecutive failures in CLOSED state that open the circuit."""

    success_threshold: int = 2
    """Number of consecutive successes in half-open to close circuit."""

    timeout_seconds: float = 60.0
    """Seconds to wait before transitioning from open to half-open."""

    monitoring_period: float = 60.0
    """Rolling window (seconds) used for the failure-rate rule."""

    volume_threshold: int = 10
    """Requests needed in the window before the failure-rate rule applies."""

    error_threshold_percentage: float = 50.0
    """Failure percentage in the window that opens the circuit."""

    half_open_max_requests: int = 1
    """Maximum concurrent trial requests allowed in half-open state."""

    excluded_exceptions: tuple[type[BaseException], ...] = ()
    """Exception types that don't count as failures (e.g., validation errors)."""

    on_state_change: Optional[StateChangeHook] = None
    """Called with (name, old_state, new_state) after every transition."""

    @classmethod
    def from_global(cls, **overrides: Any) -> "CircuitBreakerConfig":
        """Build a config from LIFELINE_BREAKER_* settings."""
        cfg = get_config()
        values = {
            "failure_threshold": cfg.breaker_failure_threshold,
            "success_threshold": cfg.breaker_success_threshold,
            "timeout_seconds": cfg.breaker_timeout,
            "monitoring_period": cfg.breaker_monitoring_period,
            "volume_threshold": cfg.breaker_volume_threshold,
            "error_threshold_percentage": cfg.breaker_error_percentage,
        }
        values.update(overrides)
        return cls(**values)


class CircuitOpenError(LifelineError):
    """Raised when circuit is open and request is rejected."""

    def __init__(self, circuit_name: str, open_until: float):
        self.circuit_name = circuit_name
        self.open_until = open_until
        remaining = max(0, open_until - time.time())
        super().__init__(
            f"Circuit '{circuit_name}' is OPEN. "
            f"Retry after {remaining:.1f}s at {time.strftime('%H:%M:%S', time.localtime(open_until))}"
        )


@dataclass
class CircuitBreakerStats:
    """Statistics for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_transitions: dict[str, int] = field(default_factory=dict)

    def record_success(self) -> None:
        """Record successful call."""
        self.total_calls += 1
        self.successful_calls += 1

    def record_failure(self) -> None:
        """Record failed call."""
        self.total_calls += 1
        self.failed_calls += 1

    def record_excluded(self) -> None:
        """Record call that raised an excluded exception."""
        self.total_calls += 1

    def record_rejection(self) -> None:
        """Record rejected call (circuit open)."""
        self.rejected_calls += 1

    def record_state_change(self, from_state: CircuitState, to_state: CircuitState) -> None:
        """Record state transition."""
        key = f"{from_state.value} -> {to_state.value}"
        self.state_transitions[key] = self.state_transitions.get(key, 0) + 1


class CircuitBreaker:
    """Circuit breaker guarding one named dependency.

    Example:
        ```python
        payments = CircuitBreaker(
            name="payment_gateway",
            config=CircuitBreakerConfig(failure_threshold=5, timeout_seconds=60),
        )

        try:
            order = await payments.execute(lambda: gateway.create_order(amount))
        except CircuitOpenError:
            # Circuit open, queue the payment for later
            ...
        ```
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize circuit breaker.

        Args:
            name: Circuit breaker identifier for logging/monitoring
            config: Configuration, or use defaults
            clock: Time source in epoch seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None
        self.open_until: Optional[float] = None
        self.half_open_requests = 0
        self.stats = CircuitBreakerStats()
        self._clock = clock
        self._window: deque[tuple[float, bool]] = deque()
        self._lock = asyncio.Lock()

        logger.info(
            f"Circuit breaker '{name}' initialized: "
            f"failure_threshold={self.config.failure_threshold}, "
            f"timeout_seconds={self.config.timeout_seconds}"
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a zero-argument operation under breaker protection.

        Raises:
            CircuitOpenError: If circuit is open; the operation is not invoked
            Exception: Original exception from the operation
        """
        return await self.call(operation)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute function with circuit breaker protection.

        Args:
            func: Async function to call
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Result from function

        Raises:
            CircuitOpenError: If circuit is open
            Exception: Original exception from function
        """
        trial = False

        # Check state and potentially reject
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self.open_until is not None and self._clock() < self.open_until:
                    # Still in timeout period, reject request
                    self.stats.record_rejection()
                    logger.debug(f"Circuit '{self.name}' is OPEN, rejecting request")
                    raise CircuitOpenError(self.name, self.open_until)
                # Timeout expired, transition to half-open
                await self._transition_to(CircuitState.HALF_OPEN)

            if self.state == CircuitState.HALF_OPEN:
                if self.half_open_requests >= self.config.half_open_max_requests:
                    # Trial already in flight
                    self.stats.record_rejection()
                    raise CircuitOpenError(
                        self.name, self._clock() + self.config.timeout_seconds
                    )
                self.half_open_requests += 1
                trial = True

        # Execute function
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            # Check if exception should be excluded
            if isinstance(e, self.config.excluded_exceptions):
                logger.debug(
                    f"Circuit '{self.name}': Excluded exception {type(e).__name__}"
                )
                async with self._lock:
                    self.stats.record_excluded()
                raise  # Don't count as failure

            await self._on_failure(e, trial)
            raise
        else:
            await self._on_success(trial)
            return result
        finally:
            if trial:
                async with self._lock:
                    if self.state == CircuitState.HALF_OPEN and self.half_open_requests > 0:
                        self.half_open_requests -= 1

    async def _on_success(self, trial: bool = False) -> None:
        """Handle successful call. Only trial calls count toward closing."""
        async with self._lock:
            self.stats.record_success()
            self._record_result(True)

            if self.state == CircuitState.CLOSED:
                # Reset failure count on success
                self.failure_count = 0

            elif self.state == CircuitState.HALF_OPEN and trial:
                # Count successes in half-open state
                self.success_count += 1

                logger.info(
                    f"Circuit '{self.name}' half-open success: "
                    f"{self.success_count}/{self.config.success_threshold}"
                )

                if self.success_count >= self.config.success_threshold:
                    # Enough successes, close circuit
                    await self._transition_to(CircuitState.CLOSED)

    async def _on_failure(self, exception: Exception, trial: bool = False) -> None:
        """Handle failed call. Only a failed trial reopens a half-open circuit."""
        async with self._lock:
            self.stats.record_failure()
            self._record_result(False)

            logger.warning(
                f"Circuit '{self.name}' failure in {self.state.value} state: "
                f"{type(exception).__name__}: {exception}"
            )

            if self.state == CircuitState.CLOSED:
                self.failure_count += 1

                if self._should_open():
                    # Threshold exceeded, open circuit
                    await self._transition_to(CircuitState.OPEN)

            elif self.state == CircuitState.HALF_OPEN and trial:
                # Failure in half-open, immediately reopen circuit
                logger.warning(
                    f"Circuit '{self.name}': Failure in half-open state, reopening circuit"
                )
                await self._transition_to(CircuitState.OPEN)

            # Already OPEN, or a call admitted before half-open: nothing to do

    def _record_result(self, success: bool) -> None:
        """Append to the rolling window and drop entries older than the period."""
        now = self._clock()
        self._window.append((now, success))
        cutoff = now - self.config.monitoring_period
        while self._window and self._window[0][0] < cutoff:
            self._window.popleft()

    def _should_open(self) -> bool:
        if self.failure_count >= self.config.failure_threshold:
            return True
        if len(self._window) < self.config.volume_threshold:
            return False
        return self._failure_rate() >= self.config.error_threshold_percentage

    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        failures = sum(1 for _, success in self._window if not success)
        return failures / len(self._window) * 100

    async def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to new state.

        Args:
            new_state: Target state
        """
        old_state = self.state
        if old_state == new_state:
            return

        self.state = new_state
        self.stats.record_state_change(old_state, new_state)

        if new_state == CircuitState.OPEN:
            self.opened_at = self._clock()
            self.open_until = self.opened_at + self.config.timeout_seconds
            self.failure_count = 0
            self.success_count = 0
            self.half_open_requests = 0

            logger.error(
                f"Circuit '{self.name}' OPENED: timeout={self.config.timeout_seconds}s, "
                f"retry at {time.strftime('%H:%M:%S', time.localtime(self.open_until))}"
            )

        elif new_state == CircuitState.HALF_OPEN:
            self.failure_count = 0
            self.success_count = 0
            self.half_open_requests = 0

            logger.info(
                f"Circuit '{self.name}' HALF-OPEN: Testing if service recovered"
            )

        elif new_state == CircuitState.CLOSED:
            self.failure_count = 0
            self.success_count = 0
            self.half_open_requests = 0
            self.open_until = None
            self._window.clear()

            logger.info(
                f"Circuit '{self.name}' CLOSED: Service recovered, resuming normal operation"
            )

        notify(self.config.on_state_change, self.name, old_state, new_state)

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        return self.state

    def get_stats(self) -> CircuitBreakerSnapshot:
        """Get circuit breaker statistics."""
        return CircuitBreakerSnapshot(
            name=self.name,
            state=self.state.value,
            total_requests=self.stats.total_calls,
            successful_requests=self.stats.successful_calls,
            failed_requests=self.stats.failed_calls,
            rejected_requests=self.stats.rejected_calls,
            failure_rate=self._failure_rate(),
            opened_at=self.opened_at,
            state_transitions=dict(self.stats.state_transitions),
        )

    def get_failure_rate(self) -> float:
        """Failure percentage within the monitoring window."""
        return self._failure_rate()

    def is_open(self) -> bool:
        """True while the circuit is rejecting calls."""
        return (
            self.state == CircuitState.OPEN
            and self.open_until is not None
            and self._clock() < self.open_until
        )

    def is_closed(self) -> bool:
        """True in normal operation."""
        return self.state == CircuitState.CLOSED

    async def reset(self) -> None:
        """Manually reset circuit breaker to closed state and clear statistics."""
        async with self._lock:
            logger.info(
                f"Circuit '{self.name}' manually reset to CLOSED state"
            )
            await self._transition_to(CircuitState.CLOSED)
            self.opened_at = None
            self._window.clear()
            self.stats = CircuitBreakerStats()


class CircuitBreakerRegistry:
    """Named circuit breakers shared across call sites.

    The first ``get_or_create`` for a name decides its configuration; later
    calls with a different config get the existing breaker unchanged.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get_or_create(
        self, name: str, config: Optional[CircuitBreakerConfig] = None
    ) -> CircuitBreaker:
        """Get or create circuit breaker.

        Args:
            name: Circuit breaker identifier
            config: Configuration used only if the breaker does not exist yet

        Returns:
            Existing or new circuit breaker
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name, config or CircuitBreakerConfig.from_global(), clock=self._clock
                )
                self._breakers[name] = breaker
            elif config is not None and config is not breaker.config:
                logger.debug(
                    f"Circuit '{name}' already registered, ignoring new configuration"
                )
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        """Return the breaker registered under ``name``, if any."""
        with self._lock:
            return self._breakers.get(name)

    def get_all(self) -> dict[str, CircuitBreaker]:
        """Get all registered circuit breakers."""
        with self._lock:
            return self._breakers.copy()

    def names(self) -> list[str]:
        """Registered breaker names."""
        with self._lock:
            return list(self._breakers)

    def get_all_stats(self) -> dict[str, CircuitBreakerSnapshot]:
        """Statistics for every registered breaker."""
        return {name: breaker.get_stats() for name, breaker in self.get_all().items()}

    async def reset_all(self) -> None:
        """Reset every registered breaker to CLOSED."""
        for breaker in self.get_all().values():
            await breaker.reset()

    def remove(self, name: str) -> bool:
        """Forget a breaker. Returns True if it existed."""
        with self._lock:
            return self._breakers.pop(name, None) is not None

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, name: str) -> bool:
        return name in self._breakers


def circuit_protected(
    name: str,
    registry: CircuitBreakerRegistry,
    config: Optional[CircuitBreakerConfig] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator routing every call of a coroutine function through a breaker."""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            breaker = registry.get_or_create(name, config)
            return await breaker.call(func, *args, **kwargs)

        return wrapper

    return decorator
