"""Long-lived owner of shared resilience state.

One ``ResilienceContext`` per process (or per test) holds the breaker
registry, the idempotency store and the failed-operation queue. Call sites
build their executors, transaction managers and sagas from it, so state is
shared by passing the context rather than through module globals.
"""

import asyncio
import logging
from typing import Any, Optional

from lifeline.core.config import GlobalConfig, get_config
from lifeline.core.operation import CompensationFailureHook, RetryHook
from lifeline.core.store import InMemoryStore, KeyValueStore
from lifeline.recovery.idempotency import IdempotencyStore
from lifeline.recovery.queue import FailedOperationQueue
from lifeline.recovery.saga import SagaCoordinator
from lifeline.recovery.transaction import RecordSink, TransactionManager
from lifeline.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from lifeline.resilience.fallback import DefaultValueProvider, FallbackOrchestrator
from lifeline.resilience.retry import RetryExecutor, RetryPolicy, Sleep

logger = logging.getLogger(__name__)


class ResilienceContext:
    """Shared registry, stores and queue, plus factories for call sites.

    Example:
        ```python
        context = ResilienceContext()
        context.breaker("payment_gateway", CircuitBreakerConfig(failure_threshold=3))

        charge = context.retry_executor(RetryPolicy(max_retries=2), breaker="payment_gateway")
        try:
            await charge.execute(lambda: gateway.charge(order))
        except Exception:
            await context.failed_operations.enqueue(
                "payments", BoundOperation(gateway.charge, args=(order,))
            )
        ```
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        store: Optional[KeyValueStore] = None,
    ):
        self.config = config or get_config()
        self.store = store or InMemoryStore()
        self.breakers = CircuitBreakerRegistry()
        self.idempotency = IdempotencyStore(self.store, ttl=self.config.idempotency_ttl)
        self.failed_operations = FailedOperationQueue(
            self.store, default_max_retries=self.config.queue_max_retries
        )
        self.defaults = DefaultValueProvider()

    @property
    def cache(self) -> KeyValueStore:
        """Store used for fallback result caching."""
        return self.store

    def breaker(
        self, name: str, config: Optional[CircuitBreakerConfig] = None
    ) -> CircuitBreaker:
        """Get or create a named breaker with this context's defaults."""
        return self.breakers.get_or_create(name, config or self.breaker_config())

    def breaker_config(self, **overrides: Any) -> CircuitBreakerConfig:
        cfg = self.config
        values = {
            "failure_threshold": cfg.breaker_failure_threshold,
            "success_threshold": cfg.breaker_success_threshold,
            "timeout_seconds": cfg.breaker_timeout,
            "monitoring_period": cfg.breaker_monitoring_period,
            "volume_threshold": cfg.breaker_volume_threshold,
            "error_threshold_percentage": cfg.breaker_error_percentage,
        }
        values.update(overrides)
        return CircuitBreakerConfig(**values)

    def retry_policy(self, **overrides: Any) -> RetryPolicy:
        cfg = self.config
        values = {
            "max_retries": cfg.retry_max_retries,
            "initial_delay": cfg.retry_initial_delay,
            "max_delay": cfg.retry_max_delay,
            "backoff_multiplier": cfg.retry_backoff_multiplier,
            "jitter_ratio": cfg.retry_jitter_ratio,
        }
        values.update(overrides)
        return RetryPolicy(**values)

    def retry_executor(
        self,
        policy: Optional[RetryPolicy] = None,
        breaker: Optional[str] = None,
        on_retry: Optional[RetryHook] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> RetryExecutor:
        """Executor bound to this context's breaker registry."""
        return RetryExecutor(
            policy or self.retry_policy(),
            breaker=breaker,
            registry=self.breakers,
            on_retry=on_retry,
            sleep=sleep,
        )

    def transaction_manager(
        self,
        sink: Optional[RecordSink] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> TransactionManager:
        """Manager sharing this context's idempotency store."""
        return TransactionManager(
            idempotency=self.idempotency,
            sink=sink,
            policy=policy,
            timeout=self.config.transaction_timeout if timeout is None else timeout,
            sleep=sleep,
        )

    def saga_coordinator(
        self,
        manager: Optional[TransactionManager] = None,
        on_compensation_failure: Optional[CompensationFailureHook] = None,
    ) -> SagaCoordinator:
        return SagaCoordinator(
            manager or self.transaction_manager(),
            on_compensation_failure=on_compensation_failure,
        )

    def fallback(
        self,
        policy: Optional[RetryPolicy] = None,
        breaker: Optional[str] = None,
        cache_ttl: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> FallbackOrchestrator:
        """Orchestrator caching through this context's store."""
        return FallbackOrchestrator(
            policy or self.retry_policy(),
            breaker=breaker,
            registry=self.breakers,
            cache=self.cache,
            cache_ttl=self.config.fallback_cache_ttl if cache_ttl is None else cache_ttl,
            sleep=sleep,
        )
