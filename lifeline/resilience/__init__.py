"""Resilience patterns for outbound calls.

This module provides:
- Circuit breaker and a registry of named breakers
- Retry with exponential backoff and jitter
- Error classification for retry decisions
- Fallbacks and graceful degradation
"""

from .backoff import backoff_schedule, compute_backoff_delay
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
    CircuitOpenError,
    CircuitState,
    circuit_protected,
)
from .classification import classify_error, is_retryable_error
from .fallback import (
    CACHE_KEY_PREFIX,
    MISSING,
    DefaultValueProvider,
    FallbackOrchestrator,
    fallback_protected,
    graceful_degrade,
    with_fallback,
)
from .retry import (
    RetryExecutor,
    RetryPolicy,
    retry_batch,
    retry_with_backoff,
    retry_with_predicate,
    retryable,
    run_with_timeout,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "CircuitOpenError",
    "circuit_protected",
    "compute_backoff_delay",
    "backoff_schedule",
    "classify_error",
    "is_retryable_error",
    "RetryPolicy",
    "RetryExecutor",
    "retry_with_backoff",
    "retry_with_predicate",
    "retry_batch",
    "retryable",
    "run_with_timeout",
    "MISSING",
    "CACHE_KEY_PREFIX",
    "with_fallback",
    "fallback_protected",
    "graceful_degrade",
    "FallbackOrchestrator",
    "DefaultValueProvider",
]
