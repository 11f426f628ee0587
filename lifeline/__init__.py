"""Lifeline - Resilience and recovery control plane for async services."""

from .admin import AdminSurface
from .context import ResilienceContext
from .core import (
    AllSourcesFailedError,
    BoundOperation,
    ClassifiedError,
    ConfigurationError,
    ErrorCategory,
    FatalError,
    # Config
    GlobalConfig,
    InMemoryStore,
    InvalidResultError,
    KeyValueStore,
    # Exceptions
    LifelineError,
    NonRetryableError,
    OperationTimeoutError,
    RetryableError,
    SagaResult,
    TransactionResult,
    ValidationError,
    config,
    configure_logging,
    get_config,
    reload_config,
)
from .recovery import (
    FailedOperationQueue,
    IdempotencyStore,
    SagaCoordinator,
    SagaStep,
    TransactionManager,
    UnitOfWork,
)
from .resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
    FallbackOrchestrator,
    RetryExecutor,
    RetryPolicy,
    classify_error,
    graceful_degrade,
    with_fallback,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Context
    "ResilienceContext",
    "AdminSurface",
    # Resilience
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "RetryPolicy",
    "RetryExecutor",
    "classify_error",
    "with_fallback",
    "graceful_degrade",
    "FallbackOrchestrator",
    # Recovery
    "IdempotencyStore",
    "TransactionManager",
    "UnitOfWork",
    "SagaCoordinator",
    "SagaStep",
    "FailedOperationQueue",
    # Types and models
    "ErrorCategory",
    "BoundOperation",
    "TransactionResult",
    "SagaResult",
    "KeyValueStore",
    "InMemoryStore",
    # Exceptions
    "LifelineError",
    "ConfigurationError",
    "ValidationError",
    "ClassifiedError",
    "RetryableError",
    "NonRetryableError",
    "FatalError",
    "OperationTimeoutError",
    "InvalidResultError",
    "AllSourcesFailedError",
    # Config
    "GlobalConfig",
    "config",
    "get_config",
    "reload_config",
    "configure_logging",
]
