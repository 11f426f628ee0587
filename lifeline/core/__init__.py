"""Core infrastructure for Lifeline."""

from .config import GlobalConfig, config, configure_logging, get_config, reload_config
from .exceptions import (
    AllSourcesFailedError,
    ClassifiedError,
    ConfigurationError,
    FatalError,
    InvalidResultError,
    LifelineError,
    NonRetryableError,
    OperationTimeoutError,
    RetryableError,
    ValidationError,
)
from .models import (
    BatchItemResult,
    BreakerPolicy,
    CircuitBreakerSnapshot,
    ErrorClassification,
    IdempotencyStats,
    ProcessQueueResult,
    QueueStats,
    ResiliencePolicy,
    RetryPolicyModel,
    SagaResult,
    TransactionResult,
)
from .operation import (
    BoundOperation,
    CompensationFailureHook,
    Operation,
    RetryHook,
    StateChangeHook,
    notify,
    operation_label,
)
from .store import InMemoryStore, KeyValueStore
from .types import ErrorCategory, SagaStatus, TransactionStatus

__all__ = [
    # Types
    "ErrorCategory",
    "TransactionStatus",
    "SagaStatus",
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
    # Models
    "CircuitBreakerSnapshot",
    "ErrorClassification",
    "BatchItemResult",
    "TransactionResult",
    "SagaResult",
    "QueueStats",
    "ProcessQueueResult",
    "IdempotencyStats",
    "BreakerPolicy",
    "RetryPolicyModel",
    "ResiliencePolicy",
    # Operations
    "Operation",
    "BoundOperation",
    "RetryHook",
    "StateChangeHook",
    "CompensationFailureHook",
    "notify",
    "operation_label",
    # Storage
    "KeyValueStore",
    "InMemoryStore",
    # Config
    "GlobalConfig",
    "config",
    "get_config",
    "reload_config",
    "configure_logging",
]
