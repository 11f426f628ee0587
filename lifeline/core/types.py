"""Core type definitions and enums for Lifeline."""

from enum import Enum


class ErrorCategory(str, Enum):
    """Failure categories used for retry classification."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"  # 5xx
    RATE_LIMIT = "rate_limit"  # 429
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CLIENT = "client"  # Other 4xx
    CIRCUIT_OPEN = "circuit_open"
    FATAL = "fatal"
    UNKNOWN = "unknown"


class TransactionStatus(str, Enum):
    """Lifecycle of a unit of work."""

    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class SagaStatus(str, Enum):
    """Saga execution outcome."""

    COMPLETED = "completed"
    COMPENSATED = "compensated"
    PARTIALLY_COMPENSATED = "partially_compensated"
