"""Custom exceptions for Lifeline."""

from typing import Any, Optional

from .types import ErrorCategory


class LifelineError(Exception):
    """Base exception for all Lifeline errors."""

    pass


class ConfigurationError(LifelineError):
    """Raised when resilience configuration is invalid."""

    pass


class ValidationError(LifelineError):
    """Raised when a policy definition fails validation."""

    pass


class ClassifiedError(LifelineError):
    """Error carrying its own retry classification.

    Adapters for HTTP clients, database drivers and payment SDKs raise
    subclasses of this so the default classifier does not have to guess.
    """

    default_category = ErrorCategory.UNKNOWN
    default_retryable = False

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.category = category or self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.status_code = status_code


class RetryableError(ClassifiedError):
    """Transient failure: network blip, overloaded upstream, lock conflict."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NonRetryableError(ClassifiedError):
    """Failure that will not go away by trying again (validation, auth, 4xx)."""

    default_category = ErrorCategory.CLIENT
    default_retryable = False


class FatalError(ClassifiedError):
    """Programming or configuration error. Never retried."""

    default_category = ErrorCategory.FATAL
    default_retryable = False


class OperationTimeoutError(RetryableError):
    """Raised when an operation exceeds its timeout."""

    default_category = ErrorCategory.TIMEOUT

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class InvalidResultError(RetryableError):
    """Raised when a result keeps failing validation after every retry."""

    default_category = ErrorCategory.UNKNOWN

    def __init__(self, message: str, last_result: Any = None):
        super().__init__(message)
        self.last_result = last_result


class AllSourcesFailedError(LifelineError):
    """Raised when the primary call and every fallback source failed."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error
