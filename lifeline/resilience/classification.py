"""Map raised errors to retry decisions.

Driver-specific adapters belong to the host; this module only recognises
generic shapes: ``ClassifiedError`` subclasses, connection and timeout
errors, and objects exposing ``status_code``/``status`` or a ``code`` string.
"""

import asyncio
import errno
from typing import Optional

from lifeline.core.exceptions import (
    ClassifiedError,
    ConfigurationError,
)
from lifeline.core.models import ErrorClassification
from lifeline.core.types import ErrorCategory

from .circuit_breaker import CircuitOpenError


NETWORK_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.ECONNABORTED,
        errno.ETIMEDOUT,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.EPIPE,
    }
)

NETWORK_CODES = frozenset({"ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND", "ECONNRESET"})

PROGRAMMING_ERRORS = (
    TypeError,
    AttributeError,
    NameError,
    AssertionError,
    NotImplementedError,
    ConfigurationError,
)


def _status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _classify_status(status: int) -> ErrorClassification:
    if status == 429:
        return ErrorClassification(retryable=True, category=ErrorCategory.RATE_LIMIT)
    if status == 408:
        return ErrorClassification(retryable=True, category=ErrorCategory.TIMEOUT)
    if status >= 500:
        return ErrorClassification(retryable=True, category=ErrorCategory.SERVER)
    if status == 401:
        return ErrorClassification(
            retryable=False, category=ErrorCategory.AUTHENTICATION
        )
    if status == 403:
        return ErrorClassification(retryable=False, category=ErrorCategory.AUTHORIZATION)
    if status in (400, 422):
        return ErrorClassification(retryable=False, category=ErrorCategory.VALIDATION)
    return ErrorClassification(retryable=False, category=ErrorCategory.CLIENT)


def classify_error(error: BaseException) -> ErrorClassification:
    """Classify an error as retryable or not, with its category."""
    if isinstance(error, CircuitOpenError):
        return ErrorClassification(retryable=False, category=ErrorCategory.CIRCUIT_OPEN)

    if isinstance(error, ClassifiedError):
        return ErrorClassification(retryable=error.retryable, category=error.category)

    # asyncio.TimeoutError is an alias of TimeoutError from 3.11 on
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorClassification(retryable=True, category=ErrorCategory.TIMEOUT)

    if isinstance(error, ConnectionError):
        return ErrorClassification(retryable=True, category=ErrorCategory.NETWORK)

    if isinstance(error, OSError) and error.errno in NETWORK_ERRNOS:
        return ErrorClassification(retryable=True, category=ErrorCategory.NETWORK)

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in NETWORK_CODES:
        return ErrorClassification(retryable=True, category=ErrorCategory.NETWORK)

    status = _status_code(error)
    if status is not None:
        return _classify_status(status)

    if isinstance(error, PROGRAMMING_ERRORS):
        return ErrorClassification(retryable=False, category=ErrorCategory.FATAL)

    return ErrorClassification(retryable=False, category=ErrorCategory.UNKNOWN)


def is_retryable_error(error: BaseException) -> bool:
    """Default retry predicate: network errors, timeouts, 5xx and 429."""
    return classify_error(error).retryable
