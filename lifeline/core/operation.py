"""Operation descriptors and observability hook interfaces.

An Operation is any zero-argument callable returning an awaitable. Plain
closures work everywhere; ``BoundOperation`` is the explicit form that keeps
its captured arguments inspectable so queue entries and saga steps can be
described (and, with a durable store, serialized) by the host.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


@runtime_checkable
class RetryHook(Protocol):
    """Called before each backoff sleep with the error and attempt number."""

    def __call__(self, error: BaseException, attempt: int) -> None: ...


@runtime_checkable
class StateChangeHook(Protocol):
    """Called after a circuit breaker changes state."""

    def __call__(self, name: str, old_state: Any, new_state: Any) -> None: ...


@runtime_checkable
class CompensationFailureHook(Protocol):
    """Called when a saga compensation raises."""

    def __call__(self, step_name: str, error: BaseException) -> None: ...


def notify(hook: Optional[Callable[..., Any]], *args: Any) -> None:
    """Invoke an observability hook, logging (never raising) its errors."""
    if hook is None:
        return
    try:
        hook(*args)
    except Exception as e:
        logger.warning(
            f"Observability hook {getattr(hook, '__name__', hook)!r} raised "
            f"{type(e).__name__}: {e}"
        )


@dataclass(frozen=True)
class BoundOperation:
    """Coroutine function plus the arguments it will be called with.

    Example:
        ```python
        op = BoundOperation(send_receipt, args=(payment_id,), name="send_receipt")
        await queue.enqueue("emails", op, max_retries=5)
        ```
    """

    func: Callable[..., Awaitable[Any]]
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None

    async def __call__(self) -> Any:
        return await self.func(*self.args, **self.kwargs)

    @property
    def label(self) -> str:
        """Human readable name for logs."""
        return self.name or getattr(self.func, "__qualname__", repr(self.func))

    def describe(self) -> dict[str, Any]:
        """JSON-friendly description of the operation and its captured context."""
        return {
            "name": self.label,
            "func": f"{getattr(self.func, '__module__', '?')}.{getattr(self.func, '__qualname__', '?')}",
            "args": [repr(a) for a in self.args],
            "kwargs": {k: repr(v) for k, v in self.kwargs.items()},
        }


def operation_label(op: Callable[..., Any]) -> str:
    """Best-effort name for any operation callable."""
    if isinstance(op, BoundOperation):
        return op.label
    if isinstance(op, functools.partial):
        return operation_label(op.func)
    return getattr(op, "__qualname__", None) or getattr(op, "__name__", None) or repr(op)
