"""Fallback strategies for failed operations.

Provides:
- ``with_fallback``: primary call backed by cache, fallback function and
  fallback value, in that order
- ``graceful_degrade``: ordered list of sources, first success wins
- ``fallback_protected``: decorator form of ``with_fallback``
- ``FallbackOrchestrator``: the above wrapped around retry and a breaker
- ``DefaultValueProvider``: named defaults for terminal fallbacks
"""

import asyncio
import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, TypeVar, Union

from lifeline.core.config import get_config
from lifeline.core.exceptions import AllSourcesFailedError
from lifeline.core.operation import operation_label
from lifeline.core.store import KeyValueStore

from .circuit_breaker import CircuitBreakerRegistry
from .retry import RetryExecutor, RetryPolicy, Sleep

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_KEY_PREFIX = "fallback:"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()
"""Sentinel meaning "no fallback value", so None stays a usable fallback."""

FallbackFn = Callable[[], Union[T, Awaitable[T]]]


async def _call_maybe_async(fn: Callable[[], Any]) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


async def with_fallback(
    primary: Callable[[], Awaitable[T]],
    *,
    fallback_fn: Optional[FallbackFn] = None,
    fallback_value: Any = MISSING,
    cache: Optional[KeyValueStore] = None,
    cache_key: Optional[str] = None,
    cache_ttl: Optional[float] = None,
) -> T:
    """Run ``primary``; on failure degrade to cache, fallback_fn, fallback_value.

    Caching is enabled when both ``cache`` and ``cache_key`` are given. A
    successful primary result (other than None) is stored for ``cache_ttl``
    seconds under ``CACHE_KEY_PREFIX + cache_key``.

    Raises:
        AllSourcesFailedError: If no degradation path produced a value
    """
    caching = cache is not None and cache_key is not None
    if caching:
        cache_key = CACHE_KEY_PREFIX + cache_key
    if cache_ttl is None:
        cache_ttl = get_config().fallback_cache_ttl

    try:
        result = await primary()
    except Exception as e:
        last_error: BaseException = e
        logger.warning(
            f"Primary operation {operation_label(primary)} failed, using fallback: "
            f"{type(e).__name__}: {e}"
        )
    else:
        if caching and result is not None:
            try:
                await cache.set(cache_key, result, cache_ttl)
            except Exception as e:
                logger.error(f"Failed to cache result under {cache_key!r}: {e}")
        return result

    if caching:
        try:
            cached = await cache.get(cache_key)
        except Exception as e:
            logger.error(f"Failed to read cached result {cache_key!r}: {e}")
            cached = None
        if cached is not None:
            logger.info(f"Using cached fallback result for {cache_key!r}")
            return cached

    if fallback_fn is not None:
        try:
            return await _call_maybe_async(fallback_fn)
        except Exception as e:
            last_error = e
            logger.error(f"Fallback function also failed: {type(e).__name__}: {e}")

    if fallback_value is not MISSING:
        return fallback_value

    raise AllSourcesFailedError(
        f"Primary operation and all fallbacks failed: {type(last_error).__name__}: {last_error}",
        last_error=last_error,
    ) from last_error


async def graceful_degrade(sources: Sequence[Callable[[], Awaitable[T]]]) -> T:
    """Try sources strictly in order and return the first success.

    Put a source that cannot fail (a static default) last. If every source
    fails the last error is raised as-is.

    Example:
        ```python
        profile = await graceful_degrade([
            lambda: primary_db.fetch(user_id),
            lambda: replica_db.fetch(user_id),
            lambda: cache.fetch(user_id),
        ])
        ```
    """
    if not sources:
        raise AllSourcesFailedError("graceful_degrade called with no sources")

    last_error: Optional[BaseException] = None
    for index, source in enumerate(sources):
        try:
            result = await source()
        except Exception as e:
            last_error = e
            logger.warning(
                f"Graceful degradation: source #{index} failed "
                f"({len(sources) - index - 1} remaining): {type(e).__name__}: {e}"
            )
            continue
        if index > 0:
            logger.warning(f"Graceful degradation: succeeded with fallback #{index}")
        return result

    logger.error(f"All {len(sources)} graceful degradation sources failed")
    raise last_error


def fallback_protected(
    *,
    fallback_fn: Optional[FallbackFn] = None,
    fallback_value: Any = MISSING,
    cache: Optional[KeyValueStore] = None,
    cache_key: Union[str, Callable[..., str], None] = None,
    cache_ttl: Optional[float] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator running every call of a coroutine function through with_fallback.

    ``cache_key`` may be a callable receiving the call's arguments, so each
    distinct call is cached separately.

    Example:
        ```python
        @fallback_protected(
            fallback_value=[],
            cache=context.cache,
            cache_key=lambda user_id: f"orders:{user_id}",
        )
        async def recent_orders(user_id: str) -> list:
            return await orders_api.recent(user_id)
        ```
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            key = cache_key(*args, **kwargs) if callable(cache_key) else cache_key
            return await with_fallback(
                functools.partial(func, *args, **kwargs),
                fallback_fn=fallback_fn,
                fallback_value=fallback_value,
                cache=cache,
                cache_key=key,
                cache_ttl=cache_ttl,
            )

        return wrapper

    return decorator


class FallbackOrchestrator:
    """Primary path through retry and breaker, then cache/default/alternates.

    Example:
        ```python
        orchestrator = FallbackOrchestrator(
            RetryPolicy(max_retries=2),
            breaker="pricing_db",
            registry=context.breakers,
            cache=context.cache,
        )
        fees = await orchestrator.call(
            lambda: db.load_fee_schedule(),
            cache_key="fees:v1",
            fallback_value=DEFAULT_FEES,
        )
        ```
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        breaker: Optional[str] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        cache: Optional[KeyValueStore] = None,
        cache_ttl: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.executor = RetryExecutor(
            policy, breaker=breaker, registry=registry, sleep=sleep
        )
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def call(
        self,
        primary: Callable[[], Awaitable[T]],
        *,
        cache_key: Optional[str] = None,
        fallback_fn: Optional[FallbackFn] = None,
        fallback_value: Any = MISSING,
        alternates: Sequence[Callable[[], Awaitable[T]]] = (),
    ) -> T:
        """Run ``primary`` with retry, then degrade.

        ``alternates`` are tried in order (via graceful_degrade) before
        ``fallback_fn`` and ``fallback_value``.
        """

        async def protected() -> T:
            return await self.executor.execute(primary)

        chained_fn = fallback_fn
        if alternates:

            async def alternate_sources() -> T:
                sources = list(alternates)
                if fallback_fn is not None:
                    sources.append(lambda: _call_maybe_async(fallback_fn))
                return await graceful_degrade(sources)

            chained_fn = alternate_sources

        return await with_fallback(
            protected,
            fallback_fn=chained_fn,
            fallback_value=fallback_value,
            cache=self.cache,
            cache_key=cache_key,
            cache_ttl=self.cache_ttl,
        )

    async def degrade(self, sources: Sequence[Callable[[], Awaitable[T]]]) -> T:
        """graceful_degrade where the first source gets retry protection."""
        if not sources:
            return await graceful_degrade(sources)
        head, *rest = sources

        async def protected() -> T:
            return await self.executor.execute(head)

        return await graceful_degrade([protected, *rest])


class DefaultValueProvider:
    """Named default values used as terminal fallbacks."""

    def __init__(self) -> None:
        self._defaults: Dict[str, Any] = {}

    def register(self, key: str, value: Any) -> None:
        """Register a default value for a key."""
        self._defaults[key] = value

    def get(self, key: str, fallback: Any = MISSING) -> Any:
        """Default for ``key``, else ``fallback``.

        Raises:
            KeyError: If neither exists
        """
        if key in self._defaults:
            return self._defaults[key]
        if fallback is not MISSING:
            return fallback
        raise KeyError(f"No default value registered for key: {key}")

    def has(self, key: str) -> bool:
        return key in self._defaults

    def remove(self, key: str) -> None:
        self._defaults.pop(key, None)

    def clear(self) -> None:
        self._defaults.clear()
