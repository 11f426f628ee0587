"""Key/value persistence contract used by the recovery components.

The idempotency store, fallback cache and failed-operation queue only need
``get``, ``set`` and ``delete``. A durable store (Redis, a database table)
can be substituted by implementing ``KeyValueStore``.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract base class for recovery state persistence."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl`` seconds if given."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        pass

    async def keys(self, prefix: str = "") -> List[str]:
        """Live keys starting with ``prefix``. Optional for durable backends."""
        raise NotImplementedError(f"{type(self).__name__} does not support key listing")


class InMemoryStore(KeyValueStore):
    """Process-local store with lazy TTL expiry.

    Values are kept as Python objects, so callables survive round trips.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> List[str]:
        async with self._lock:
            expired = [k for k, (_, exp) in self._data.items() if self._expired(exp)]
            for k in expired:
                del self._data[k]
            return [k for k in self._data if k.startswith(prefix)]

    async def clear(self) -> None:
        """Drop everything."""
        async with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
