"""Administrative operations for a host's HTTP or ops layer.

Every method is a plain call returning plain data (pydantic models or
dicts); routing, authentication and serialization belong to the host.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from lifeline.core.models import (
    CircuitBreakerSnapshot,
    IdempotencyStats,
    ProcessQueueResult,
    QueueStats,
)
from lifeline.resilience.circuit_breaker import CircuitState

from .context import ResilienceContext

logger = logging.getLogger(__name__)


class AdminSurface:
    """Inspect and reset the state held by a ResilienceContext."""

    def __init__(self, context: ResilienceContext):
        self.context = context

    def list_breakers(self) -> Dict[str, CircuitBreakerSnapshot]:
        return self.context.breakers.get_all_stats()

    def get_breaker(self, name: str) -> CircuitBreakerSnapshot:
        """Snapshot of one breaker.

        Raises:
            KeyError: If no breaker is registered under ``name``
        """
        breaker = self.context.breakers.get(name)
        if breaker is None:
            raise KeyError(f"Circuit breaker '{name}' not found")
        return breaker.get_stats()

    async def reset_breaker(self, name: str) -> CircuitBreakerSnapshot:
        """Force a breaker back to CLOSED with fresh statistics.

        Raises:
            KeyError: If no breaker is registered under ``name``
        """
        breaker = self.context.breakers.get(name)
        if breaker is None:
            raise KeyError(f"Circuit breaker '{name}' not found")
        await breaker.reset()
        logger.info(f"Circuit breaker '{name}' reset by admin")
        return breaker.get_stats()

    async def reset_all_breakers(self) -> int:
        await self.context.breakers.reset_all()
        count = len(self.context.breakers)
        logger.info(f"All {count} circuit breakers reset by admin")
        return count

    async def list_queues(self) -> Dict[str, QueueStats]:
        return await self.context.failed_operations.get_stats()

    async def queue_entries(self, queue_name: str) -> List[Dict[str, Any]]:
        return await self.context.failed_operations.peek(queue_name)

    async def process_queue(self, queue_name: str) -> ProcessQueueResult:
        logger.info(f"Manual processing of queue '{queue_name}' requested")
        return await self.context.failed_operations.process_queue(queue_name)

    async def clear_queue(self, queue_name: str) -> int:
        return await self.context.failed_operations.clear_queue(queue_name)

    async def idempotency_stats(self) -> IdempotencyStats:
        return await self.context.idempotency.get_stats()

    async def clear_idempotency_cache(self) -> None:
        await self.context.idempotency.clear()
        logger.warning("Idempotency cache cleared by admin")

    async def health_summary(self) -> Dict[str, Any]:
        """Combined view: breaker counts, queue backlog and idempotency records."""
        breakers = self.list_breakers()
        queues = await self.list_queues()
        idempotency = await self.idempotency_stats()

        open_count = sum(
            1 for snapshot in breakers.values() if snapshot.state == CircuitState.OPEN.value
        )
        half_open_count = sum(
            1
            for snapshot in breakers.values()
            if snapshot.state == CircuitState.HALF_OPEN.value
        )
        total_queued = sum(stats.size for stats in queues.values())

        return {
            "status": "degraded" if open_count or total_queued else "healthy",
            "circuit_breakers": {
                "total": len(breakers),
                "open": open_count,
                "half_open": half_open_count,
                "healthy": len(breakers) - open_count - half_open_count,
            },
            "queues": {
                "queue_count": len(queues),
                "total_queued": total_queued,
                "dropped": sum(stats.dropped for stats in queues.values()),
            },
            "transactions": {
                "completed_with_idempotency": idempotency.completed_transactions,
                "in_flight": idempotency.in_flight,
            },
            "details": {
                "circuit_breakers": {
                    name: snapshot.model_dump() for name, snapshot in breakers.items()
                },
                "queues": {
                    name: stats.model_dump(mode="json") for name, stats in queues.items()
                },
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
