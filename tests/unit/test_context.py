"""Tests for ResilienceContext and the admin surface."""

from unittest.mock import AsyncMock

import pytest

from lifeline import AdminSurface, ResilienceContext
from lifeline.recovery import SagaStep
from lifeline.resilience import CircuitBreakerConfig, RetryPolicy


@pytest.fixture
def context(test_config):
    return ResilienceContext(test_config)


async def fail():
    raise ConnectionError("down")


class TestResilienceContext:
    def test_uses_config_for_defaults(self, context):
        assert context.failed_operations.default_max_retries == 2
        assert context.idempotency.ttl == 60
        assert context.retry_policy().initial_delay == 0.01
        assert context.retry_policy(max_retries=9).max_retries == 9

    def test_breaker_is_shared(self, context):
        assert context.breaker("db") is context.breaker("db")
        assert context.breakers.get("db").config.failure_threshold == 5

    @pytest.mark.asyncio
    async def test_executor_uses_context_breakers(self, context, sleeps):
        context.breaker("db", CircuitBreakerConfig(failure_threshold=1))
        executor = context.retry_executor(RetryPolicy(max_retries=3), breaker="db", sleep=sleeps)

        with pytest.raises(Exception):
            await executor.execute(fail)

        assert context.breakers.get("db").is_open()

    @pytest.mark.asyncio
    async def test_transaction_managers_share_idempotency(self, context, sleeps):
        calls = [0]

        async def work(unit):
            calls[0] += 1
            return "once"

        first = context.transaction_manager(sleep=sleeps)
        second = context.transaction_manager(sleep=sleeps)

        await first.execute(work, idempotency_key="k")
        result = await second.execute(work, idempotency_key="k")

        assert calls[0] == 1
        assert result.replayed is True

    @pytest.mark.asyncio
    async def test_fallback_caches_in_context_store(self, context, sleeps):
        orchestrator = context.fallback(RetryPolicy(max_retries=0), sleep=sleeps)

        await orchestrator.call(AsyncMock(return_value="fresh"), cache_key="rates")
        result = await orchestrator.call(fail, cache_key="rates")

        assert result == "fresh"

    @pytest.mark.asyncio
    async def test_saga_coordinator(self, context):
        async def step():
            return "ok"

        coordinator = context.saga_coordinator()
        result = await coordinator.execute_saga([SagaStep("only", step, step)])

        assert result.success is True


class TestAdminSurface:
    @pytest.mark.asyncio
    async def test_list_and_reset_breakers(self, context):
        admin = AdminSurface(context)
        db = context.breaker("db", CircuitBreakerConfig(failure_threshold=1))
        with pytest.raises(ConnectionError):
            await db.execute(fail)

        assert admin.list_breakers()["db"].state == "open"
        assert admin.get_breaker("db").failed_requests == 1

        snapshot = await admin.reset_breaker("db")

        assert snapshot.state == "closed"
        assert await admin.reset_all_breakers() == 1

    @pytest.mark.asyncio
    async def test_unknown_breaker(self, context):
        admin = AdminSurface(context)

        with pytest.raises(KeyError):
            admin.get_breaker("missing")
        with pytest.raises(KeyError):
            await admin.reset_breaker("missing")

    @pytest.mark.asyncio
    async def test_queue_operations(self, context):
        admin = AdminSurface(context)
        await context.failed_operations.enqueue("emails", AsyncMock())
        await context.failed_operations.enqueue("emails", fail)

        assert (await admin.list_queues())["emails"].size == 2
        assert len(await admin.queue_entries("emails")) == 2

        result = await admin.process_queue("emails")
        assert result.succeeded == 1
        assert result.requeued == 1

        assert await admin.clear_queue("emails") == 1

    @pytest.mark.asyncio
    async def test_idempotency_inspection(self, context):
        admin = AdminSurface(context)

        async def work(unit):
            return 1

        await context.transaction_manager().execute(work, idempotency_key="order-1")

        stats = await admin.idempotency_stats()
        assert stats.keys == ["order-1"]

        await admin.clear_idempotency_cache()
        assert (await admin.idempotency_stats()).completed_transactions == 0

    @pytest.mark.asyncio
    async def test_health_summary(self, context):
        admin = AdminSurface(context)
        context.breaker("cache")
        db = context.breaker("db", CircuitBreakerConfig(failure_threshold=1))

        healthy = await admin.health_summary()
        assert healthy["status"] == "healthy"

        with pytest.raises(ConnectionError):
            await db.execute(fail)
        await context.failed_operations.enqueue("emails", AsyncMock())

        summary = await admin.health_summary()

        assert summary["status"] == "degraded"
        assert summary["circuit_breakers"] == {
            "total": 2, "open": 1, "half_open": 0, "healthy": 1
        }
        assert summary["queues"]["total_queued"] == 1
        assert summary["details"]["circuit_breakers"]["db"]["state"] == "open"
        assert "timestamp" in summary
