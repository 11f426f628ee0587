"""Tests for the failed-operation queue."""

from unittest.mock import AsyncMock

import pytest

from lifeline.core.operation import BoundOperation
from lifeline.core.store import InMemoryStore
from lifeline.recovery import FailedOperationQueue


@pytest.fixture
def queue():
    return FailedOperationQueue(InMemoryStore(), default_max_retries=3)


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_tracks_size_and_names(self, queue):
        await queue.enqueue("emails", AsyncMock(), metadata={"to": "a@example.com"})
        await queue.enqueue("emails", AsyncMock())
        await queue.enqueue("webhooks", AsyncMock())

        assert await queue.get_queue_size("emails") == 2
        assert await queue.get_queue_size("unknown") == 0
        assert queue.get_queue_names() == ["emails", "webhooks"]

    @pytest.mark.asyncio
    async def test_default_attempts_from_queue(self, queue):
        entry = await queue.enqueue("emails", AsyncMock())

        assert entry.attempts_remaining == 3

    @pytest.mark.asyncio
    async def test_rejects_zero_retries(self, queue):
        with pytest.raises(ValueError):
            await queue.enqueue("emails", AsyncMock(), max_retries=0)


class TestProcessQueue:
    @pytest.mark.asyncio
    async def test_success_removes_entry(self, queue):
        op = AsyncMock(return_value="sent")
        await queue.enqueue("emails", op)

        result = await queue.process_queue("emails")

        assert result.processed == 1
        assert result.succeeded == 1
        assert await queue.get_queue_size("emails") == 0
        op.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_entry_dropped_after_max_retries(self, queue):
        """With max_retries=2 the entry survives one pass and is gone after the second."""
        op = AsyncMock(side_effect=ConnectionError("smtp down"))
        await queue.enqueue("emails", op, max_retries=2)

        first = await queue.process_queue("emails")
        assert first.requeued == 1
        assert await queue.get_queue_size("emails") == 1

        second = await queue.process_queue("emails")
        assert second.failed == 1
        assert await queue.get_queue_size("emails") == 0

        stats = await queue.get_stats()
        assert stats["emails"].dropped == 1
        assert op.await_count == 2

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, queue):
        await queue.enqueue("jobs", AsyncMock(return_value=1))
        await queue.enqueue("jobs", AsyncMock(side_effect=RuntimeError("again")))
        await queue.enqueue("jobs", AsyncMock(side_effect=RuntimeError("last")), max_retries=1)

        result = await queue.process_queue("jobs")

        assert result.processed == 3
        assert result.succeeded == 1
        assert result.requeued == 1
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_entries_enqueued_during_processing_are_kept(self, queue):
        late = AsyncMock()

        async def enqueue_more():
            await queue.enqueue("emails", late)

        await queue.enqueue("emails", enqueue_more)

        result = await queue.process_queue("emails")

        assert result.succeeded == 1
        assert await queue.get_queue_size("emails") == 1
        late.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_queue(self, queue):
        result = await queue.process_queue("nothing")

        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_process_all(self, queue):
        await queue.enqueue("a", AsyncMock())
        await queue.enqueue("b", AsyncMock())

        results = await queue.process_all()

        assert set(results) == {"a", "b"}
        assert all(r.succeeded == 1 for r in results.values())


class TestQueueInspection:
    @pytest.mark.asyncio
    async def test_stats_oldest_item(self, queue):
        first = await queue.enqueue("emails", AsyncMock())
        await queue.enqueue("emails", AsyncMock())

        stats = await queue.get_stats()

        assert stats["emails"].size == 2
        assert stats["emails"].oldest_item == first.enqueued_at

    @pytest.mark.asyncio
    async def test_peek_describes_bound_operations(self, queue):
        async def send_receipt(payment_id):
            return payment_id

        await queue.enqueue(
            "emails",
            BoundOperation(send_receipt, args=("pay_1",), name="send_receipt"),
            metadata={"user": 7},
        )

        [entry] = await queue.peek("emails")

        assert entry["operation"]["name"] == "send_receipt"
        assert entry["operation"]["args"] == ["'pay_1'"]
        assert entry["metadata"] == {"user": 7}
        assert entry["attempts_remaining"] == 3

    @pytest.mark.asyncio
    async def test_clear_queue(self, queue):
        await queue.enqueue("emails", AsyncMock())
        await queue.enqueue("emails", AsyncMock())

        removed = await queue.clear_queue("emails")

        assert removed == 2
        assert await queue.get_queue_size("emails") == 0
        assert "emails" not in queue.get_queue_names()
