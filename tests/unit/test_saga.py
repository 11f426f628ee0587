"""Tests for saga coordination and compensation."""

from unittest.mock import MagicMock

import pytest

from lifeline.core.exceptions import NonRetryableError
from lifeline.recovery import SagaCoordinator, SagaStep, TransactionManager


@pytest.fixture
def coordinator(sleeps):
    return SagaCoordinator(TransactionManager(sleep=sleeps))


def make_step(name, log, fail=False, compensation_error=None):
    async def action():
        log.append(f"run {name}")
        if fail:
            raise NonRetryableError(f"{name} rejected")
        return f"{name} result"

    async def compensate():
        log.append(f"undo {name}")
        if compensation_error is not None:
            raise compensation_error

    return SagaStep(name, action, compensate)


class TestSagaCoordinator:
    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, coordinator):
        log = []

        result = await coordinator.execute_saga(
            [make_step("reserve", log), make_step("charge", log)]
        )

        assert result.success is True
        assert result.completed_steps == 2
        assert result.results == ["reserve result", "charge result"]
        assert log == ["run reserve", "run charge"]

    @pytest.mark.asyncio
    async def test_failure_compensates_completed_steps_in_reverse(self, coordinator):
        """A and B succeed, C fails: compensate B then A, never C."""
        log = []

        result = await coordinator.execute_saga(
            [make_step("A", log), make_step("B", log), make_step("C", log, fail=True)]
        )

        assert result.success is False
        assert result.completed_steps == 2
        assert result.failed_step == "C"
        assert isinstance(result.error, NonRetryableError)
        assert result.compensated_steps == ["B", "A"]
        assert result.compensation_succeeded is True
        assert log == ["run A", "run B", "run C", "undo B", "undo A"]

    @pytest.mark.asyncio
    async def test_first_step_failure_compensates_nothing(self, coordinator):
        log = []

        result = await coordinator.execute_saga(
            [make_step("A", log, fail=True), make_step("B", log)]
        )

        assert result.completed_steps == 0
        assert result.compensated_steps == []
        assert log == ["run A"]

    @pytest.mark.asyncio
    async def test_compensation_failure_does_not_stop_sweep(self, sleeps):
        log = []
        hook = MagicMock()
        refund_error = RuntimeError("refund API down")
        coordinator = SagaCoordinator(
            TransactionManager(sleep=sleeps), on_compensation_failure=hook
        )

        result = await coordinator.execute_saga(
            [
                make_step("reserve", log),
                make_step("charge", log, compensation_error=refund_error),
                make_step("notify", log, fail=True),
            ]
        )

        assert result.success is False
        assert result.compensated_steps == ["reserve"]
        assert result.compensation_failures == {"charge": refund_error}
        assert result.compensation_succeeded is False
        assert log[-2:] == ["undo charge", "undo reserve"]
        hook.assert_called_once_with("charge", refund_error)

    @pytest.mark.asyncio
    async def test_step_retry_budget(self, coordinator, sleeps):
        calls = [0]

        async def flaky():
            calls[0] += 1
            if calls[0] < 3:
                raise ConnectionError("provider timeout")
            return "sent"

        async def noop():
            return None

        result = await coordinator.execute_saga(
            [SagaStep("email", flaky, noop, max_retries=2)]
        )

        assert result.success is True
        assert result.results == ["sent"]
        assert calls[0] == 3
        assert len(sleeps.delays) == 2

    @pytest.mark.asyncio
    async def test_empty_saga(self, coordinator):
        result = await coordinator.execute_saga([])

        assert result.success is True
        assert result.completed_steps == 0
