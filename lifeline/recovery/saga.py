"""Saga coordinator: ordered steps with reverse-order compensation.

Steps run one at a time through the TransactionManager. When a step fails
terminally, every step that already completed is compensated, newest first.
A failing compensation is logged and reported but does not stop the sweep.
Compensations must be idempotent and tolerate partially applied state.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from lifeline.core.models import SagaResult
from lifeline.core.operation import CompensationFailureHook, notify
from lifeline.core.types import SagaStatus

from .transaction import TransactionManager, UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SagaStep:
    """One local transaction and the action that undoes it."""

    name: str
    action: Callable[[], Awaitable[Any]]
    compensate: Callable[[], Awaitable[Any]]
    max_retries: Optional[int] = None
    """Retry budget for the action; None uses the manager's policy."""
    timeout: Optional[float] = None


class SagaCoordinator:
    """Runs SagaSteps in order and compensates on failure.

    Example:
        ```python
        saga = SagaCoordinator(manager)
        result = await saga.execute_saga([
            SagaStep("reserve_slot", reserve, release),
            SagaStep("charge_payment", charge, refund),
            SagaStep("notify_accountant", notify_ca, retract_notice),
        ])
        if not result.success:
            log_failure(result.failed_step, result.error)
        ```
    """

    def __init__(
        self,
        manager: Optional[TransactionManager] = None,
        on_compensation_failure: Optional[CompensationFailureHook] = None,
    ):
        self.manager = manager or TransactionManager()
        self.on_compensation_failure = on_compensation_failure

    async def execute_saga(self, steps: Sequence[SagaStep]) -> SagaResult:
        """Execute steps in order; compensate completed steps on failure."""
        saga_id = str(uuid.uuid4())
        completed: List[SagaStep] = []
        results: List[Any] = []

        logger.info(f"Starting saga {saga_id}: {len(steps)} steps")

        for index, step in enumerate(steps):
            logger.info(
                f"Saga {saga_id}: executing step {index + 1}/{len(steps)} '{step.name}'"
            )

            outcome = await self.manager.execute(
                _step_work(step),
                max_retries=step.max_retries,
                timeout=step.timeout,
            )

            if outcome.success:
                completed.append(step)
                results.append(outcome.data)
                continue

            logger.error(
                f"Saga {saga_id}: step '{step.name}' failed: "
                f"{type(outcome.error).__name__}: {outcome.error}"
            )
            compensated, failures = await self._compensate(saga_id, completed)
            status = (
                SagaStatus.PARTIALLY_COMPENSATED if failures else SagaStatus.COMPENSATED
            )
            logger.warning(f"Saga {saga_id} finished {status.value}")
            return SagaResult(
                success=False,
                completed_steps=index,
                error=outcome.error,
                failed_step=step.name,
                compensated_steps=compensated,
                compensation_failures=failures,
                results=results,
            )

        logger.info(f"Saga {saga_id} {SagaStatus.COMPLETED.value}: {len(steps)} steps")
        return SagaResult(success=True, completed_steps=len(steps), results=results)

    async def _compensate(
        self, saga_id: str, completed: List[SagaStep]
    ) -> tuple[List[str], Dict[str, BaseException]]:
        """Run compensations for completed steps in reverse order."""
        compensated: List[str] = []
        failures: Dict[str, BaseException] = {}

        if not completed:
            return compensated, failures

        logger.warning(
            f"Saga {saga_id}: compensating {len(completed)} completed steps"
        )

        for step in reversed(completed):
            try:
                logger.info(f"Saga {saga_id}: compensating '{step.name}'")
                await step.compensate()
            except Exception as e:
                logger.error(
                    f"Saga {saga_id}: compensation failed for '{step.name}': "
                    f"{type(e).__name__}: {e}"
                )
                failures[step.name] = e
                notify(self.on_compensation_failure, step.name, e)
                continue
            compensated.append(step.name)

        return compensated, failures


def _step_work(step: SagaStep) -> Callable[[UnitOfWork], Awaitable[Any]]:
    async def work(unit: UnitOfWork) -> Any:
        return await step.action()

    work.__qualname__ = f"saga_step[{step.name}]"
    return work
