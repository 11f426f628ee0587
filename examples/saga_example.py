"""Example demonstrating a booking saga with compensation and a replay queue."""

import asyncio

from lifeline import BoundOperation, ResilienceContext, SagaStep
from lifeline.core.exceptions import NonRetryableError


async def reserve_slot():
    print("  📅 Slot reserved")
    return "slot_42"


async def release_slot():
    print("  ↩️  Slot released")


async def charge_payment():
    print("  💳 Payment captured")
    return "pay_7"


async def refund_payment():
    print("  ↩️  Payment refunded")


async def notify_accountant():
    raise NonRetryableError("accountant has no email on file")


async def retract_notice():
    print("  ↩️  Notice retracted")


async def send_apology(booking_id):
    print(f"  ✉️  Apology sent for {booking_id}")


async def main():
    context = ResilienceContext()
    saga = context.saga_coordinator()

    print("🧾 Running booking saga\n")
    result = await saga.execute_saga(
        [
            SagaStep("reserve_slot", reserve_slot, release_slot),
            SagaStep("charge_payment", charge_payment, refund_payment),
            SagaStep("notify_accountant", notify_accountant, retract_notice),
        ]
    )

    print(f"\n  Success: {result.success}")
    print(f"  Failed step: {result.failed_step}")
    print(f"  Compensated: {result.compensated_steps}\n")

    print("📬 Queueing follow-up for later replay")
    await context.failed_operations.enqueue(
        "emails",
        BoundOperation(send_apology, args=("booking_1",), name="send_apology"),
        metadata={"saga_failed_step": result.failed_step},
    )
    processed = await context.failed_operations.process_queue("emails")
    print(f"  Processed: {processed.model_dump()}")


if __name__ == "__main__":
    asyncio.run(main())
