"""Example demonstrating retry, circuit breaker and fallback together."""

import asyncio

from lifeline import ResilienceContext, RetryPolicy
from lifeline.core.exceptions import RetryableError
from lifeline.resilience import CircuitBreakerConfig, CircuitOpenError


async def flaky_api_call(attempt_counter):
    """Simulates a flaky API that fails first 2 times."""
    attempt_counter[0] += 1
    print(f"  Attempt {attempt_counter[0]}...", end=" ")

    if attempt_counter[0] < 3:
        print("❌ Failed (simulated error)")
        raise RetryableError("API temporarily unavailable")

    print("✅ Success!")
    return {"status": "ok", "data": "API response"}


async def broken_api_call():
    raise ConnectionError("upstream unreachable")


async def main():
    context = ResilienceContext()
    print("🔄 Testing Retry Mechanism\n")

    # Example 1: Successful retry
    print("Example 1: Flaky API that succeeds on 3rd attempt")
    attempt_counter = [0]
    executor = context.retry_executor(
        RetryPolicy(max_retries=4, initial_delay=0.5, jitter_ratio=0.1)
    )
    result = await executor.execute(lambda: flaky_api_call(attempt_counter))
    print(f"  Result: {result}\n")

    # Example 2: Breaker opens and the retry loop stops early
    print("Example 2: Circuit breaker cuts retries short")
    context.breaker("pricing", CircuitBreakerConfig(failure_threshold=2, timeout_seconds=5))
    executor = context.retry_executor(
        RetryPolicy(max_retries=5, initial_delay=0.1), breaker="pricing"
    )
    try:
        await executor.execute(broken_api_call)
    except CircuitOpenError as e:
        print(f"  Stopped: {e}\n")

    # Example 3: Fallback value while the breaker is open
    print("Example 3: Fallback while the circuit is open")
    fallback = context.fallback(RetryPolicy(max_retries=1, initial_delay=0.1), breaker="pricing")
    price = await fallback.call(broken_api_call, fallback_value={"price": 999, "stale": True})
    print(f"  Result: {price}\n")

    print("✅ All retry examples completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
