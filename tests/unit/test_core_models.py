"""Unit tests for core Pydantic models."""

import pytest
from pydantic import ValidationError

from lifeline.core.models import (
    BreakerPolicy,
    CircuitBreakerSnapshot,
    ProcessQueueResult,
    QueueStats,
    ResiliencePolicy,
    RetryPolicyModel,
    SagaResult,
    TransactionResult,
)


class TestTransactionResult:
    """Test TransactionResult model."""

    def test_success_result(self):
        result = TransactionResult(success=True, data={"id": 1}, attempts=2, duration=0.5)

        assert result.data == {"id": 1}
        assert result.error is None
        assert result.replayed is False
        assert result.unwrap() == {"id": 1}

    def test_failed_result_unwrap_raises(self):
        error = ConnectionError("db gone")
        result = TransactionResult(success=False, error=error, attempts=4)

        assert result.error is error
        with pytest.raises(ConnectionError):
            result.unwrap()

    def test_result_is_frozen(self):
        result = TransactionResult(success=True)

        with pytest.raises(ValidationError):
            result.success = False


class TestSagaResult:
    """Test SagaResult model."""

    def test_compensation_succeeded(self):
        result = SagaResult(
            success=False,
            completed_steps=2,
            failed_step="notify",
            compensated_steps=["charge", "reserve"],
        )

        assert result.compensation_succeeded is True

    def test_compensation_failures(self):
        result = SagaResult(
            success=False,
            completed_steps=1,
            compensation_failures={"charge": RuntimeError("refund failed")},
        )

        assert result.compensation_succeeded is False
        assert isinstance(result.compensation_failures["charge"], RuntimeError)


class TestSnapshotModels:
    def test_breaker_snapshot_defaults(self):
        snapshot = CircuitBreakerSnapshot(name="db", state="closed")

        assert snapshot.total_requests == 0
        assert snapshot.failure_rate == 0.0
        assert snapshot.opened_at is None
        assert snapshot.state_transitions == {}

    def test_queue_models_defaults(self):
        assert QueueStats().size == 0
        assert QueueStats().oldest_item is None
        assert ProcessQueueResult().processed == 0


class TestPolicyModels:
    """Test policy file models."""

    def test_breaker_policy_defaults(self):
        policy = BreakerPolicy(name="db")

        assert policy.failure_threshold == 5
        assert policy.success_threshold == 2
        assert policy.timeout == 60.0
        assert policy.volume_threshold == 10
        assert policy.error_threshold_percentage == 50.0
        assert policy.half_open_max_requests == 1

    def test_breaker_policy_rejects_zero_threshold(self):
        with pytest.raises(ValidationError):
            BreakerPolicy(name="db", failure_threshold=0)

    def test_breaker_policy_rejects_percentage_over_100(self):
        with pytest.raises(ValidationError):
            BreakerPolicy(name="db", error_threshold_percentage=150)

    def test_retry_policy_defaults(self):
        policy = RetryPolicyModel(name="email")

        assert policy.max_retries == 3
        assert policy.initial_delay == 1.0
        assert policy.max_delay == 30.0
        assert policy.backoff_multiplier == 2.0
        assert policy.jitter_ratio == 0.25
        assert policy.timeout is None
        assert policy.breaker is None

    def test_retry_policy_rejects_shrinking_backoff(self):
        with pytest.raises(ValidationError):
            RetryPolicyModel(name="email", backoff_multiplier=0.5)

    def test_retry_policy_rejects_negative_retries(self):
        with pytest.raises(ValidationError):
            RetryPolicyModel(name="email", max_retries=-1)

    def test_resilience_policy(self):
        policy = ResiliencePolicy(
            name="payments",
            version="1.0",
            breakers=[BreakerPolicy(name="gateway")],
            retry_policies=[RetryPolicyModel(name="charge", breaker="gateway")],
        )

        assert policy.description is None
        assert policy.breakers[0].name == "gateway"
        assert policy.retry_policies[0].breaker == "gateway"

    def test_resilience_policy_requires_version(self):
        with pytest.raises(ValidationError):
            ResiliencePolicy(name="payments")
