"""Unit tests for YAML policy parser."""

import pytest

from lifeline.context import ResilienceContext
from lifeline.core.exceptions import ConfigurationError, ValidationError
from lifeline.core.models import ResiliencePolicy
from lifeline.parsers import (
    apply_policy,
    parse_policy,
    parse_policy_from_dict,
    validate_policy,
)
from lifeline.resilience import (
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    RetryExecutor,
)


class TestYAMLParser:
    """Test YAML policy parser."""

    def test_parse_policy(self, fixtures_dir):
        """Test parsing a complete valid policy."""
        policy = parse_policy(fixtures_dir / "policies" / "payments.yaml")

        assert isinstance(policy, ResiliencePolicy)
        assert policy.name == "payments"
        assert policy.version == "1.0.0"
        assert policy.description == "Payment gateway and notification policies"

    def test_parse_breakers(self, fixtures_dir):
        policy = parse_policy(fixtures_dir / "policies" / "payments.yaml")

        gateway, email = policy.breakers
        assert gateway.name == "payment_gateway"
        assert gateway.failure_threshold == 3
        assert gateway.timeout == 30.0
        assert email.failure_threshold == 5
        assert email.success_threshold == 2  # default

    def test_parse_retry_policies(self, fixtures_dir):
        policy = parse_policy(fixtures_dir / "policies" / "payments.yaml")

        charge = policy.retry_policies[0]
        assert charge.max_retries == 2
        assert charge.initial_delay == 0.5
        assert charge.jitter_ratio == 0.1
        assert charge.timeout == 10.0
        assert charge.breaker == "payment_gateway"

    def test_parse_minimal_policy(self, fixtures_dir):
        policy = parse_policy(fixtures_dir / "policies" / "minimal.yaml")

        assert policy.breakers == []
        assert policy.retry_policies == []

    def test_file_not_found(self):
        with pytest.raises(ConfigurationError, match="not found"):
            parse_policy("does/not/exist.yaml")

    def test_malformed_yaml(self, fixtures_dir):
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            parse_policy(fixtures_dir / "policies" / "malformed.yaml")

    def test_invalid_values(self, fixtures_dir):
        with pytest.raises(ValidationError):
            parse_policy(fixtures_dir / "policies" / "invalid_values.yaml")

    def test_unknown_breaker_reference(self, fixtures_dir):
        with pytest.raises(ValidationError, match="undefined breaker 'cache'"):
            parse_policy(fixtures_dir / "policies" / "unknown_breaker.yaml")

    def test_validate_policy(self, fixtures_dir):
        assert validate_policy(fixtures_dir / "policies" / "payments.yaml") is True
        assert validate_policy(fixtures_dir / "policies" / "unknown_breaker.yaml") is False
        assert validate_policy(fixtures_dir / "policies" / "missing.yaml") is False


class TestParsePolicyFromDict:
    def test_valid_dict(self):
        policy = parse_policy_from_dict(
            {"name": "p", "version": "1", "breakers": [{"name": "db"}]}
        )

        assert policy.breakers[0].name == "db"

    def test_duplicate_breaker_names(self):
        with pytest.raises(ValidationError, match="Duplicate breaker"):
            parse_policy_from_dict(
                {"name": "p", "version": "1", "breakers": [{"name": "db"}, {"name": "db"}]}
            )

    def test_max_delay_below_initial_delay(self):
        with pytest.raises(ValidationError, match="max_delay"):
            parse_policy_from_dict(
                {
                    "name": "p",
                    "version": "1",
                    "retry_policies": [
                        {"name": "r", "initial_delay": 5, "max_delay": 1}
                    ],
                }
            )

    def test_missing_required_fields(self):
        with pytest.raises(ValidationError):
            parse_policy_from_dict({"name": "p"})


class TestApplyPolicy:
    def test_registers_breakers_and_builds_retry_policies(self, fixtures_dir):
        context = ResilienceContext()
        policy = parse_policy(fixtures_dir / "policies" / "payments.yaml")

        executors = apply_policy(policy, context)

        assert context.breakers.names() == ["payment_gateway", "email_provider"]
        gateway = context.breakers.get("payment_gateway")
        assert gateway.config.failure_threshold == 3
        assert gateway.config.timeout_seconds == 30.0

        charge = executors["charge"]
        assert isinstance(charge, RetryExecutor)
        assert charge.policy.max_retries == 2
        assert charge.policy.timeout == 10.0
        assert charge.breaker == "payment_gateway"
        assert charge.registry is context.breakers
        assert executors["send_receipt"].breaker == "email_provider"

    @pytest.mark.asyncio
    async def test_executor_runs_behind_its_breaker(self, fixtures_dir, sleeps):
        context = ResilienceContext()
        executors = apply_policy(
            parse_policy(fixtures_dir / "policies" / "payments.yaml"), context, sleep=sleeps
        )
        calls = 0

        async def charge():
            nonlocal calls
            calls += 1
            raise ConnectionError("gateway down")

        # Three attempts reach payment_gateway's failure_threshold of 3
        with pytest.raises(ConnectionError):
            await executors["charge"].execute(charge)

        gateway = context.breakers.get("payment_gateway")
        assert gateway.state == CircuitState.OPEN
        assert calls == 3

        with pytest.raises(CircuitOpenError):
            await executors["charge"].execute(charge)
        assert calls == 3

    def test_existing_breakers_keep_their_config(self, fixtures_dir):
        context = ResilienceContext()
        context.breaker("payment_gateway", CircuitBreakerConfig(failure_threshold=9))

        apply_policy(parse_policy(fixtures_dir / "policies" / "payments.yaml"), context)

        assert context.breakers.get("payment_gateway").config.failure_threshold == 9
