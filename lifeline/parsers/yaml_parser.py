"""YAML resilience policy parser."""

import asyncio
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from lifeline.context import ResilienceContext
from lifeline.core.exceptions import ConfigurationError, ValidationError
from lifeline.core.models import ResiliencePolicy
from lifeline.resilience.retry import RetryExecutor, RetryPolicy, Sleep


def _check_references(policy: ResiliencePolicy, source: str) -> ResiliencePolicy:
    breaker_names = [b.name for b in policy.breakers]
    duplicates = sorted({n for n in breaker_names if breaker_names.count(n) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate breaker names in {source}: {duplicates}")

    retry_names = [r.name for r in policy.retry_policies]
    duplicates = sorted({n for n in retry_names if retry_names.count(n) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate retry policy names in {source}: {duplicates}")

    for retry in policy.retry_policies:
        if retry.breaker is not None and retry.breaker not in breaker_names:
            raise ValidationError(
                f"Retry policy '{retry.name}' in {source} references "
                f"undefined breaker '{retry.breaker}'"
            )
        if retry.max_delay < retry.initial_delay:
            raise ValidationError(
                f"Retry policy '{retry.name}' in {source}: max_delay "
                f"({retry.max_delay}) is below initial_delay ({retry.initial_delay})"
            )
    return policy


def parse_policy(policy_path: Union[str, Path]) -> ResiliencePolicy:
    """Parse resilience policy from YAML file.

    Args:
        policy_path: Path to policy YAML file

    Returns:
        Validated ResiliencePolicy

    Raises:
        ConfigurationError: If file not found or invalid YAML
        ValidationError: If policy definition is invalid

    Example:
        >>> policy = parse_policy("policies/payments.yaml")
        >>> print(policy.name)
        payments
    """
    path = Path(policy_path)

    if not path.exists():
        raise ConfigurationError(f"Policy file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read {path}: {e}")

    if not isinstance(data, dict):
        raise ValidationError(f"Policy file {path} must contain a mapping")

    try:
        policy = ResiliencePolicy.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid policy definition in {path}:\n{e}")

    return _check_references(policy, str(path))


def validate_policy(policy_path: Union[str, Path]) -> bool:
    """Validate policy file without raising exceptions.

    Returns:
        True if valid, False otherwise
    """
    try:
        parse_policy(policy_path)
        return True
    except (ConfigurationError, ValidationError):
        return False


def parse_policy_from_dict(data: Dict[str, Any]) -> ResiliencePolicy:
    """Parse resilience policy from dictionary.

    Raises:
        ValidationError: If policy definition is invalid
    """
    try:
        policy = ResiliencePolicy.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid policy definition:\n{e}")
    return _check_references(policy, "policy")


def apply_policy(
    policy: ResiliencePolicy,
    context: ResilienceContext,
    sleep: Sleep = asyncio.sleep,
) -> Dict[str, RetryExecutor]:
    """Register the policy's breakers and build an executor per retry policy.

    Breakers already registered in the context keep their configuration.
    Each executor runs behind the breaker its retry policy names.

    Returns:
        RetryExecutor objects keyed by retry policy name
    """
    for breaker in policy.breakers:
        context.breaker(
            breaker.name,
            context.breaker_config(
                failure_threshold=breaker.failure_threshold,
                success_threshold=breaker.success_threshold,
                timeout_seconds=breaker.timeout,
                monitoring_period=breaker.monitoring_period,
                volume_threshold=breaker.volume_threshold,
                error_threshold_percentage=breaker.error_threshold_percentage,
                half_open_max_requests=breaker.half_open_max_requests,
            ),
        )

    return {
        retry.name: context.retry_executor(
            RetryPolicy(
                max_retries=retry.max_retries,
                initial_delay=retry.initial_delay,
                max_delay=retry.max_delay,
                backoff_multiplier=retry.backoff_multiplier,
                jitter_ratio=retry.jitter_ratio,
                timeout=retry.timeout,
                retry_on_timeout=retry.retry_on_timeout,
            ),
            breaker=retry.breaker,
            sleep=sleep,
        )
        for retry in policy.retry_policies
    }
