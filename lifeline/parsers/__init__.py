"""Resilience policy parsers."""

from .yaml_parser import apply_policy, parse_policy, parse_policy_from_dict, validate_policy

__all__ = [
    "parse_policy",
    "validate_policy",
    "parse_policy_from_dict",
    "apply_policy",
]
