"""Exponential backoff with jitter."""

import random
from typing import Callable, List


def compute_backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    backoff_multiplier: float,
    jitter_ratio: float = 0.0,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based).

    ``min(max_delay, initial_delay * backoff_multiplier ** (attempt - 1))``,
    then shifted by up to ``jitter_ratio`` of itself in either direction.
    Never negative.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")

    delay = min(max_delay, initial_delay * (backoff_multiplier ** (attempt - 1)))
    if jitter_ratio > 0:
        delay += delay * jitter_ratio * (rand() * 2 - 1)
    return max(0.0, delay)


def backoff_schedule(
    retries: int,
    initial_delay: float,
    max_delay: float,
    backoff_multiplier: float,
) -> List[float]:
    """Jitter-free delays for each of ``retries`` retries."""
    return [
        compute_backoff_delay(n, initial_delay, max_delay, backoff_multiplier)
        for n in range(1, retries + 1)
    ]
