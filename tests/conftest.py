"""Shared fixtures: controllable clock and recorded sleeps."""

from pathlib import Path
from typing import List

import pytest

from lifeline.core.config import GlobalConfig

FIXTURES = Path(__file__).parent / "fixtures"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Drop-in for asyncio.sleep that records delays and returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def test_config() -> GlobalConfig:
    """Configuration with zero jitter and short delays for deterministic tests."""
    return GlobalConfig(
        retry_initial_delay=0.01,
        retry_max_delay=0.1,
        retry_jitter_ratio=0.0,
        queue_max_retries=2,
        idempotency_ttl=60,
    )
