"""Pytest configuration."""
import sys
from pathlib import Path

import pytest

# Ensure project root is importable regardless of where pytest is invoked
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


class FakeClock:
    """Manual clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1_000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cache.db'}"
