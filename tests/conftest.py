"""
Shared pytest fixtures and configuration for fedilock tests.

This module provides:
- A controllable wall clock for TTL expiry
- An isolated ``FEDILOCK_*`` environment and settings cache
- Settings pointing local backends into a temporary directory
"""

import os
import sys
from pathlib import Path

import pytest
import structlog

# Ensure fedilock package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fedilock.core.config import FediLockSettings, clear_settings_cache  # noqa: E402
from fedilock.core.locking import ExponentialBackoff  # noqa: E402


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Clock & Environment Fixtures
# =============================================================================


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Strip FEDILOCK_* variables and run each test from an empty directory."""
    for name in list(os.environ):
        if name.startswith("FEDILOCK_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_structlog():
    """Drop logging configuration (and its captured streams) after each test."""
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture()
def fast_backoff() -> ExponentialBackoff:
    """Polling cadence short enough for timeout tests."""
    return ExponentialBackoff(base_delay=0.005, max_delay=0.02, jitter=False)


@pytest.fixture()
def settings(tmp_path) -> FediLockSettings:
    """Settings pointing every local backend into ``tmp_path``."""
    return FediLockSettings(
        semaphore_dir=tmp_path / "sem",
        database_url=f"sqlite:///{tmp_path / 'locks.db'}",
        lock_poll_base_delay=0.005,
        lock_poll_max_delay=0.02,
    )
