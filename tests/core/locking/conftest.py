"""Fixtures building pairs of competing drivers over one backing store.

Two driver instances stand in for two worker processes: each has its own
owner token, and for the semaphore driver its own open file descriptions.
"""

from __future__ import annotations

import pytest

from fedilock.core.cache import InMemoryCache
from fedilock.core.locking import CacheLockDriver, DatabaseLockDriver, SemaphoreLockDriver


@pytest.fixture()
def make_drivers(tmp_path, clock, fast_backoff):
    """Factory: ``make_drivers(kind, n=2)`` → list of drivers sharing one store."""
    created = []

    def factory(kind: str, n: int = 2):
        if kind == "semaphore":
            if not SemaphoreLockDriver.is_supported():
                pytest.skip("fcntl not available")
            drivers = [
                SemaphoreLockDriver(tmp_path / "sem", clock=clock, backoff=fast_backoff)
                for _ in range(n)
            ]
        elif kind == "cache":
            store = InMemoryCache(clock=clock)
            drivers = [
                CacheLockDriver(store, name="memory", clock=clock, backoff=fast_backoff)
                for _ in range(n)
            ]
        elif kind == "database":
            url = f"sqlite:///{tmp_path / 'locks.db'}"
            drivers = [
                DatabaseLockDriver.from_url(url, clock=clock, backoff=fast_backoff)
                for _ in range(n)
            ]
        else:
            raise ValueError(kind)
        created.extend(drivers)
        return drivers

    yield factory

    for driver in created:
        driver.close()
