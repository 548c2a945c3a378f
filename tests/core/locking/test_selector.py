"""Tests for fedilock.core.locking.selector — candidate ordering and fallback."""

from __future__ import annotations

import pytest

from fedilock.core.cache import InMemoryCache
from fedilock.core.config import CacheDriverName, FediLockSettings, LockDriverName
from fedilock.core.errors import BackendConstructionError, BackendUnavailableError, InvalidConfigError
from fedilock.core.locking import (
    CacheLockDriver,
    DatabaseLockDriver,
    DriverSelector,
    SelectionAttempt,
    SemaphoreLockDriver,
    build_driver,
)
from fedilock.core.result import Err, Ok


class FakeBuilder:
    """Builder that fails for the names in ``broken`` and records every call."""

    def __init__(self, broken=()):
        self.broken = set(broken)
        self.calls: list[LockDriverName] = []

    def __call__(self, name, settings):
        self.calls.append(name)
        if name in self.broken:
            return Err(BackendConstructionError(f"{name.value} down"))
        return Ok(CacheLockDriver(InMemoryCache(), name=name.value))


def _selector(settings=None, *, semaphore=True, builder=None, **overrides):
    settings = settings or FediLockSettings(**overrides)
    return DriverSelector(
        settings,
        builder=builder or FakeBuilder(),
        semaphore_supported=lambda: semaphore,
    )


class TestCandidates:
    def test_default_order(self):
        selector = _selector()
        assert selector.candidates() == [LockDriverName.SEMAPHORE, LockDriverName.DATABASE]

    def test_without_semaphore_support(self):
        selector = _selector(semaphore=False)
        assert selector.candidates() == [LockDriverName.DATABASE]

    def test_memory_cache_inserted_before_database(self):
        selector = _selector(cache_driver=CacheDriverName.REDIS)
        assert selector.candidates() == [
            LockDriverName.SEMAPHORE,
            LockDriverName.REDIS,
            LockDriverName.DATABASE,
        ]

    def test_explicit_driver_first(self):
        selector = _selector(lock_driver=LockDriverName.MEMCACHED, cache_driver=CacheDriverName.MEMCACHE)
        assert selector.candidates() == [
            LockDriverName.MEMCACHED,
            LockDriverName.SEMAPHORE,
            LockDriverName.MEMCACHE,
            LockDriverName.DATABASE,
        ]

    @pytest.mark.parametrize(
        ("lock_driver", "cache_driver", "expected"),
        [
            ("database", "database", ["database", "semaphore"]),
            ("semaphore", "database", ["semaphore", "database"]),
            ("redis", "redis", ["redis", "semaphore", "database"]),
        ],
    )
    def test_duplicates_dropped(self, lock_driver, cache_driver, expected):
        selector = _selector(lock_driver=lock_driver, cache_driver=cache_driver)
        assert [c.value for c in selector.candidates()] == expected


class TestSelect:
    def test_first_candidate_wins(self):
        builder = FakeBuilder()
        selector = _selector(builder=builder)

        driver = selector.select()

        assert driver.name == "semaphore"
        assert builder.calls == [LockDriverName.SEMAPHORE]
        assert selector.attempts == [SelectionAttempt(driver="semaphore", ok=True)]

    def test_falls_back_in_order(self):
        builder = FakeBuilder(broken={LockDriverName.REDIS, LockDriverName.SEMAPHORE})
        selector = _selector(builder=builder, lock_driver="redis")

        driver = selector.select()

        assert driver.name == "database"
        assert builder.calls == [LockDriverName.REDIS, LockDriverName.SEMAPHORE, LockDriverName.DATABASE]
        assert [(a.driver, a.ok) for a in selector.attempts] == [
            ("redis", False),
            ("semaphore", False),
            ("database", True),
        ]
        assert selector.attempts[0].error == "redis down"

    def test_all_candidates_fail(self):
        builder = FakeBuilder(broken=set(LockDriverName))
        selector = _selector(builder=builder, cache_driver="memcache")

        with pytest.raises(BackendUnavailableError) as exc_info:
            selector.select()

        err = exc_info.value
        assert [a.driver for a in err.attempts] == ["semaphore", "memcache", "database"]
        assert not any(a.ok for a in err.attempts)
        assert "memcache down" in str(err)
        assert err.category.value == "CONFIG"

    def test_attempts_reset_between_selections(self):
        selector = _selector()
        selector.select()
        selector.select()
        assert len(selector.attempts) == 1

    def test_attempt_to_dict(self):
        attempt = SelectionAttempt(driver="redis", ok=False, error="refused")
        assert attempt.to_dict() == {"driver": "redis", "ok": False, "error": "refused"}


class TestBuildDriver:
    def test_database(self, settings):
        result = build_driver(LockDriverName.DATABASE, settings)
        assert result.is_ok()
        driver = result.unwrap()
        assert isinstance(driver, DatabaseLockDriver)
        driver.close()

    @pytest.mark.skipif(not SemaphoreLockDriver.is_supported(), reason="fcntl not available")
    def test_semaphore(self, settings):
        driver = build_driver(LockDriverName.SEMAPHORE, settings).unwrap()
        assert isinstance(driver, SemaphoreLockDriver)
        assert driver.lock_dir == settings.semaphore_dir
        driver.close()

    def test_options_forwarded(self, settings):
        driver = build_driver(LockDriverName.DATABASE, settings, owner="host:1:abcdef01").unwrap()
        assert driver.owner == "host:1:abcdef01"
        driver.close()

    def test_backoff_from_settings(self, settings):
        driver = build_driver(LockDriverName.DATABASE, settings).unwrap()
        assert driver._backoff.base_delay == settings.lock_poll_base_delay
        assert driver._backoff.max_delay == settings.lock_poll_max_delay
        driver.close()

    def test_unreachable_redis_is_err(self, settings):
        settings = settings.model_copy(update={"redis_port": 1, "cache_connect_timeout": 0.2})
        result = build_driver(LockDriverName.REDIS, settings)
        assert result.is_err()
        assert isinstance(result.error, BackendConstructionError)

    def test_default_is_not_buildable(self, settings):
        result = build_driver(LockDriverName.DEFAULT, settings)
        assert result.is_err()
        assert isinstance(result.error, InvalidConfigError)

    def test_unopenable_database_is_err(self, settings, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        settings = settings.model_copy(update={"database_url": f"sqlite:///{blocker / 'x' / 'locks.db'}"})

        result = build_driver(LockDriverName.DATABASE, settings)

        assert result.is_err()
        assert isinstance(result.error, BackendConstructionError)


    def test_unexpected_error_wrapped(self, settings, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("driver bug")

        monkeypatch.setattr(DatabaseLockDriver, "from_url", explode)
        result = build_driver(LockDriverName.DATABASE, settings)

        assert isinstance(result.error, BackendConstructionError)
        assert isinstance(result.error.cause, RuntimeError)
        assert result.error.context.driver == "database"


class TestRealFallback:
    def test_unreachable_cache_falls_back_to_database(self, settings):
        settings = settings.model_copy(
            update={"lock_driver": LockDriverName.REDIS, "redis_port": 1, "cache_connect_timeout": 0.2}
        )
        selector = DriverSelector(settings, semaphore_supported=lambda: False)

        driver = selector.select()

        assert driver.name == "database"
        assert [a.driver for a in selector.attempts] == ["redis", "database"]
        driver.close()
