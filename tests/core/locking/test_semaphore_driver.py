"""Tests for fedilock.core.locking.semaphore — flock-based host-local driver."""

from __future__ import annotations

import json
import os
import threading

import pytest

from fedilock.core.errors import BackendConstructionError
from fedilock.core.hashing import compute_hash
from fedilock.core.locking import SemaphoreLockDriver
from fedilock.core.locking import semaphore as semaphore_mod

pytestmark = pytest.mark.skipif(not SemaphoreLockDriver.is_supported(), reason="fcntl not available")


@pytest.fixture()
def driver(tmp_path, clock, fast_backoff):
    d = SemaphoreLockDriver(tmp_path / "sem", clock=clock, backoff=fast_backoff)
    yield d
    d.close()


class TestConstruction:
    def test_creates_lock_dir(self, tmp_path):
        target = tmp_path / "a" / "b"
        SemaphoreLockDriver(target).close()
        assert target.is_dir()

    def test_unsupported_platform(self, tmp_path, monkeypatch):
        monkeypatch.setattr(semaphore_mod, "fcntl", None)
        assert SemaphoreLockDriver.is_supported() is False
        with pytest.raises(BackendConstructionError) as exc_info:
            SemaphoreLockDriver(tmp_path)
        assert exc_info.value.context.driver == "semaphore"

    def test_lock_dir_is_a_file(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(BackendConstructionError):
            SemaphoreLockDriver(blocker / "sem")


class TestLockFiles:
    def test_path_is_hash_of_key(self, driver):
        path = driver.lock_path("poller:contact-7")
        assert path.name == f"{compute_hash('poller:contact-7')}.lock"
        assert path.parent == driver.lock_dir

    def test_lease_metadata_written(self, driver, clock):
        driver.acquire("poller:contact-7", timeout=0, ttl=10)
        data = json.loads(driver.lock_path("poller:contact-7").read_text())
        assert data == {
            "key": "poller:contact-7",
            "owner": driver.owner,
            "ttl_seconds": 10,
            "acquired_at": clock.now,
        }

    def test_release_removes_file(self, driver):
        driver.acquire("k", timeout=0, ttl=10)
        driver.release("k")
        assert not driver.lock_path("k").exists()

    def test_stale_file_without_holder_is_free(self, driver):
        path = driver.lock_path("k")
        path.write_text(json.dumps({"key": "k", "owner": "dead:1:00000000", "ttl_seconds": 999, "acquired_at": 0}))
        assert driver.is_locked("k") is False
        assert driver.acquire("k", timeout=0, ttl=10) is True

    def test_reclaim_moves_key_to_new_inode(self, tmp_path, clock, fast_backoff):
        a = SemaphoreLockDriver(tmp_path, clock=clock, backoff=fast_backoff)
        b = SemaphoreLockDriver(tmp_path, clock=clock, backoff=fast_backoff)
        try:
            a.acquire("k", timeout=0, ttl=10)
            before = os.stat(a.lock_path("k")).st_ino
            clock.advance(10)
            assert b.acquire("k", timeout=0, ttl=10) is True
            after = os.stat(b.lock_path("k")).st_ino
            assert before != after
        finally:
            a.close()
            b.close()


class TestGuardFiles:
    def _guard(self, driver, key):
        return driver.lock_dir / f"{compute_hash(key)}.guard"

    def test_released_keys_leave_no_files(self, driver):
        keys = [f"poller:contact-{n}" for n in range(50)]
        for key in keys:
            assert driver.acquire(key, timeout=0, ttl=10) is True
        for key in keys:
            assert driver.release(key) is True

        assert list(driver.lock_dir.iterdir()) == []

    def test_guard_kept_while_held(self, driver):
        driver.acquire("k", timeout=0, ttl=10)
        assert self._guard(driver, "k").exists()
        driver.release("k")
        assert not self._guard(driver, "k").exists()

    def test_lookups_of_free_keys_leave_no_files(self, driver):
        assert driver.is_locked("never-taken") is False
        driver.release("never-taken", override=True)
        assert list(driver.lock_dir.iterdir()) == []

    def test_waiter_on_removed_guard_reopens(self, tmp_path, clock, fast_backoff):
        fcntl = semaphore_mod.fcntl

        driver = SemaphoreLockDriver(tmp_path, clock=clock, backoff=fast_backoff)
        guard = self._guard(driver, "k")
        stale = os.open(guard, os.O_CREAT | os.O_RDWR, 0o644)
        fcntl.flock(stale, fcntl.LOCK_EX)
        result = {}

        waiter = threading.Thread(target=lambda: result.update(ok=driver.acquire("k", timeout=0, ttl=10)))
        try:
            waiter.start()
            waiter.join(timeout=0.2)
            os.unlink(guard)
            fcntl.flock(stale, fcntl.LOCK_UN)
        finally:
            os.close(stale)
        waiter.join(timeout=5)

        try:
            assert result == {"ok": True}
            assert guard.exists()
            assert driver.is_locked("k") is True
        finally:
            driver.close()


@pytest.mark.slow
@pytest.mark.skipif(not hasattr(os, "fork"), reason="requires fork")
class TestCrashSafety:
    def test_dead_holder_releases_lock(self, tmp_path):
        read_fd, write_fd = os.pipe()
        pid = os.fork()
        if pid == 0:  # child: take the lock and die without releasing
            os.close(read_fd)
            child = SemaphoreLockDriver(tmp_path)
            ok = child.acquire("worker:queue", timeout=0, ttl=300)
            os.write(write_fd, b"1" if ok else b"0")
            os._exit(0)

        os.close(write_fd)
        assert os.read(read_fd, 1) == b"1"
        os.close(read_fd)
        os.waitpid(pid, 0)

        survivor = SemaphoreLockDriver(tmp_path)
        try:
            assert survivor.is_locked("worker:queue") is False
            assert survivor.acquire("worker:queue", timeout=0, ttl=300) is True
        finally:
            survivor.close()
