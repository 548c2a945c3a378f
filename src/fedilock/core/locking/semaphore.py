"""
Host-local lock driver on OS advisory file locks.

Manifesto:
    The cheapest lock on a single host is the one the kernel already keeps:
    ``flock`` on a per-key file.  The kernel drops it when the holder dies,
    so a crashed worker never wedges a key.  A live but stalled worker is
    handled by the TTL written next to the lock: once it has passed, the
    next contender moves the key to a fresh file and the stalled holder is
    left locking an orphan.

Architecture:
    ::

        <lock_dir>/<sha256(key)>.lock    flock'd by the holder, lease JSON inside
        <lock_dir>/<sha256(key)>.guard   flock'd briefly around every
                                         check / reclaim / unlink step,
                                         removed once the key has no .lock

        acquire:  open .lock → flock(NB) ─ ok → write lease
                                          └ busy → read lease ─ live → fail
                                                              └ expired → unlink,
                                                                create new inode,
                                                                flock, write lease
        release:  unlink only if the path still names our inode, then unlock

Guardrails:
    ❌ DON'T: Use ``lockf`` / ``fcntl.fcntl`` record locks (closing any fd
       of the file drops them)
    ✅ DO: Use ``flock``, bound to the open file description

    ❌ DON'T: Expect exclusion across hosts
    ✅ DO: Use the cache or database driver for clusters

Tags:
    fedilock, locking, flock, semaphore, host-local, crash-safe

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from fedilock.core.errors import BackendConstructionError
from fedilock.core.hashing import compute_hash
from fedilock.core.logging import get_logger

from .base import BaseLockDriver
from .protocol import Lease

try:
    import fcntl
except ImportError:  # pragma: no cover - exercised on non-POSIX only
    fcntl = None

logger = get_logger(__name__)


def _write_all(fd: int, payload: bytes) -> None:
    """Write complete payload to fd, handling short writes."""
    total_written = 0
    while total_written < len(payload):
        written = os.write(fd, payload[total_written:])
        if written <= 0:
            raise OSError("short write while persisting lease metadata")
        total_written += written


def _write_lease(fd: int, lease: Lease) -> None:
    payload = (json.dumps(lease.to_dict(), sort_keys=True) + "\n").encode("utf-8")
    os.lseek(fd, 0, os.SEEK_SET)
    os.ftruncate(fd, 0)
    _write_all(fd, payload)


def _read_lease(fd: int) -> Lease | None:
    os.lseek(fd, 0, os.SEEK_SET)
    chunks = []
    while chunk := os.read(fd, 4096):
        chunks.append(chunk)
    try:
        data = json.loads(b"".join(chunks).decode("utf-8"))
        return Lease.from_dict(data)
    except (ValueError, KeyError, TypeError):
        return None


def _same_file(fd: int, path: Path) -> bool:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    fst = os.fstat(fd)
    return (st.st_dev, st.st_ino) == (fst.st_dev, fst.st_ino)


def _lock_guard(path: Path) -> int:
    """Open and flock the guard file at ``path``, retrying if it was unlinked meanwhile."""
    while True:
        fd = os.open(path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError:
            os.close(fd)
            raise
        if _same_file(fd, path):
            return fd
        os.close(fd)


class SemaphoreLockDriver(BaseLockDriver):
    """Lock driver excluding processes on the same host.

    Two driver instances in one process exclude each other as well, since
    ``flock`` binds to the open file description rather than the process.

    Raises:
        BackendConstructionError: ``fcntl`` is unavailable or ``lock_dir``
            cannot be created.
    """

    name = "semaphore"
    transient_errors = (OSError,)

    def __init__(self, lock_dir: str | Path, **kwargs: Any) -> None:
        if not self.is_supported():
            raise BackendConstructionError(
                "The semaphore lock driver needs fcntl.flock, which this platform lacks"
            ).with_context(driver=self.name)

        self.lock_dir = Path(lock_dir)
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackendConstructionError(
                f"Cannot create semaphore directory {self.lock_dir}: {exc}", cause=exc
            ).with_context(driver=self.name) from exc

        super().__init__(**kwargs)
        self._mutex = threading.RLock()
        self._handles: dict[str, int] = {}

    @staticmethod
    def is_supported() -> bool:
        return fcntl is not None

    def lock_path(self, key: str) -> Path:
        return self.lock_dir / f"{compute_hash(key)}.lock"

    def _guard_path(self, key: str) -> Path:
        return self.lock_dir / f"{compute_hash(key)}.guard"

    @contextmanager
    def _guarded(self, key: str) -> Iterator[None]:
        guard = self._guard_path(key)
        fd = _lock_guard(guard)
        try:
            yield
        finally:
            try:
                # A key without a lock file needs no guard; waiters on this
                # inode notice the unlink and open a fresh one.
                if not self.lock_path(key).exists():
                    guard.unlink(missing_ok=True)
            finally:
                os.close(fd)

    # ── Backend hooks ────────────────────────────────────────────

    def _try_acquire(self, key: str, ttl: int, now: float) -> bool:
        path = self.lock_path(key)
        lease = Lease(key=key, owner=self.owner, ttl_seconds=ttl, acquired_at=now)

        with self._mutex, self._guarded(key):
            fd = self._handles.get(key)
            if fd is not None:
                if _same_file(fd, path):
                    _write_lease(fd, lease)
                    return True
                # Reclaimed by another owner after our lease expired.
                del self._handles[key]
                os.close(fd)

            fd = os.open(path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                current = _read_lease(fd)
                os.close(fd)
                if current is None or not current.is_expired(now):
                    return False
                fd = self._reclaim(path, current)
            except OSError:
                os.close(fd)
                raise

            try:
                _write_lease(fd, lease)
            except OSError:
                os.close(fd)
                raise
            self._handles[key] = fd
            return True

    def _reclaim(self, path: Path, expired: Lease) -> int:
        os.unlink(path)
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            raise
        logger.info(
            "lock_reclaimed",
            key=expired.key,
            driver=self.name,
            previous_owner=expired.owner,
            owner=self.owner,
        )
        return fd

    def _release(self, key: str, override: bool) -> bool:
        path = self.lock_path(key)
        with self._mutex, self._guarded(key):
            removed = False
            live = override and self._is_held(path)

            fd = self._handles.pop(key, None)
            if fd is not None:
                try:
                    if _same_file(fd, path):
                        os.unlink(path)
                        removed = True
                    fcntl.flock(fd, fcntl.LOCK_UN)
                finally:
                    os.close(fd)

            if override:
                try:
                    os.unlink(path)
                except FileNotFoundError:
                    pass
                removed = removed or live
            return removed

    def is_locked(self, key: str) -> bool:
        with self._mutex, self._guarded(key):
            return self._is_held(self.lock_path(key))

    def _is_held(self, path: Path) -> bool:
        """Whether someone holds the flock on ``path`` and its TTL has not passed."""
        try:
            fd = os.open(path, os.O_RDWR)
        except FileNotFoundError:
            return False
        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                lease = _read_lease(fd)
                return lease is None or not lease.is_expired(self._clock())
            fcntl.flock(fd, fcntl.LOCK_UN)
            return False
        finally:
            os.close(fd)

    def close(self) -> None:
        with self._mutex:
            handles, self._handles = self._handles, {}
        for fd in handles.values():
            os.close(fd)


__all__ = ["SemaphoreLockDriver"]
