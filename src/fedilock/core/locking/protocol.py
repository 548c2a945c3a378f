"""
Lease record, owner identity and the lock driver protocol.

Manifesto:
    Every driver hands out the same thing: a lease on a key, owned by one
    process, that dies on explicit release or when its TTL runs out.  The
    :class:`Lease` dataclass is that contract in data form and
    :class:`LockDriver` is the contract in behaviour form.

Architecture:
    ::

        LockDriver (Protocol)
        ├── SemaphoreLockDriver  (host-local, fcntl.flock)
        ├── CacheLockDriver      (CacheStore set-if-absent)
        └── DatabaseLockDriver   (locks table, primary key)

        Lease(key, owner, ttl_seconds, acquired_at)
        HeldKeys: key → Lease, per driver instance

Tags:
    fedilock, locking, lease, protocol, ttl

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import socket
import threading
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable


def new_owner_token() -> str:
    """Return a fresh owner token ``"<hostname>:<pid>:<8 hex>"``."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True, slots=True)
class Lease:
    """A granted lock on ``key``.

    ``acquired_at`` is wall-clock epoch seconds as seen by the acquiring
    driver's clock.
    """

    key: str
    owner: str
    ttl_seconds: int
    acquired_at: float

    @property
    def expires_at(self) -> float:
        return self.acquired_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def refreshed(self, now: float, ttl_seconds: int) -> Lease:
        return Lease(key=self.key, owner=self.owner, ttl_seconds=ttl_seconds, acquired_at=now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Lease:
        return cls(
            key=str(data["key"]),
            owner=str(data["owner"]),
            ttl_seconds=int(data["ttl_seconds"]),
            acquired_at=float(data["acquired_at"]),
        )


class HeldKeys:
    """Thread-safe map of the keys this owner currently believes it holds."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._leases: dict[str, Lease] = {}

    def add(self, lease: Lease) -> None:
        with self._lock:
            self._leases[lease.key] = lease

    def discard(self, key: str) -> Lease | None:
        with self._lock:
            return self._leases.pop(key, None)

    def get(self, key: str) -> Lease | None:
        with self._lock:
            return self._leases.get(key)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._leases)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._leases

    def __len__(self) -> int:
        with self._lock:
            return len(self._leases)


@runtime_checkable
class LockDriver(Protocol):
    """Behaviour shared by all lock drivers."""

    name: str
    owner: str

    def acquire(self, key: str, timeout: float, ttl: int) -> bool:
        """Block up to ``timeout`` seconds for a lease; False on contention."""
        ...

    def release(self, key: str, override: bool = False) -> bool:
        """Remove our lease on ``key`` (any lease with ``override``)."""
        ...

    def release_all(self) -> None:
        """Release every key in the held set."""
        ...

    def is_locked(self, key: str) -> bool:
        """Whether a live lease exists for ``key``."""
        ...

    def held_keys(self) -> list[str]:
        ...

    def close(self) -> None:
        ...


__all__ = ["HeldKeys", "Lease", "LockDriver", "new_owner_token"]
