"""
Shared contention loop and bookkeeping for lock drivers.

Manifesto:
    Drivers differ only in how one acquisition attempt and one release talk
    to their backing store.  Everything around that (argument validation,
    polling until the deadline, the held-key set, ``release_all``, logging)
    lives here once, so the three drivers cannot drift apart.

Architecture:
    ::

        acquire(key, timeout, ttl)
            ├─ validate_lock_request()
            └─ loop:
                 _try_acquire(key, ttl, now) ─ True  → HeldKeys.add, lock_acquired
                                             └ False → backoff sleep (≤ deadline)
               deadline reached → lock_contended, return False

        release(key, override) → HeldKeys.discard + _release()

    ``transient_errors`` raised by an attempt count as a failed attempt.

Tags:
    fedilock, locking, polling, backoff, ttl

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from fedilock.core.logging import get_logger

from .backoff import ExponentialBackoff
from .protocol import HeldKeys, Lease, new_owner_token

logger = get_logger(__name__)


def validate_lock_request(key: str, ttl: int | None = None) -> None:
    """Raise :class:`ValueError` for an empty key or a TTL below one second."""
    if not isinstance(key, str) or not key:
        raise ValueError("lock key must be a non-empty string")
    if ttl is not None and ttl < 1:
        raise ValueError(f"lock ttl must be at least 1 second, got {ttl}")


class BaseLockDriver(ABC):
    """Base class implementing the contention loop.

    Args:
        owner: Owner token; generated with :func:`new_owner_token` if omitted.
        clock: Wall-clock source in epoch seconds, used for lease expiry.
        backoff: Polling cadence between failed attempts.
        sleep: Sleep function (replaceable in tests).
        monotonic: Monotonic clock used for the acquire deadline.
    """

    name: str = "base"
    transient_errors: tuple[type[Exception], ...] = ()

    def __init__(
        self,
        *,
        owner: str | None = None,
        clock: Callable[[], float] = time.time,
        backoff: ExponentialBackoff | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.owner = owner or new_owner_token()
        self._clock = clock
        self._backoff = backoff or ExponentialBackoff()
        self._sleep = sleep
        self._monotonic = monotonic
        self._held = HeldKeys()

    # ── Backend hooks ────────────────────────────────────────────

    @abstractmethod
    def _try_acquire(self, key: str, ttl: int, now: float) -> bool:
        """One acquisition attempt. True if this owner now holds ``key``."""

    @abstractmethod
    def _release(self, key: str, override: bool) -> bool:
        """Remove the lease. True if a lease was removed."""

    @abstractmethod
    def is_locked(self, key: str) -> bool:
        """Whether a live lease exists for ``key``."""

    def close(self) -> None:
        """Release backend resources. The default does nothing."""

    # ── Public API ───────────────────────────────────────────────

    def acquire(self, key: str, timeout: float, ttl: int) -> bool:
        validate_lock_request(key, ttl)
        deadline = self._monotonic() + max(timeout, 0)
        attempt = 0

        while True:
            now = self._clock()
            if self._attempt(key, ttl, now):
                self._held.add(Lease(key=key, owner=self.owner, ttl_seconds=ttl, acquired_at=now))
                logger.debug("lock_acquired", key=key, driver=self.name, owner=self.owner, ttl=ttl, attempts=attempt + 1)
                return True

            if self._held.discard(key) is not None:
                logger.warning("lock_lost", key=key, driver=self.name, owner=self.owner)

            remaining = deadline - self._monotonic()
            if remaining <= 0:
                logger.debug("lock_contended", key=key, driver=self.name, timeout=timeout, attempts=attempt + 1)
                return False

            self._sleep(self._backoff.bounded_delay(attempt, remaining))
            attempt += 1

    def release(self, key: str, override: bool = False) -> bool:
        validate_lock_request(key)
        self._held.discard(key)
        try:
            removed = self._release(key, override)
        except self.transient_errors as e:
            logger.error("lock_release_failed", key=key, driver=self.name, error=str(e))
            return False

        if override:
            logger.info("lock_override_release", key=key, driver=self.name, removed=removed)
        elif removed:
            logger.debug("lock_released", key=key, driver=self.name, owner=self.owner)
        return removed

    def release_all(self) -> None:
        for key in self._held.keys():
            self.release(key)

    def held_keys(self) -> list[str]:
        return self._held.keys()

    def held_lease(self, key: str) -> Lease | None:
        return self._held.get(key)

    def _attempt(self, key: str, ttl: int, now: float) -> bool:
        try:
            return self._try_acquire(key, ttl, now)
        except self.transient_errors as e:
            logger.warning("lock_attempt_failed", key=key, driver=self.name, error=str(e))
            return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, owner={self.owner!r})"


__all__ = ["BaseLockDriver", "validate_lock_request"]
