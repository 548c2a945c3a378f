"""
The lock service facade.

Manifesto:
    Background workers should not care which backend guards a critical
    section.  They hold one :class:`LockService`, created at startup and
    passed around explicitly, and ask it for a key.  The service resolves
    its driver on first use, keeps it for its lifetime and forwards every
    call.

Example::

    from fedilock import LockService

    locks = LockService()
    with locks.locked("poller:contact-7", timeout=0, ttl=60) as acquired:
        if acquired:
            poll_contact(7)

Tags:
    fedilock, locking, facade, mutual-exclusion

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fedilock.core.config.settings import FediLockSettings, get_settings
from fedilock.core.logging import get_logger

from .base import validate_lock_request
from .protocol import LockDriver
from .selector import DriverSelector, SelectionAttempt

logger = get_logger(__name__)


class LockService:
    """Acquire and release named locks through the configured driver.

    Args:
        settings: Configuration; defaults to :func:`get_settings`.
        selector: Driver selector used on first use.
        driver: Ready driver; skips selection entirely.
    """

    def __init__(
        self,
        settings: FediLockSettings | None = None,
        *,
        selector: DriverSelector | None = None,
        driver: LockDriver | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._selector = selector
        self._driver = driver
        self._selection: list[SelectionAttempt] = []
        self._resolve_lock = threading.Lock()

    # ── Driver resolution ────────────────────────────────────────

    @property
    def driver(self) -> LockDriver:
        """The active driver, resolved once on first access.

        Raises:
            BackendUnavailableError: No driver could be constructed.
        """
        if self._driver is None:
            with self._resolve_lock:
                if self._driver is None:
                    selector = self._selector or DriverSelector(self.settings)
                    try:
                        self._driver = selector.select()
                    finally:
                        self._selection = list(selector.attempts)
        return self._driver

    @property
    def driver_name(self) -> str:
        return self.driver.name

    @property
    def selection(self) -> list[SelectionAttempt]:
        """Candidates tried while resolving the driver (empty if injected)."""
        return list(self._selection)

    # ── Lock operations ──────────────────────────────────────────

    def acquire(self, key: str, timeout: float | None = None, ttl: int | None = None) -> bool:
        """Acquire ``key``, waiting up to ``timeout`` seconds.

        Returns False if someone else still holds the key when the timeout
        runs out.  ``timeout`` and ``ttl`` default to the
        ``lock_timeout_seconds`` and ``lock_ttl_seconds`` settings.
        """
        if timeout is None:
            timeout = self.settings.lock_timeout_seconds
        if ttl is None:
            ttl = self.settings.lock_ttl_seconds
        validate_lock_request(key, ttl)
        return self.driver.acquire(key, timeout, ttl)

    def release(self, key: str, override: bool = False) -> bool:
        """Release our lease on ``key``; any lease with ``override=True``."""
        validate_lock_request(key)
        return self.driver.release(key, override=override)

    def release_all(self) -> None:
        """Release every key this owner holds."""
        if self._driver is None:
            return
        self._driver.release_all()

    def is_locked(self, key: str) -> bool:
        validate_lock_request(key)
        return self.driver.is_locked(key)

    @contextmanager
    def locked(self, key: str, timeout: float | None = None, ttl: int | None = None) -> Iterator[bool]:
        """Context manager yielding the acquire result.

        The lease is released on exit only if it was acquired.
        """
        acquired = self.acquire(key, timeout=timeout, ttl=ttl)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    # ── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Release all held keys and close the driver."""
        if self._driver is None:
            return
        self._driver.release_all()
        self._driver.close()
        logger.debug("lock_service_closed", driver=self._driver.name)

    def __enter__(self) -> LockService:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        name = self._driver.name if self._driver is not None else "unresolved"
        return f"LockService(driver={name!r})"


__all__ = ["LockService"]
