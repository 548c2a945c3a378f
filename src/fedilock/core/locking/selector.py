"""
Lock driver selection.

Manifesto:
    Workers must all agree on where locks live, and a missing client library
    or an unreachable cache must not take the whole server down.  Selection
    therefore tries an ordered list of candidates, treats each construction
    as a :class:`~fedilock.core.result.Result`, records why every rejected
    candidate failed, and only gives up (loudly) when nothing could be built.

Architecture:
    ::

        candidates():  [lock_driver if not default]
                       + [semaphore if fcntl available]
                       + [cache_driver if it is a memory cache]
                       + [database]
                       (duplicates dropped, order kept)

        select():      for name in candidates:
                           build_driver(name) → Ok(driver)  → lock_driver_selected
                                              → Err(error)  → lock_driver_failed,
                                                              SelectionAttempt
                       none left → BackendUnavailableError(attempts)

Tags:
    fedilock, locking, driver-selection, fallback, result-type

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fedilock.core.config.components import LockDriverName
from fedilock.core.config.factory import create_cache_store
from fedilock.core.config.settings import FediLockSettings
from fedilock.core.errors import BackendConstructionError, BackendUnavailableError, InvalidConfigError
from fedilock.core.logging import get_logger
from fedilock.core.result import Result, try_result_with

from .backoff import ExponentialBackoff
from .cache_driver import CacheLockDriver
from .database import DatabaseLockDriver
from .protocol import LockDriver
from .semaphore import SemaphoreLockDriver

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SelectionAttempt:
    """One candidate tried during driver resolution."""

    driver: str
    ok: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"driver": self.driver, "ok": self.ok, "error": self.error}


def driver_options(settings: FediLockSettings) -> dict[str, Any]:
    """Keyword arguments every driver receives from settings."""
    return {
        "backoff": ExponentialBackoff(
            base_delay=settings.lock_poll_base_delay,
            max_delay=settings.lock_poll_max_delay,
        ),
    }


def build_driver(name: LockDriverName, settings: FediLockSettings, **options: Any) -> Result[LockDriver]:
    """Construct the driver named ``name``.

    Returns ``Ok(driver)``, or ``Err(BackendConstructionError)`` when the
    backend cannot be built here (missing library, unreachable server,
    unsupported platform).  ``Err(InvalidConfigError)`` for ``default``,
    which names no driver.  Never raises.
    """
    kwargs = {**driver_options(settings), **options}

    def construct() -> LockDriver:
        match name:
            case LockDriverName.SEMAPHORE:
                return SemaphoreLockDriver(settings.semaphore_dir, **kwargs)
            case LockDriverName.DATABASE:
                return DatabaseLockDriver.from_url(settings.database_url, **kwargs)
            case LockDriverName.MEMCACHE | LockDriverName.MEMCACHED | LockDriverName.REDIS:
                return CacheLockDriver(create_cache_store(name, settings), name=name.value, **kwargs)
            case _:
                raise InvalidConfigError("lock_driver", name, f"{name!r} does not name a concrete driver")

    def as_construction_error(exc: Exception) -> Exception:
        if isinstance(exc, (BackendConstructionError, InvalidConfigError)):
            return exc
        return BackendConstructionError(
            f"{getattr(name, 'value', name)} lock driver could not be built: {exc}", cause=exc
        ).with_context(driver=getattr(name, "value", str(name)))

    return try_result_with(construct, as_construction_error)


class DriverSelector:
    """Resolve the lock driver from settings.

    Args:
        settings: Source of ``lock_driver`` / ``cache_driver`` and backend options.
        builder: Driver constructor returning a ``Result`` (replaceable in tests).
        semaphore_supported: Platform check for the semaphore driver.
    """

    def __init__(
        self,
        settings: FediLockSettings,
        *,
        builder: Callable[[LockDriverName, FediLockSettings], Result[LockDriver]] = build_driver,
        semaphore_supported: Callable[[], bool] = SemaphoreLockDriver.is_supported,
    ) -> None:
        self.settings = settings
        self._builder = builder
        self._semaphore_supported = semaphore_supported
        self.attempts: list[SelectionAttempt] = []

    def candidates(self) -> list[LockDriverName]:
        """Ordered, de-duplicated list of drivers to try."""
        order: list[LockDriverName] = []
        if self.settings.lock_driver != LockDriverName.DEFAULT:
            order.append(self.settings.lock_driver)
        if self._semaphore_supported():
            order.append(LockDriverName.SEMAPHORE)
        if self.settings.cache_driver.is_memory_cache:
            order.append(LockDriverName(self.settings.cache_driver.value))
        order.append(LockDriverName.DATABASE)
        return list(dict.fromkeys(order))

    def select(self) -> LockDriver:
        """Build the first candidate that can be constructed.

        Raises:
            BackendUnavailableError: Every candidate failed.
        """
        self.attempts = []
        for name in self.candidates():
            result = self._builder(name, self.settings)
            if result.is_ok():
                driver = result.unwrap()
                self.attempts.append(SelectionAttempt(driver=name.value, ok=True))
                logger.info(
                    "lock_driver_selected",
                    driver=name.value,
                    owner=driver.owner,
                    rejected=[a.driver for a in self.attempts if not a.ok],
                )
                return driver

            error = result.error
            self.attempts.append(SelectionAttempt(driver=name.value, ok=False, error=str(error)))
            logger.warning("lock_driver_failed", driver=name.value, error=str(error))

        tried = ", ".join(f"{a.driver} ({a.error})" for a in self.attempts)
        raise BackendUnavailableError(
            f"No lock driver could be constructed; tried {tried}",
            attempts=list(self.attempts),
        )


__all__ = ["DriverSelector", "SelectionAttempt", "build_driver", "driver_options"]
