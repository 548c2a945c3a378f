"""
Lock and cache backend enumerations and compatibility validation.

Each enum is one pluggable dimension of the lock service.  The
:func:`validate_component_combination` function checks that the chosen
backends make sense together (e.g. auto selection on a multi-host cluster
without a shared cache ends up on the host-local semaphore driver).

Example::

    from fedilock.core.config.components import (
        CacheDriverName, LockDriverName, validate_component_combination,
    )

    warnings = validate_component_combination(
        lock_driver=LockDriverName.SEMAPHORE,
        cache_driver=CacheDriverName.REDIS,
    )
    for w in warnings:
        print(w.severity, w.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# ── Backend enumerations ─────────────────────────────────────────────────


class LockDriverName(str, Enum):
    """Values accepted by the ``lock_driver`` setting."""

    DEFAULT = "default"
    SEMAPHORE = "semaphore"
    DATABASE = "database"
    MEMCACHE = "memcache"
    MEMCACHED = "memcached"
    REDIS = "redis"

    @property
    def is_cache(self) -> bool:
        return self in (LockDriverName.MEMCACHE, LockDriverName.MEMCACHED, LockDriverName.REDIS)


class CacheDriverName(str, Enum):
    """Values accepted by the ``cache_driver`` setting.

    ``database`` means "no memory cache": it never backs a cache lock.
    """

    DATABASE = "database"
    MEMCACHE = "memcache"
    MEMCACHED = "memcached"
    REDIS = "redis"

    @property
    def is_memory_cache(self) -> bool:
        return self != CacheDriverName.DATABASE


# ── Compatibility validation ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ComponentWarning:
    """A warning raised by component-combination validation."""

    severity: str  # "info" or "warning"
    message: str
    suggestion: str


def validate_component_combination(
    *,
    lock_driver: LockDriverName = LockDriverName.DEFAULT,
    cache_driver: CacheDriverName = CacheDriverName.DATABASE,
    poll_base_delay: float = 0.05,
    poll_max_delay: float = 1.0,
) -> list[ComponentWarning]:
    """Return compatibility warnings for the given backend choices.

    Raises :class:`ValueError` for combinations that cannot work at runtime.
    """
    warnings: list[ComponentWarning] = []

    # Rule 1: semaphore locks never leave the host
    if lock_driver == LockDriverName.SEMAPHORE:
        warnings.append(
            ComponentWarning(
                severity="warning",
                message="The semaphore lock driver only excludes processes on the same host.",
                suggestion="Use lock_driver='database' or a cache driver when workers run on several hosts.",
            )
        )

    # Rule 2: auto selection prefers the semaphore where the OS supports it
    if lock_driver == LockDriverName.DEFAULT:
        warnings.append(
            ComponentWarning(
                severity="info",
                message="Automatic selection tries the host-local semaphore driver first.",
                suggestion="Set lock_driver explicitly for multi-host deployments.",
            )
        )

    # Rule 3: explicit cache lock driver differs from the configured cache
    if lock_driver.is_cache and lock_driver.value != cache_driver.value:
        warnings.append(
            ComponentWarning(
                severity="info",
                message=(
                    f"lock_driver={lock_driver.value!r} connects on its own; "
                    f"cache_driver={cache_driver.value!r} is only used for fallback selection."
                ),
                suggestion="Align cache_driver with lock_driver unless the split is intended.",
            )
        )

    # Rule 4: polling cadence must be increasing
    if poll_max_delay < poll_base_delay:
        raise ValueError(
            f"lock_poll_max_delay ({poll_max_delay}) must not be smaller than "
            f"lock_poll_base_delay ({poll_base_delay})."
        )

    return warnings
