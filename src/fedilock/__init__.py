"""
fedilock - named locks for federated social-network workers.

Re-exports the public API from :mod:`fedilock.core`.
"""

__version__ = "0.1.0"

from fedilock.core.config import FediLockSettings, get_settings
from fedilock.core.errors import BackendUnavailableError, FediLockError
from fedilock.core.locking import (
    CacheLockDriver,
    DatabaseLockDriver,
    DriverSelector,
    LockService,
    SemaphoreLockDriver,
)

__all__ = [
    "BackendUnavailableError",
    "CacheLockDriver",
    "DatabaseLockDriver",
    "DriverSelector",
    "FediLockError",
    "FediLockSettings",
    "LockService",
    "SemaphoreLockDriver",
    "get_settings",
]
