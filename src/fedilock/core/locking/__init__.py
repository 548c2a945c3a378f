"""Named mutual-exclusion locks with pluggable backends.

Architecture::

    service.py        LockService facade (lazy driver resolution)
    selector.py       DriverSelector + build_driver() → Result
    base.py           BaseLockDriver: contention loop, held keys
    semaphore.py      SemaphoreLockDriver (host-local, flock)
    cache_driver.py   CacheLockDriver (Redis / Memcache / Memcached)
    database.py       DatabaseLockDriver (locks table)
    protocol.py       Lease, HeldKeys, LockDriver protocol
    backoff.py        ExponentialBackoff polling cadence

Tags:
    fedilock, locking, package-overview
"""

from .backoff import ExponentialBackoff
from .base import BaseLockDriver, validate_lock_request
from .cache_driver import KEY_PREFIX, CacheLockDriver
from .database import DatabaseLockDriver
from .protocol import HeldKeys, Lease, LockDriver, new_owner_token
from .selector import DriverSelector, SelectionAttempt, build_driver, driver_options
from .semaphore import SemaphoreLockDriver
from .service import LockService

__all__ = [
    "BaseLockDriver",
    "CacheLockDriver",
    "DatabaseLockDriver",
    "DriverSelector",
    "ExponentialBackoff",
    "HeldKeys",
    "KEY_PREFIX",
    "Lease",
    "LockDriver",
    "LockService",
    "SelectionAttempt",
    "SemaphoreLockDriver",
    "build_driver",
    "driver_options",
    "new_owner_token",
    "validate_lock_request",
]
