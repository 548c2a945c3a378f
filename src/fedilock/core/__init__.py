"""fedilock core: lock service, drivers, backing stores and configuration.

Manifesto:
    Background workers of a federated server (contact pollers, queue
    runners, feed importers) must never run the same critical section twice
    at once, whether the competing processes share a host or only a cache or
    a database.  ``fedilock.core`` is the layer that makes that guarantee
    with whatever backend the deployment has.

    - **Sync-only primitives:** workers are plain processes and threads
    - **Protocol-first:** Connection and CacheStore are protocols, not classes
    - **Import-guarded extras:** redis, pymemcache, SQLAlchemy loaded lazily

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (FediLockError ...)
        result.py          Result[T] envelope (Ok / Err / try_result_with)
        protocols.py       Connection, CacheStore
        logging.py         structlog configuration

    Layer 2 -- Backing Stores
        cache.py           InMemoryCache, RedisCache, MemcachedCache
        connection.py      create_connection (sqlite3 / SQLAlchemy bridge)
        schema.py          locks table DDL
        hashing.py         Deterministic key hashing

    Layer 3 -- Locking
        locking/           LockService, DriverSelector, three drivers

    Layer 4 -- Configuration
        config/            FediLockSettings, driver enums, factories
"""

from fedilock.core.errors import (
    BackendConstructionError,
    BackendError,
    BackendUnavailableError,
    CacheError,
    ConfigError,
    DatabaseError,
    ErrorCategory,
    FediLockError,
    IntegrityError,
    InvalidConfigError,
)
from fedilock.core.result import Err, Ok, Result, try_result_with

__all__ = [
    "BackendConstructionError",
    "BackendError",
    "BackendUnavailableError",
    "CacheError",
    "ConfigError",
    "DatabaseError",
    "Err",
    "ErrorCategory",
    "FediLockError",
    "IntegrityError",
    "InvalidConfigError",
    "Ok",
    "Result",
    "try_result_with",
]
