"""
Factory functions that create component instances from settings.

Manifesto:
    Each factory uses lazy imports so that optional client libraries
    (``redis``, ``pymemcache``, ``sqlalchemy``) are only loaded when the
    corresponding backend is actually selected.  A missing library or an
    unreachable server surfaces as
    :class:`~fedilock.core.errors.BackendConstructionError`, which the
    driver selector treats as "try the next candidate".

Features:
    - ``create_cache_store()``: Redis / Memcache / Memcached store
    - ``create_lock_service()``: a :class:`LockService` wired from settings

Tags:
    fedilock, configuration, factory-pattern, lazy-imports, redis, memcached

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fedilock.core.errors import InvalidConfigError

from .components import CacheDriverName, LockDriverName

if TYPE_CHECKING:
    from fedilock.core.locking.service import LockService
    from fedilock.core.protocols import CacheStore

    from .settings import FediLockSettings


def create_cache_store(
    name: CacheDriverName | LockDriverName | str,
    settings: FediLockSettings,
) -> CacheStore:
    """Create and probe the cache store named *name*.

    Accepts either enum (the names overlap) or its string value.

    Raises:
        InvalidConfigError: *name* is not a memory cache (e.g. ``database``).
        BackendConstructionError: Client library missing or server unreachable.
    """
    value = name.value if isinstance(name, (CacheDriverName, LockDriverName)) else str(name)

    match value:
        case "redis":
            from fedilock.core.cache import RedisCache

            return RedisCache(
                settings.redis_host,
                settings.redis_port,
                db=settings.redis_db,
                password=settings.redis_password,
                socket_timeout=settings.cache_connect_timeout,
            )
        case "memcache":
            from fedilock.core.cache import MemcachedCache

            return MemcachedCache.single(
                settings.memcache_host,
                settings.memcache_port,
                timeout=settings.cache_connect_timeout,
            )
        case "memcached":
            from fedilock.core.cache import MemcachedCache

            return MemcachedCache.pool(
                settings.memcached_servers,
                timeout=settings.cache_connect_timeout,
            )
        case _:
            raise InvalidConfigError("cache_driver", value, f"{value!r} is not a memory cache backend")


def create_lock_service(settings: FediLockSettings | None = None, **kwargs: Any) -> LockService:
    """Create a :class:`~fedilock.core.locking.service.LockService`.

    Driver selection is deferred to the first lock operation.
    """
    from fedilock.core.locking.service import LockService

    return LockService(settings, **kwargs)
