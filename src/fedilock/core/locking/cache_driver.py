"""Lock driver over a shared memory cache (Redis, Memcache, Memcached).

A lease is the cache entry ``lock:<key>`` holding the owner token, written
with the store's atomic set-if-absent and expired by the cache server.
"""

from __future__ import annotations

from typing import Any

from fedilock.core.errors import CacheError
from fedilock.core.protocols import CacheStore

from .base import BaseLockDriver

KEY_PREFIX = "lock:"


class CacheLockDriver(BaseLockDriver):
    """Cluster-wide lock driver backed by a :class:`CacheStore`.

    Example:
        >>> from fedilock.core.cache import InMemoryCache
        >>> driver = CacheLockDriver(InMemoryCache(), name="memory")
        >>> driver.acquire("poller:contact-7", timeout=0, ttl=10)
        True
    """

    transient_errors = (CacheError,)

    def __init__(self, store: CacheStore, *, name: str = "cache", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.store = store
        self.name = name

    @staticmethod
    def cache_key(key: str) -> str:
        return KEY_PREFIX + key

    def _try_acquire(self, key: str, ttl: int, now: float) -> bool:
        cache_key = self.cache_key(key)
        if self.store.set_if_absent(cache_key, self.owner, ttl):
            return True

        # Re-acquire by the current holder refreshes the TTL, only while the
        # entry still holds our owner token
        return self.store.compare_and_touch(cache_key, self.owner, ttl)

    def _release(self, key: str, override: bool) -> bool:
        cache_key = self.cache_key(key)
        if override:
            existed = self.store.get(cache_key) is not None
            self.store.delete(cache_key)
            return existed
        return self.store.compare_and_delete(cache_key, self.owner)

    def is_locked(self, key: str) -> bool:
        return self.store.get(self.cache_key(key)) is not None

    def close(self) -> None:
        self.store.close()


__all__ = ["CacheLockDriver", "KEY_PREFIX"]
