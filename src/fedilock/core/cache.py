"""
Cache stores with an atomic set-if-absent primitive.

Provides the :class:`~fedilock.core.protocols.CacheStore` implementations the
cache lock driver wraps: a process-local in-memory store, Redis and
Memcached.  Each store translates its client library's exceptions into
:class:`~fedilock.core.errors.CacheError` and, when it talks to a server,
probes that server at construction so an unreachable backend fails fast
with :class:`~fedilock.core.errors.BackendConstructionError`.

Manifesto:
    A cache only makes a lock if "set if absent" is a single atomic step on
    the server.  Every store here maps that primitive onto the backend's
    native operation instead of emulating it with get-then-set.

    - **InMemoryCache:** single-process, thread-safe, for tests and embedding
    - **RedisCache:** ``SET key value NX EX ttl`` and Lua compare-and-delete /
      compare-and-expire scripts
    - **MemcachedCache:** ``add`` with expiry and ``gets``/``cas`` refresh,
      single server or a hashed pool

Architecture:
    ::

        CacheStore (Protocol)
        ├── InMemoryCache   — single process (threading.Lock)
        ├── RedisCache      — redis-py client
        └── MemcachedCache  — pymemcache Client / HashClient

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             set_if_absent(key, value, ttl_seconds) → bool
             delete(key)
             compare_and_delete(key, expected) → bool
             compare_and_touch(key, expected, ttl_seconds) → bool

Guardrails:
    ❌ DON'T: Use InMemoryCache to coordinate multiple processes
    ✅ DO: Use RedisCache or MemcachedCache for cluster-wide locks

    ❌ DON'T: Evict live entries to bound memory (a lease would vanish)
    ✅ DO: Let TTL expiry purge entries

Tags:
    cache, redis, memcached, ttl, set-if-absent, fedilock

Doc-Types:
    - API Reference
    - Infrastructure Guide
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from typing import Any

from fedilock.core.errors import BackendConstructionError, CacheError
from fedilock.core.hashing import compute_hash

# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Thread-safe in-memory cache with TTL support.

    Expired entries are purged lazily when touched.  ``clock`` returns wall
    time in seconds and can be replaced in tests.

    Example:
        cache = InMemoryCache()
        cache.set_if_absent("lock:poller", "host:1:ab12cd34", ttl_seconds=300)
    """

    def __init__(
        self,
        *,
        default_ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store: dict[str, tuple[Any, float | None]] = {}
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def _live_value(self, key: str) -> tuple[bool, Any]:
        """Return ``(present, value)``; caller holds ``self._lock``."""
        entry = self._store.get(key)
        if entry is None:
            return False, None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return False, None
        return True, value

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        return (self._clock() + ttl) if ttl else None

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._live_value(key)[1]

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._store[key] = (value, self._expiry(ttl_seconds))

    def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
        with self._lock:
            present, _ = self._live_value(key)
            if present:
                return False
            self._store[key] = (value, self._expiry(ttl_seconds))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def compare_and_delete(self, key: str, expected: Any) -> bool:
        with self._lock:
            present, value = self._live_value(key)
            if not present or value != expected:
                return False
            del self._store[key]
            return True

    def compare_and_touch(self, key: str, expected: Any, ttl_seconds: int) -> bool:
        with self._lock:
            present, value = self._live_value(key)
            if not present or value != expected:
                return False
            self._store[key] = (value, self._expiry(ttl_seconds))
            return True

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_value(key)[0]

    def size(self) -> int:
        """Return current number of stored keys (expired ones included)."""
        return len(self._store)

    def close(self) -> None:
        pass


# ------------------------------------------------------------------ #
# Redis
# ------------------------------------------------------------------ #

_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_COMPARE_AND_EXPIRE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


class RedisCache:
    """Redis-backed cache store.

    Requires the ``redis`` package (``pip install fedilock[redis]``).

    Example:
        cache = RedisCache(host="127.0.0.1", port=6379)
        cache.set_if_absent("lock:poller", "host:1:ab12cd34", ttl_seconds=300)

    Raises:
        BackendConstructionError: If ``redis`` is not installed or the
            server does not answer ``PING``.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 6379,
        *,
        db: int = 0,
        password: str | None = None,
        socket_timeout: float = 2.0,
        client: Any = None,
    ):
        try:
            import redis
        except ImportError as exc:
            raise BackendConstructionError(
                "Redis backend requires 'redis' package. "
                "Install with: pip install fedilock[redis]",
                cause=exc,
            ) from exc

        self._errors: tuple[type[BaseException], ...] = (redis.exceptions.RedisError, OSError)
        self._client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        try:
            self._client.ping()
        except self._errors as exc:
            raise BackendConstructionError(
                f"Redis at {host}:{port} is unreachable: {exc}", cause=exc
            ).with_context(driver="redis") from exc

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(key)
        except self._errors as exc:
            raise CacheError(f"redis GET failed: {exc}", cause=exc).with_context(key=key) from exc
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        serialized = json.dumps(value)
        try:
            if ttl_seconds:
                self._client.setex(key, ttl_seconds, serialized)
            else:
                self._client.set(key, serialized)
        except self._errors as exc:
            raise CacheError(f"redis SET failed: {exc}", cause=exc).with_context(key=key) from exc

    def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            return bool(self._client.set(key, json.dumps(value), nx=True, ex=ttl_seconds))
        except self._errors as exc:
            raise CacheError(f"redis SET NX failed: {exc}", cause=exc).with_context(key=key) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except self._errors as exc:
            raise CacheError(f"redis DEL failed: {exc}", cause=exc).with_context(key=key) from exc

    def compare_and_delete(self, key: str, expected: Any) -> bool:
        try:
            return bool(self._client.eval(_COMPARE_AND_DELETE, 1, key, json.dumps(expected)))
        except self._errors as exc:
            raise CacheError(f"redis compare-and-delete failed: {exc}", cause=exc).with_context(
                key=key
            ) from exc

    def compare_and_touch(self, key: str, expected: Any, ttl_seconds: int) -> bool:
        try:
            return bool(
                self._client.eval(_COMPARE_AND_EXPIRE, 1, key, json.dumps(expected), ttl_seconds)
            )
        except self._errors as exc:
            raise CacheError(f"redis compare-and-expire failed: {exc}", cause=exc).with_context(
                key=key
            ) from exc

    def close(self) -> None:
        self._client.close()


# ------------------------------------------------------------------ #
# Memcached
# ------------------------------------------------------------------ #

_PROBE_KEY = "fedilock:probe"
_MAX_KEY_LENGTH = 250
_HASHED_KEY_PREFIX = "fedilock:sha256:"


class MemcachedCache:
    """Memcached-backed cache store.

    Requires ``pymemcache`` (``pip install fedilock[memcached]``).  Use
    :meth:`single` for one ``memcache`` host and :meth:`pool` for a
    consistent-hashed ``memcached`` server list.

    ``compare_and_delete`` is a ``gets`` followed by ``delete``; memcached
    has no conditional delete, so a lease that expires and is re-taken
    between the two calls can be removed.  ``compare_and_touch`` uses
    ``gets``/``cas`` and is safe against that race.

    Keys that memcached would reject (whitespace, control or non-ASCII
    characters, longer than 250 bytes) are stored under a SHA-256 digest.

    Raises:
        BackendConstructionError: If ``pymemcache`` is missing or no server
            answers the probe.
    """

    def __init__(self, client: Any, *, label: str = "memcached"):
        try:
            from pymemcache.exceptions import MemcacheError
        except ImportError as exc:
            raise BackendConstructionError(
                "Memcached backend requires 'pymemcache'. "
                "Install with: pip install fedilock[memcached]",
                cause=exc,
            ) from exc

        self._errors: tuple[type[BaseException], ...] = (MemcacheError, OSError)
        self._client = client
        self.label = label
        try:
            self._client.get(_PROBE_KEY)
        except self._errors as exc:
            raise BackendConstructionError(
                f"{label} is unreachable: {exc}", cause=exc
            ).with_context(driver=label) from exc

    @classmethod
    def single(cls, host: str, port: int, *, timeout: float = 2.0) -> MemcachedCache:
        """One memcache daemon (``memcache`` driver)."""
        try:
            from pymemcache.client.base import Client
        except ImportError as exc:
            raise BackendConstructionError(
                "Memcache backend requires 'pymemcache'. "
                "Install with: pip install fedilock[memcached]",
                cause=exc,
            ) from exc
        client = Client((host, port), connect_timeout=timeout, timeout=timeout)
        return cls(client, label="memcache")

    @classmethod
    def pool(cls, hosts: list[tuple[str, int]], *, timeout: float = 2.0) -> MemcachedCache:
        """A hashed pool of memcached servers (``memcached`` driver)."""
        try:
            from pymemcache.client.hash import HashClient
        except ImportError as exc:
            raise BackendConstructionError(
                "Memcached backend requires 'pymemcache'. "
                "Install with: pip install fedilock[memcached]",
                cause=exc,
            ) from exc
        client = HashClient(
            hosts,
            connect_timeout=timeout,
            timeout=timeout,
            ignore_exc=False,
        )
        return cls(client, label="memcached")

    @staticmethod
    def _key(key: str) -> str:
        """Map a lock key onto a legal memcached key.

        Memcached keys are at most 250 bytes of printable ASCII without
        spaces; anything else is replaced by its SHA-256 digest.
        """
        if len(key) <= _MAX_KEY_LENGTH and all(33 <= ord(ch) <= 126 for ch in key):
            return key
        return _HASHED_KEY_PREFIX + compute_hash(key, length=64)

    @staticmethod
    def _encode(value: Any) -> bytes:
        return json.dumps(value).encode("utf-8")

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(self._key(key))
        except self._errors as exc:
            raise CacheError(f"{self.label} get failed: {exc}", cause=exc).with_context(key=key) from exc
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        try:
            self._client.set(self._key(key), self._encode(value), expire=ttl_seconds or 0, noreply=False)
        except self._errors as exc:
            raise CacheError(f"{self.label} set failed: {exc}", cause=exc).with_context(key=key) from exc

    def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            return bool(
                self._client.add(self._key(key), self._encode(value), expire=ttl_seconds, noreply=False)
            )
        except self._errors as exc:
            raise CacheError(f"{self.label} add failed: {exc}", cause=exc).with_context(key=key) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key), noreply=False)
        except self._errors as exc:
            raise CacheError(f"{self.label} delete failed: {exc}", cause=exc).with_context(
                key=key
            ) from exc

    def compare_and_delete(self, key: str, expected: Any) -> bool:
        mc_key = self._key(key)
        try:
            raw, _cas = self._client.gets(mc_key)
            if raw is None or json.loads(raw) != expected:
                return False
            return bool(self._client.delete(mc_key, noreply=False))
        except self._errors as exc:
            raise CacheError(f"{self.label} compare-and-delete failed: {exc}", cause=exc).with_context(
                key=key
            ) from exc

    def compare_and_touch(self, key: str, expected: Any, ttl_seconds: int) -> bool:
        mc_key = self._key(key)
        try:
            raw, cas = self._client.gets(mc_key)
            if raw is None or json.loads(raw) != expected:
                return False
            # cas fails if anyone wrote the key since our gets
            return bool(self._client.cas(mc_key, raw, cas, expire=ttl_seconds, noreply=False))
        except self._errors as exc:
            raise CacheError(f"{self.label} compare-and-swap failed: {exc}", cause=exc).with_context(
                key=key
            ) from exc

    def close(self) -> None:
        self._client.close()


__all__ = [
    "InMemoryCache",
    "RedisCache",
    "MemcachedCache",
]
