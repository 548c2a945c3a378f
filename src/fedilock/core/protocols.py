"""
Canonical protocols for the backing stores the lock drivers consume.

The lock core never talks to ``sqlite3``, SQLAlchemy, ``redis`` or
``pymemcache`` directly.  Drivers depend on the two narrow contracts below;
adapters in :mod:`fedilock.core.connection` and :mod:`fedilock.core.cache`
satisfy them and translate driver-specific exceptions into
:mod:`fedilock.core.errors` types.

Manifesto:
    - **Narrow interfaces:** only the atomic primitives the lock algorithms
      need (unique insert, conditional update/delete, set-if-absent)
    - **Structural typing:** ``Protocol`` instead of base classes, so test
      doubles need no inheritance
    - **Exception translation at the edge:** drivers catch
      ``IntegrityError`` / ``DatabaseError`` / ``CacheError`` only

Architecture:
    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → cursor-like (rowcount)        │
        │ fetchone() / fetchall()                                │
        │ commit() / rollback() / close()                        │
        └────────────────────────────────────────────────────────┘

        CacheStore Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ get(key)                        → value | None         │
        │ set(key, value, ttl_seconds=)                          │
        │ set_if_absent(key, value, ttl)  → bool (atomic)        │
        │ delete(key)                                            │
        │ compare_and_delete(key, value)  → bool                 │
        │ compare_and_touch(key, value, ttl) → bool              │
        │ close()                                                │
        └────────────────────────────────────────────────────────┘

Tags:
    protocol, connection, cache, fedilock, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal synchronous connection interface for the database lock driver.

    SQL uses ``?`` positional placeholders.  ``execute`` returns an object
    exposing ``rowcount`` for the last statement.  Adapters raise
    :class:`~fedilock.core.errors.IntegrityError` on unique-constraint
    violations and :class:`~fedilock.core.errors.DatabaseError` for any
    other driver failure.
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class CacheStore(Protocol):
    """
    Distributed key/value cache with TTL and an atomic set-if-absent.

    Keys are strings, values are JSON-serializable.  All operations are
    atomic with respect to concurrent callers; transport failures surface
    as :class:`~fedilock.core.errors.CacheError`.
    """

    def get(self, key: str) -> Any | None:
        """Return the value, or ``None`` if absent or expired."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value unconditionally."""
        ...

    def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store a value only if the key is absent; ``True`` if stored."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. No-op if it does not exist."""
        ...

    def compare_and_delete(self, key: str, expected: Any) -> bool:
        """Remove a key only if it currently holds ``expected``."""
        ...

    def compare_and_touch(self, key: str, expected: Any, ttl_seconds: int) -> bool:
        """Reset the TTL of a key only if it currently holds ``expected``."""
        ...

    def close(self) -> None:
        ...


__all__ = [
    "Connection",
    "CacheStore",
]
