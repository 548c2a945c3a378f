"""
Relational store connections for the database lock driver.

``create_connection(url)`` routes on the URL scheme and returns an object
satisfying :class:`~fedilock.core.protocols.Connection` together with
:class:`ConnectionInfo` metadata:

- ``None`` / ``"memory"`` / ``sqlite://`` → in-memory SQLite (stdlib)
- ``sqlite:///path`` or a bare path → file-based SQLite (stdlib)
- anything else (``postgresql://``, ``mysql+pymysql://`` ...) → SQLAlchemy
  engine bridge (``pip install fedilock[postgres]``)

Both adapters accept ``?`` placeholders and translate driver exceptions:
unique-constraint violations become
:class:`~fedilock.core.errors.IntegrityError`, everything else a
:class:`~fedilock.core.errors.DatabaseError`.

Tags:
    connection, sqlite, sqlalchemy, database, fedilock

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fedilock.core.errors import BackendConstructionError, DatabaseError, IntegrityError
from fedilock.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    """Backend identifier: ``"sqlite"`` or the SQLAlchemy dialect name."""

    persistent: bool
    """Whether data survives process exit (and is visible to other processes)."""

    url: str
    """The original URL or path used to create the connection."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"


# ── SQLite (stdlib) ──────────────────────────────────────────────────────


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Keeps a single cursor so ``execute`` / ``fetchone`` / ``fetchall`` share
    one result set.  ``busy_timeout`` is how long SQLite waits on another
    process's write lock before raising.
    """

    def __init__(self, path: str = ":memory:", *, busy_timeout: float = 30.0) -> None:
        self._conn = sqlite3.connect(path, timeout=busy_timeout, check_same_thread=False)
        self._cursor = self._conn.cursor()

    def execute(self, sql: str, params: tuple = ()) -> Any:
        try:
            self._cursor.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            raise IntegrityError(str(exc), cause=exc) from exc
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc), cause=exc) from exc
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    def commit(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc), cause=exc) from exc

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc), cause=exc) from exc

    def close(self) -> None:
        self._conn.close()

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"


# ── SQLAlchemy bridge ────────────────────────────────────────────────────


def _qmark_to_named(sql: str, params: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """Rewrite ``?`` placeholders as ``:p0, :p1 ...`` for ``text()``."""
    rewritten, idx = [], 0
    for ch in sql:
        if ch == "?":
            rewritten.append(f":p{idx}")
            idx += 1
        else:
            rewritten.append(ch)
    return "".join(rewritten), {f"p{i}": v for i, v in enumerate(params)}


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Connection`` look like the
    ``Connection`` protocol.

    Uses SQLAlchemy 2.0 "commit as you go" semantics: ``commit`` and
    ``rollback`` end the implicit transaction begun by ``execute``.
    """

    def __init__(self, connection: Any) -> None:
        from sqlalchemy import exc as sa_exc

        self._conn = connection
        self._sa_exc = sa_exc
        self._last_result: Any = None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> SAConnectionBridge:
        from sqlalchemy import text

        statement, mapping = _qmark_to_named(sql, params)
        try:
            self._last_result = self._conn.execute(text(statement), mapping)
        except self._sa_exc.IntegrityError as exc:
            raise IntegrityError(str(exc.orig), cause=exc) from exc
        except self._sa_exc.SQLAlchemyError as exc:
            raise DatabaseError(str(exc), cause=exc) from exc
        return self

    @property
    def rowcount(self) -> int:
        if self._last_result is None:
            return -1
        return self._last_result.rowcount

    def fetchone(self) -> tuple[Any, ...] | None:
        if self._last_result is None:
            return None
        row = self._last_result.fetchone()
        return tuple(row) if row is not None else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        if self._last_result is None:
            return []
        return [tuple(r) for r in self._last_result.fetchall()]

    def commit(self) -> None:
        try:
            self._conn.commit()
        except self._sa_exc.SQLAlchemyError as exc:
            raise DatabaseError(str(exc), cause=exc) from exc

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except self._sa_exc.SQLAlchemyError as exc:
            raise DatabaseError(str(exc), cause=exc) from exc

    def close(self) -> None:
        self._conn.close()


# ── URL routing ──────────────────────────────────────────────────────────


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into ``(scheme, target)``.

    ``scheme`` is one of ``"memory"``, ``"sqlite"``, ``"sqlalchemy"``.
    """
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"

    for prefix in ("sqlite:///", "sqlite://"):
        if db.startswith(prefix):
            path = db[len(prefix):]
            if not path or path == ":memory:":
                return "memory", ":memory:"
            return "sqlite", path

    if "://" in db:
        return "sqlalchemy", db

    return "sqlite", db


def _create_sqlalchemy(url: str) -> tuple[SAConnectionBridge, ConnectionInfo]:
    try:
        from sqlalchemy import create_engine
        from sqlalchemy.exc import SQLAlchemyError
    except ImportError as exc:
        raise BackendConstructionError(
            f"Database URL {url!r} requires SQLAlchemy. "
            "Install with: pip install fedilock[postgres]",
            cause=exc,
        ) from exc

    try:
        engine = create_engine(url, pool_pre_ping=True)
        bridge = SAConnectionBridge(engine.connect())
    except (SQLAlchemyError, ImportError) as exc:
        # ImportError: the dialect's DBAPI module is not installed
        raise BackendConstructionError(f"Cannot connect to {url!r}: {exc}", cause=exc) from exc

    info = ConnectionInfo(backend=engine.dialect.name, persistent=True, url=url)
    return bridge, info


def create_connection(db: str | None = None) -> tuple[Any, ConnectionInfo]:
    """Create a database connection from a URL, path, or keyword.

    Examples
    --------
    ::

        conn, info = create_connection()                        # ephemeral
        conn, info = create_connection("sqlite:///var/locks.db")
        conn, info = create_connection("postgresql://fedi:fedi@db/fedi")
    """
    scheme, target = _parse_url(db)

    if scheme == "memory":
        return SqliteConnection(":memory:"), ConnectionInfo(
            backend="sqlite", persistent=False, url=":memory:"
        )

    if scheme == "sqlite":
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        resolved = str(path.resolve())
        logger.debug("sqlite_connection_opened", path=resolved)
        return SqliteConnection(resolved), ConnectionInfo(
            backend="sqlite", persistent=True, url=target, resolved_path=resolved
        )

    return _create_sqlalchemy(target)


__all__ = [
    "ConnectionInfo",
    "SqliteConnection",
    "SAConnectionBridge",
    "create_connection",
]
