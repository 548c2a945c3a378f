"""Database-backed lock driver.

Manifesto:
    When workers share nothing but the database, the database is the lock.
    The ``locks`` table's primary key on ``name`` makes the acquiring
    ``INSERT`` atomic; TTL expiry is enforced by the driver, which takes
    over an expired row with a conditional ``UPDATE`` so that of several
    contenders reclaiming the same row exactly one wins.

This module provides TTL leases on the shared ``locks`` table for any store
reachable through :func:`~fedilock.core.connection.create_connection`.

Tags:
    fedilock, locking, database, distributed-locks, TTL, sqlalchemy, sqlite

Doc-Types:
    api-reference


    Lock Row Lifecycle::

        INSERT (name, owner, acquired_at, expires_at)
          ├─ ok                        → held
          └─ IntegrityError → SELECT
               ├─ owner == us          → UPDATE expires_at (refresh)
               ├─ expires_at <= now    → UPDATE ... WHERE owner=? AND expires_at=?
               │                          rowcount == 1 → held (reclaimed)
               └─ otherwise            → contended
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from fedilock.core.connection import ConnectionInfo, create_connection
from fedilock.core.errors import BackendConstructionError, DatabaseError, IntegrityError
from fedilock.core.logging import get_logger
from fedilock.core.protocols import Connection
from fedilock.core.schema import create_lock_tables

from .base import BaseLockDriver

logger = get_logger(__name__)


def _timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, UTC).isoformat(timespec="microseconds")


class DatabaseLockDriver(BaseLockDriver):
    """Lock driver storing leases as rows of the ``locks`` table.

    Example:
        >>> driver = DatabaseLockDriver.from_url("sqlite:///var/fedilock.db")
        >>> if driver.acquire("worker:queue", timeout=5, ttl=300):
        ...     try:
        ...         pass  # critical section
        ...     finally:
        ...         driver.release("worker:queue")
    """

    name = "database"
    transient_errors = (DatabaseError,)

    def __init__(self, conn: Connection, *, info: ConnectionInfo | None = None, **kwargs: Any) -> None:
        """Initialize the driver and create the ``locks`` table if missing.

        Args:
            conn: Database connection (shared; serialized by a process-local lock)
            info: Connection metadata, for diagnostics
        """
        super().__init__(**kwargs)
        self.conn = conn
        self.info = info
        self._conn_lock = threading.Lock()
        try:
            create_lock_tables(conn)
        except DatabaseError as exc:
            raise BackendConstructionError(
                f"Cannot create the locks table: {exc}", cause=exc
            ).with_context(driver=self.name) from exc

    @classmethod
    def from_url(cls, url: str | None, **kwargs: Any) -> DatabaseLockDriver:
        """Open ``url`` with :func:`create_connection` and build a driver on it."""
        try:
            conn, info = create_connection(url)
        except (DatabaseError, OSError) as exc:
            raise BackendConstructionError(
                f"Cannot open lock database {url!r}: {exc}", cause=exc
            ).with_context(driver=cls.name) from exc
        return cls(conn, info=info, **kwargs)

    # ── Backend hooks ────────────────────────────────────────────

    def _try_acquire(self, key: str, ttl: int, now: float) -> bool:
        acquired_at, expires_at = _timestamp(now), _timestamp(now + ttl)

        with self._conn_lock:
            try:
                # The row may vanish between a failed INSERT and the SELECT;
                # one more INSERT settles it.
                for _ in range(2):
                    try:
                        self.conn.execute(
                            "INSERT INTO locks (name, owner, acquired_at, expires_at) VALUES (?, ?, ?, ?)",
                            (key, self.owner, acquired_at, expires_at),
                        )
                        self.conn.commit()
                        return True
                    except IntegrityError:
                        self.conn.rollback()

                    self.conn.execute("SELECT owner, expires_at FROM locks WHERE name = ?", (key,))
                    row = self.conn.fetchone()
                    if row is not None:
                        return self._take_over(key, row[0], row[1], acquired_at, expires_at)
                self.conn.commit()
                return False
            except DatabaseError:
                self._rollback_quietly()
                raise

    def _take_over(self, key: str, owner: str, current_expiry: str, acquired_at: str, expires_at: str) -> bool:
        if owner == self.owner:
            self.conn.execute(
                "UPDATE locks SET acquired_at = ?, expires_at = ? WHERE name = ? AND owner = ?",
                (acquired_at, expires_at, key, self.owner),
            )
            self.conn.commit()
            return True

        if current_expiry > acquired_at:
            self.conn.commit()
            return False

        cursor = self.conn.execute(
            "UPDATE locks SET owner = ?, acquired_at = ?, expires_at = ? "
            "WHERE name = ? AND owner = ? AND expires_at = ?",
            (self.owner, acquired_at, expires_at, key, owner, current_expiry),
        )
        self.conn.commit()
        if cursor.rowcount != 1:
            return False

        logger.info(
            "lock_reclaimed",
            key=key,
            driver=self.name,
            previous_owner=owner,
            owner=self.owner,
        )
        return True

    def _release(self, key: str, override: bool) -> bool:
        with self._conn_lock:
            try:
                if override:
                    cursor = self.conn.execute("DELETE FROM locks WHERE name = ?", (key,))
                else:
                    cursor = self.conn.execute(
                        "DELETE FROM locks WHERE name = ? AND owner = ?",
                        (key, self.owner),
                    )
                self.conn.commit()
            except DatabaseError:
                self._rollback_quietly()
                raise
            return cursor.rowcount > 0

    def is_locked(self, key: str) -> bool:
        with self._conn_lock:
            self.conn.execute(
                "SELECT 1 FROM locks WHERE name = ? AND expires_at > ?",
                (key, _timestamp(self._clock())),
            )
            found = self.conn.fetchone() is not None
            self.conn.commit()
        return found

    def cleanup_expired(self) -> int:
        """Delete expired lock rows.

        Returns:
            Number of rows removed
        """
        with self._conn_lock:
            try:
                cursor = self.conn.execute(
                    "DELETE FROM locks WHERE expires_at <= ?",
                    (_timestamp(self._clock()),),
                )
                self.conn.commit()
            except DatabaseError:
                self._rollback_quietly()
                raise
            count = cursor.rowcount

        if count > 0:
            logger.info("expired_locks_cleaned", driver=self.name, count=count)
        return count

    def _rollback_quietly(self) -> None:
        try:
            self.conn.rollback()
        except DatabaseError as e:
            logger.warning("lock_rollback_failed", driver=self.name, error=str(e))

    def close(self) -> None:
        with self._conn_lock:
            self.conn.close()


__all__ = ["DatabaseLockDriver"]
