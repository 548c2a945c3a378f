"""Tests for fedilock.core.locking.database — locks-table driver."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from fedilock.core.connection import SqliteConnection
from fedilock.core.errors import BackendConstructionError, DatabaseError
from fedilock.core.locking import DatabaseLockDriver


@pytest.fixture()
def conn():
    c = SqliteConnection()
    yield c
    c.close()


@pytest.fixture()
def pair(conn, clock, fast_backoff):
    a = DatabaseLockDriver(conn, clock=clock, backoff=fast_backoff)
    b = DatabaseLockDriver(conn, clock=clock, backoff=fast_backoff)
    return a, b


def _row(conn, key):
    conn.execute("SELECT owner, acquired_at, expires_at FROM locks WHERE name = ?", (key,))
    return conn.fetchone()


class TestSchema:
    def test_table_created(self, conn):
        DatabaseLockDriver(conn)
        conn.execute("SELECT name, owner, acquired_at, expires_at FROM locks")
        assert conn.fetchall() == []

    def test_construction_is_idempotent(self, conn):
        DatabaseLockDriver(conn)
        DatabaseLockDriver(conn)

    def test_construction_failure(self):
        broken = MagicMock()
        broken.execute.side_effect = DatabaseError("read-only")
        with pytest.raises(BackendConstructionError):
            DatabaseLockDriver(broken)

    def test_from_url(self, tmp_path):
        driver = DatabaseLockDriver.from_url(f"sqlite:///{tmp_path / 'l.db'}")
        assert driver.info.persistent is True
        driver.close()

    def test_from_url_sqlalchemy_unreachable(self, tmp_path):
        pytest.importorskip("sqlalchemy")
        missing = tmp_path / "no" / "such" / "dir" / "locks.db"
        with pytest.raises(BackendConstructionError):
            DatabaseLockDriver.from_url(f"sqlite+pysqlite:///{missing}")


class TestRows:
    def test_timestamps_are_utc_iso_with_microseconds(self, pair, conn, clock):
        a, _ = pair
        a.acquire("k", timeout=0, ttl=10)
        owner, acquired_at, expires_at = _row(conn, "k")

        assert owner == a.owner
        assert acquired_at == datetime.fromtimestamp(clock.now, UTC).isoformat(timespec="microseconds")
        assert datetime.fromisoformat(expires_at) == datetime.fromtimestamp(clock.now + 10, UTC)

    def test_refresh_updates_expiry(self, pair, conn, clock):
        a, _ = pair
        a.acquire("k", timeout=0, ttl=10)
        clock.advance(3)
        a.acquire("k", timeout=0, ttl=10)
        _, _, expires_at = _row(conn, "k")
        assert datetime.fromisoformat(expires_at) == datetime.fromtimestamp(clock.now + 10, UTC)

    def test_reclaim_is_conditional(self, pair, conn, clock, fast_backoff):
        a, b = pair
        c = DatabaseLockDriver(conn, clock=clock, backoff=fast_backoff)
        a.acquire("k", timeout=0, ttl=10)
        _, _, stale_expiry = _row(conn, "k")
        clock.advance(10)

        assert b.acquire("k", timeout=0, ttl=10) is True
        # A contender still holding the pre-reclaim row loses the UPDATE.
        now = datetime.fromtimestamp(clock.now, UTC).isoformat(timespec="microseconds")
        assert c._take_over("k", a.owner, stale_expiry, now, now) is False
        assert _row(conn, "k")[0] == b.owner


class TestCleanup:
    def test_cleanup_expired(self, pair, clock):
        a, b = pair
        a.acquire("old", timeout=0, ttl=5)
        b.acquire("fresh", timeout=0, ttl=60)
        clock.advance(5)

        assert a.cleanup_expired() == 1
        assert b.is_locked("fresh") is True
        assert a.cleanup_expired() == 0


class TestDatabaseFailures:
    def test_failed_attempt_returns_false(self, conn, fast_backoff):
        driver = DatabaseLockDriver(conn, backoff=fast_backoff)
        conn.execute("DROP TABLE locks")
        conn.commit()

        assert driver.acquire("k", timeout=0, ttl=10) is False

    def test_release_failure_returns_false(self, conn):
        driver = DatabaseLockDriver(conn)
        driver.acquire("k", timeout=0, ttl=10)
        conn.execute("DROP TABLE locks")
        conn.commit()

        assert driver.release("k") is False


class TestSQLAlchemyBackend:
    def test_locks_over_engine_bridge(self, tmp_path, clock):
        pytest.importorskip("sqlalchemy")
        url = f"sqlite+pysqlite:///{tmp_path / 'sa.db'}"
        a = DatabaseLockDriver.from_url(url, clock=clock)
        b = DatabaseLockDriver.from_url(url, clock=clock)
        try:
            assert a.info.backend == "sqlite"
            assert a.acquire("k", timeout=0, ttl=10) is True
            assert b.acquire("k", timeout=0, ttl=10) is False
            clock.advance(10)
            assert b.acquire("k", timeout=0, ttl=10) is True
            assert a.release("k") is False
            assert b.release("k") is True
        finally:
            a.close()
            b.close()


class TestRollbackFailures:
    def test_failed_rollback_after_duplicate_is_failed_attempt(self, fast_backoff):
        sqlalchemy = pytest.importorskip("sqlalchemy")
        from fedilock.core.connection import SAConnectionBridge

        def execute(statement, params):
            if "CREATE TABLE" in str(statement):
                return MagicMock()
            raise sqlalchemy.exc.IntegrityError("INSERT", params, Exception("UNIQUE constraint failed"))

        raw = MagicMock()
        raw.execute.side_effect = execute
        raw.rollback.side_effect = sqlalchemy.exc.OperationalError("ROLLBACK", {}, Exception("connection lost"))
        driver = DatabaseLockDriver(SAConnectionBridge(raw), backoff=fast_backoff)

        assert driver.acquire("k", timeout=0, ttl=10) is False
        assert driver.held_keys() == []
