"""DDL for the tables fedilock owns.

One row per held lock.  ``name`` is the primary key, which is what makes the
acquiring ``INSERT`` atomic across processes and hosts.  Timestamps are UTC
ISO-8601 strings with fixed microsecond precision so they compare correctly
as text on every backend.
"""

from __future__ import annotations

from fedilock.core.protocols import Connection

TABLES = {
    "locks": "locks",
}

LOCKS_DDL = """
CREATE TABLE IF NOT EXISTS locks (
    name VARCHAR(255) NOT NULL PRIMARY KEY,
    owner VARCHAR(255) NOT NULL,
    acquired_at VARCHAR(40) NOT NULL,
    expires_at VARCHAR(40) NOT NULL
)
"""


def create_lock_tables(conn: Connection) -> list[str]:
    """Create the lock tables if missing (idempotent). Returns table names."""
    conn.execute(LOCKS_DDL)
    conn.commit()
    return list(TABLES.values())


__all__ = ["TABLES", "LOCKS_DDL", "create_lock_tables"]
