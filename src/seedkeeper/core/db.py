# Seedkeeper - Central SQLite Connection Helper
#
# Every Seedkeeper SQLite connection should come from `connect()` in this
# module instead of raw `sqlite3.connect()`. This ensures:
#
#   - rollback-journal mode (the committed state is always one file)
#   - busy_timeout to avoid SQLITE_BUSY under contention
#   - foreign_keys enforcement on every connection
#
# The secret store is exported and restored byte-for-byte, so it must never
# have committed pages parked in a -wal side file.

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    check_same_thread: bool = True,
    autocommit: bool = False,
) -> sqlite3.Connection:
    """Open a SQLite connection with safe PRAGMAs.

    Args:
        db_path: Path to the database file (or ":memory:").
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        check_same_thread: Passed to sqlite3.connect().
        autocommit: If True, disable implicit transactions
            (isolation_level=None) so callers issue BEGIN/COMMIT themselves.

    Returns:
        sqlite3.Connection with DELETE journal mode, busy_timeout, and foreign_keys.
    """
    conn = sqlite3.connect(
        str(db_path),
        check_same_thread=check_same_thread,
        isolation_level=None if autocommit else "",
    )
    conn.execute("PRAGMA journal_mode=DELETE")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection, immediate: bool = True) -> Iterator[sqlite3.Connection]:
    """Run a block inside one explicit transaction on an autocommit connection.

    BEGIN IMMEDIATE takes the write lock up front so a read-modify-write
    cycle cannot interleave with another writer.
    """
    conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
