# Seedkeeper - Store schema migrations
#
# The store schema version lives in PRAGMA user_version. Each step is
# additive (create table if absent, add column if absent) and runs in its
# own transaction together with the version bump, so a step is either fully
# applied or not applied at all.

import logging
import sqlite3
from typing import Callable, List, Sequence, Tuple

from ..core.db import transaction
from ..errors import MigrationFailure

logger = logging.getLogger(__name__)

Migration = Tuple[int, str, Callable[[sqlite3.Connection], None]]


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(row[1] == column for row in rows)


def _add_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    if not _column_exists(conn, table, column):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


# ── Steps ────────────────────────────────────────────────────────────

def _create_wallet_and_session(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS wallet (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            encrypted_mnemonic TEXT NOT NULL,
            passcode_hash TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS session (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            mnemonic TEXT NOT NULL,
            expiry_timestamp INTEGER NOT NULL,
            timeout_minutes INTEGER NOT NULL DEFAULT 1440
        )
    """)


def _add_wallet_preferences(conn: sqlite3.Connection) -> None:
    _add_column(conn, "wallet", "logout_time_preference", "INTEGER NOT NULL DEFAULT 1440")
    _add_column(conn, "wallet", "created_at", "INTEGER NOT NULL DEFAULT 0")
    conn.execute(
        "UPDATE wallet SET created_at = CAST(strftime('%s', 'now') AS INTEGER) * 1000 "
        "WHERE created_at = 0"
    )


def _add_session_api_auth(conn: sqlite3.Connection) -> None:
    _add_column(conn, "session", "auth_token", "TEXT")
    _add_column(conn, "session", "token_expiry", "INTEGER")
    _add_column(conn, "session", "user_id", "TEXT")
    _add_column(conn, "session", "username", "TEXT")


def _create_sub_account_seeds(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS sub_account_seeds (
            address TEXT PRIMARY KEY,
            encrypted_seed TEXT NOT NULL,
            created_at INTEGER NOT NULL
        )
    """)


def _create_backend_snapshot(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS backend_snapshot (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            data_type TEXT NOT NULL,
            encrypted_data TEXT NOT NULL,
            last_updated INTEGER NOT NULL
        )
    """)


def _create_app_state(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS address_book (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            wallet_address TEXT NOT NULL,
            date_added INTEGER NOT NULL
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_address_book_name ON address_book(name)"
    )
    conn.execute("""
        CREATE TABLE IF NOT EXISTS node_config (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            wss_endpoint TEXT NOT NULL,
            date_updated INTEGER NOT NULL
        )
    """)


MIGRATIONS: List[Migration] = [
    (1, "wallet and session tables", _create_wallet_and_session),
    (2, "wallet logout preference and created_at", _add_wallet_preferences),
    (3, "session api auth columns", _add_session_api_auth),
    (4, "sub account seeds", _create_sub_account_seeds),
    (5, "backend snapshot", _create_backend_snapshot),
    (6, "address book and node config", _create_app_state),
]

LATEST_VERSION = MIGRATIONS[-1][0]


def get_schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def apply_migrations(
    conn: sqlite3.Connection,
    steps: Sequence[Migration] = MIGRATIONS,
) -> List[int]:
    """Bring a store up to the newest schema version.

    The connection must be in autocommit mode (isolation_level=None).

    Returns:
        Versions applied by this call, in order (empty if already current).

    Raises:
        MigrationFailure: a step failed (user_version stays at the last
            good step), or the store is newer than this build understands.
    """
    try:
        current = get_schema_version(conn)
    except sqlite3.Error as exc:
        raise MigrationFailure(f"Could not read schema version: {exc}") from exc

    latest = steps[-1][0] if steps else 0
    if current > latest:
        raise MigrationFailure(
            f"Store schema version {current} is newer than supported version {latest}"
        )

    applied = []
    for version, description, step in steps:
        if version <= current:
            continue
        try:
            with transaction(conn):
                step(conn)
                conn.execute(f"PRAGMA user_version = {int(version)}")
        except sqlite3.Error as exc:
            logger.error("Migration %d (%s) failed: %s", version, description, exc)
            raise MigrationFailure(
                f"Migration {version} ({description}) failed: {exc}"
            ) from exc
        logger.info("Applied store migration %d: %s", version, description)
        applied.append(version)
        current = version
    return applied
