# Seedkeeper - Embedded Secret Store
#
# One SQLite file holds every table (wallet, session, sub-account seeds,
# backend snapshot, address book, node config).
#
# Concurrency: a single process-wide writer. Every mutation runs under one
# RLock inside one BEGIN IMMEDIATE transaction, so read-modify-write cycles
# (check passcode, then upsert) cannot lose updates.
#
# Connections are short-lived (one per operation) so persist() can swap the
# whole file atomically: temp file → fsync → os.replace.

import logging
import os
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from ..core import EventSeverity, EventType, get_audit_logger
from ..core.db import connect as db_connect
from ..core.db import transaction
from ..errors import InvalidArchive, StoreUnavailable, VaultError
from .migrations import apply_migrations, get_schema_version

logger = logging.getLogger(__name__)

T = TypeVar("T")

SQLITE_HEADER = b"SQLite format 3\x00"
STORE_FILE_MODE = 0o600


class SecretStore:
    """Single-file SQLite store with transactional mutations.

    Args:
        path: Location of the store file. Created on first use if absent.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._ready = False

    # ── Connections ──────────────────────────────────────────────────

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Map low-level failures to StoreUnavailable; vault errors pass through."""
        try:
            yield
        except VaultError:
            raise
        except (sqlite3.Error, OSError) as exc:
            logger.error("Secret store failure at %s: %s", self.path, exc)
            get_audit_logger().log_event(
                EventType.STORE_ERROR,
                EventSeverity.ALERT,
                "Secret store could not be read or written",
                details={"error": type(exc).__name__},
            )
            raise StoreUnavailable(f"Secret store is unavailable: {exc}") from exc

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = db_connect(self.path, row_factory=True, autocommit=True)
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_ready(self) -> None:
        """Create the file if absent and bring its schema up to date."""
        if self._ready:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        created = not self.path.exists()
        with self._connect() as conn:
            applied = apply_migrations(conn)
        if created:
            os.chmod(self.path, STORE_FILE_MODE)
        if applied:
            get_audit_logger().log_vault_event(
                EventType.STORE_MIGRATED,
                f"store schema migrated to version {applied[-1]}",
                details={"versions": applied, "created": created},
            )
        self._ready = True

    # ── Public API ───────────────────────────────────────────────────

    @contextmanager
    def load(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection for reading the current committed state."""
        with self._lock, self._guard():
            self._ensure_ready()
            with self._connect() as conn:
                yield conn

    def mutate(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn(conn) inside one write transaction and return its result.

        Commits if fn returns, rolls back if it raises (the exception
        propagates unchanged when it is a VaultError).
        """
        with self._lock, self._guard():
            self._ensure_ready()
            with self._connect() as conn:
                with transaction(conn):
                    return fn(conn)

    def export(self) -> bytes:
        """Byte-for-byte copy of the committed store file."""
        with self._lock, self._guard():
            self._ensure_ready()
            return self.path.read_bytes()

    def persist(self, data: bytes) -> None:
        """Atomically replace the store with data, then migrate it.

        Raises:
            InvalidArchive: data is not a SQLite database
            StoreUnavailable: the file could not be written
        """
        with self.open_bytes(data):
            pass

        with self._lock, self._guard():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # A leftover journal belongs to the old file and must not be replayed
            self._journal_path().unlink(missing_ok=True)
            self._atomic_write(data)
            self._ready = False
            self._ensure_ready()
        logger.info("Secret store replaced (%d bytes)", len(data))

    def reset(self) -> None:
        """Replace the store with a fresh, empty, migrated database."""
        with self._lock, self._guard():
            for candidate in (self.path, self._journal_path()):
                if candidate.exists():
                    candidate.unlink()
            self._ready = False
            self._ensure_ready()
        logger.info("Secret store reset at %s", self.path)

    def schema_version(self) -> int:
        with self.load() as conn:
            return get_schema_version(conn)

    @staticmethod
    @contextmanager
    def open_bytes(data: bytes) -> Iterator[sqlite3.Connection]:
        """Load store bytes as a standalone in-memory database.

        The copy is migrated in memory so older backups read like current
        ones. Nothing on disk is touched.

        Raises:
            InvalidArchive: data is not a usable SQLite database
        """
        if not isinstance(data, (bytes, bytearray)) or not data.startswith(SQLITE_HEADER):
            raise InvalidArchive("Backup does not contain a valid store")

        conn = sqlite3.connect(":memory:", isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            try:
                conn.deserialize(bytes(data))
                check = conn.execute("PRAGMA quick_check").fetchone()
            except sqlite3.Error as exc:
                raise InvalidArchive(f"Backup store is damaged: {exc}") from exc
            if check is None or check[0] != "ok":
                raise InvalidArchive("Backup store failed its integrity check")
            apply_migrations(conn)
            yield conn
        finally:
            conn.close()

    # ── Internals ────────────────────────────────────────────────────

    def _journal_path(self) -> Path:
        return self.path.with_name(self.path.name + "-journal")

    def _atomic_write(self, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, STORE_FILE_MODE)
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
