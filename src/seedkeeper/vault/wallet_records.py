# Seedkeeper - Wallet Record Manager
#
# The wallet record is a singleton: the most recently inserted row is the
# effective one. create_wallet() deletes older rows in the same transaction,
# and reads still pick the latest row so stores that accumulated history
# read correctly.

import sqlite3
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ..core.config import DEFAULT_LOGOUT_MINUTES
from ..errors import IncorrectPasscode, InvalidTimeout, NoWalletRecord
from ..store.secret_store import SecretStore
from .encryption import DecryptionError, EncryptionService, SecretPurpose
from .mnemonic import is_mnemonic_valid, normalize_mnemonic

T = TypeVar("T")

NEVER_EXPIRE = -1


def validate_timeout_minutes(minutes: int) -> int:
    """Accept -1 (never expire) or a positive whole number of minutes."""
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidTimeout()
    if minutes != NEVER_EXPIRE and minutes < 1:
        raise InvalidTimeout()
    return minutes


@dataclass
class WalletRecord:
    id: int
    encrypted_mnemonic: str
    passcode_hash: str
    logout_time_preference: int
    created_at: int


class WalletRecordManager:
    """Reads and writes the singleton wallet record."""

    def __init__(self, store: SecretStore):
        self.store = store

    def _read(self, conn: Optional[sqlite3.Connection], fn: Callable[[sqlite3.Connection], T]) -> T:
        if conn is not None:
            return fn(conn)
        with self.store.load() as read_conn:
            return fn(read_conn)

    def _write(self, conn: Optional[sqlite3.Connection], fn: Callable[[sqlite3.Connection], T]) -> T:
        if conn is not None:
            return fn(conn)
        return self.store.mutate(fn)

    @staticmethod
    def _latest(conn: sqlite3.Connection) -> Optional[WalletRecord]:
        row = conn.execute(
            """SELECT id, encrypted_mnemonic, passcode_hash,
                      logout_time_preference, created_at
               FROM wallet ORDER BY id DESC LIMIT 1"""
        ).fetchone()
        return WalletRecord(**dict(row)) if row is not None else None

    def _require(self, conn: sqlite3.Connection) -> WalletRecord:
        record = self._latest(conn)
        if record is None:
            raise NoWalletRecord()
        return record

    # ── Operations ───────────────────────────────────────────────────

    def create_wallet(
        self,
        encrypted_mnemonic: str,
        passcode_hash: str,
        logout_time_preference: int = DEFAULT_LOGOUT_MINUTES,
        conn: Optional[sqlite3.Connection] = None,
    ) -> WalletRecord:
        """Insert the wallet record, replacing any previous one."""
        validate_timeout_minutes(logout_time_preference)

        def _upsert(c: sqlite3.Connection) -> WalletRecord:
            cur = c.execute(
                """INSERT INTO wallet (encrypted_mnemonic, passcode_hash,
                                       logout_time_preference, created_at)
                   VALUES (?, ?, ?, ?)""",
                (encrypted_mnemonic, passcode_hash, logout_time_preference,
                 int(time.time() * 1000)),
            )
            c.execute("DELETE FROM wallet WHERE id != ?", (cur.lastrowid,))
            return self._latest(c)

        return self._write(conn, _upsert)

    def update_wallet(
        self,
        encrypted_mnemonic: str,
        passcode_hash: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> WalletRecord:
        """Replace ciphertext and verifier on the effective record.

        Raises:
            NoWalletRecord: nothing to update
        """
        def _update(c: sqlite3.Connection) -> WalletRecord:
            record = self._require(c)
            c.execute(
                "UPDATE wallet SET encrypted_mnemonic = ?, passcode_hash = ? WHERE id = ?",
                (encrypted_mnemonic, passcode_hash, record.id),
            )
            return self._latest(c)

        return self._write(conn, _update)

    def get_wallet_record(self, conn: Optional[sqlite3.Connection] = None) -> Optional[WalletRecord]:
        return self._read(conn, self._latest)

    def has_wallet_record(self) -> bool:
        """Existence check only; nothing is decrypted."""
        return self.get_wallet_record() is not None

    def set_logout_time_preference(
        self,
        minutes: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        validate_timeout_minutes(minutes)

        def _set(c: sqlite3.Connection) -> None:
            record = self._require(c)
            c.execute(
                "UPDATE wallet SET logout_time_preference = ? WHERE id = ?",
                (minutes, record.id),
            )

        self._write(conn, _set)

    def verify_passcode(
        self,
        passcode: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> WalletRecord:
        """
        Check a passcode against the stored verifier.

        Returns:
            The effective WalletRecord on success

        Raises:
            NoWalletRecord: no wallet exists
            IncorrectPasscode: verifier mismatch
        """
        record = self._read(conn, self._require)
        if not EncryptionService.verify_passcode(passcode, record.passcode_hash):
            raise IncorrectPasscode()
        return record


def decrypt_mnemonic(record: WalletRecord, passcode: str) -> str:
    """
    Decrypt and validate the wallet mnemonic.

    Raises:
        IncorrectPasscode: ciphertext did not authenticate, or the plaintext
            is not a valid mnemonic
    """
    try:
        mnemonic = EncryptionService.decrypt(
            record.encrypted_mnemonic, passcode, SecretPurpose.MNEMONIC
        )
    except DecryptionError:
        raise IncorrectPasscode("Decryption failed")
    if not is_mnemonic_valid(mnemonic):
        raise IncorrectPasscode("Decryption failed")
    return normalize_mnemonic(mnemonic)
