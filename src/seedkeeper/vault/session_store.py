# Seedkeeper - Persisted Session Store
#
# "Remember me" support: the session table keeps one row holding the
# mnemonic of a remembered session, its absolute expiry (epoch ms) and the
# user's timeout preference, plus the sync API's auth token.
#
# Security:
#   - Secret columns (mnemonic, auth_token) are AES-256-GCM encrypted under a
#     random per-device key kept in device.key (mode 0600) beside the store
#   - The device key is never inside the store file, so a backup archive
#     cannot revive a session on another machine
#   - A row that fails to decrypt is treated as "no session"

import logging
import os
import sqlite3
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import StoreUnavailable
from ..store.secret_store import SecretStore
from .encryption import DecryptionError, EncryptionService, SecretPurpose

logger = logging.getLogger(__name__)

DEVICE_KEY_LENGTH = 32
DEFAULT_API_TOKEN_TTL_HOURS = 24

SESSION_SECRET_RESET = "mnemonic = '', expiry_timestamp = 0"
API_AUTH_RESET = "auth_token = NULL, token_expiry = NULL, user_id = NULL, username = NULL"


@dataclass
class PersistedSession:
    mnemonic: str
    expiry_timestamp: int  # epoch ms
    timeout_minutes: int


@dataclass
class ApiAuth:
    auth_token: str
    token_expiry: int  # epoch ms
    user_id: Optional[str] = None
    username: Optional[str] = None


class DeviceKey:
    """Random 256-bit key file that never leaves this machine."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._key: Optional[bytes] = None
        self._lock = threading.Lock()

    def get(self) -> bytes:
        """Load the key, creating it on first use."""
        with self._lock:
            if self._key is not None:
                return self._key
            try:
                if self.path.exists():
                    key = self.path.read_bytes()
                    if len(key) == DEVICE_KEY_LENGTH:
                        self._key = key
                        return key
                    logger.warning("Device key at %s is malformed; regenerating", self.path)
                self._key = self._create()
            except OSError as exc:
                raise StoreUnavailable(f"Device key is unavailable: {exc}") from exc
            return self._key

    def _create(self) -> bytes:
        key = os.urandom(DEVICE_KEY_LENGTH)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".device.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(key)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Created device key at %s", self.path)
        return key


class PersistedSessionStore:
    """Single-row persisted session and API auth record."""

    ROW_ID = 1

    def __init__(self, store: SecretStore, device_key: DeviceKey):
        self.store = store
        self.device_key = device_key

    # ── Secret column helpers ────────────────────────────────────────

    def _seal(self, value: str) -> str:
        return EncryptionService.encrypt_with_key(
            value, self.device_key.get(), SecretPurpose.PERSISTED_SESSION
        )

    def _open(self, token: str) -> Optional[str]:
        try:
            return EncryptionService.decrypt_with_key(
                token, self.device_key.get(), SecretPurpose.PERSISTED_SESSION
            )
        except DecryptionError:
            logger.warning("Persisted session could not be decrypted; ignoring it")
            return None

    def _row(self, conn: sqlite3.Connection):
        return conn.execute(
            """SELECT mnemonic, expiry_timestamp, timeout_minutes,
                      auth_token, token_expiry, user_id, username
               FROM session ORDER BY id DESC LIMIT 1"""
        ).fetchone()

    # ── Remembered session ───────────────────────────────────────────

    def save_session(self, mnemonic: str, expiry_timestamp: int, timeout_minutes: int) -> None:
        """Replace the persisted session, keeping any stored API auth."""
        sealed = self._seal(mnemonic)

        def _replace(conn: sqlite3.Connection) -> None:
            previous = self._row(conn)
            conn.execute("DELETE FROM session")
            conn.execute(
                """INSERT INTO session (id, mnemonic, expiry_timestamp, timeout_minutes,
                                        auth_token, token_expiry, user_id, username)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    self.ROW_ID, sealed, expiry_timestamp, timeout_minutes,
                    previous["auth_token"] if previous else None,
                    previous["token_expiry"] if previous else None,
                    previous["user_id"] if previous else None,
                    previous["username"] if previous else None,
                ),
            )

        self.store.mutate(_replace)

    def get_session(self) -> Optional[PersistedSession]:
        """The remembered session, or None if absent, cleared or unreadable."""
        with self.store.load() as conn:
            row = self._row(conn)
        if row is None or not row["mnemonic"]:
            return None
        mnemonic = self._open(row["mnemonic"])
        if mnemonic is None:
            return None
        return PersistedSession(
            mnemonic=mnemonic,
            expiry_timestamp=row["expiry_timestamp"],
            timeout_minutes=row["timeout_minutes"],
        )

    def clear_session(
        self,
        api_auth: bool = False,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Drop the secret and expiry; the timeout preference stays.

        With api_auth the stored sync API auth is dropped as well.
        """
        columns = [SESSION_SECRET_RESET, API_AUTH_RESET] if api_auth else [SESSION_SECRET_RESET]
        sql = "UPDATE session SET " + ", ".join(columns)
        if conn is not None:
            conn.execute(sql)
        else:
            self.store.mutate(lambda c: c.execute(sql))

    def update_expiry(self, expiry_timestamp: Optional[int], timeout_minutes: int) -> None:
        """Rewrite only the expiry and preference, never the secret.

        With expiry_timestamp None only the preference changes.
        """
        def _update(conn: sqlite3.Connection) -> None:
            if self._row(conn) is None:
                conn.execute(
                    "INSERT INTO session (id, mnemonic, expiry_timestamp, timeout_minutes) "
                    "VALUES (?, '', 0, ?)",
                    (self.ROW_ID, timeout_minutes),
                )
                return
            if expiry_timestamp is None:
                conn.execute("UPDATE session SET timeout_minutes = ?", (timeout_minutes,))
                return
            conn.execute(
                "UPDATE session SET timeout_minutes = ?, "
                "expiry_timestamp = CASE WHEN mnemonic = '' THEN 0 ELSE ? END",
                (timeout_minutes, expiry_timestamp),
            )

        self.store.mutate(_update)

    def get_timeout_minutes(self) -> Optional[int]:
        with self.store.load() as conn:
            row = self._row(conn)
        return row["timeout_minutes"] if row is not None else None

    # ── Sync API auth ────────────────────────────────────────────────

    def set_api_auth(
        self,
        auth_token: str,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        ttl_hours: int = DEFAULT_API_TOKEN_TTL_HOURS,
    ) -> ApiAuth:
        auth = ApiAuth(
            auth_token=auth_token,
            token_expiry=int(time.time() * 1000) + ttl_hours * 3_600_000,
            user_id=user_id,
            username=username,
        )
        sealed = self._seal(auth_token)

        def _write(conn: sqlite3.Connection) -> None:
            params = (sealed, auth.token_expiry, user_id, username)
            if self._row(conn) is None:
                conn.execute(
                    """INSERT INTO session (id, mnemonic, expiry_timestamp,
                                            auth_token, token_expiry, user_id, username)
                       VALUES (?, '', 0, ?, ?, ?, ?)""",
                    (self.ROW_ID,) + params,
                )
            else:
                conn.execute(
                    "UPDATE session SET auth_token = ?, token_expiry = ?, "
                    "user_id = ?, username = ?",
                    params,
                )

        self.store.mutate(_write)
        return auth

    def get_api_auth(self) -> Optional[ApiAuth]:
        """Stored API auth if present and not expired."""
        with self.store.load() as conn:
            row = self._row(conn)
        if row is None or not row["auth_token"]:
            return None
        if row["token_expiry"] is None or row["token_expiry"] <= int(time.time() * 1000):
            return None
        token = self._open(row["auth_token"])
        if token is None:
            return None
        return ApiAuth(
            auth_token=token,
            token_expiry=row["token_expiry"],
            user_id=row["user_id"],
            username=row["username"],
        )

    def clear_api_auth(self) -> None:
        self.store.mutate(
            lambda conn: conn.execute("UPDATE session SET " + API_AUTH_RESET)
        )
