# Seedkeeper - Backend snapshot storage
#
# The sync daemon's state (sync folder paths and its base64 file-encryption
# keys) is captured at export time and stored encrypted in the store so a
# backup archive can rebuild it on another machine. One snapshot at a time:
# each save clears the table first.

import json
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import IncorrectPasscode
from ..store.secret_store import SecretStore
from .encryption import DecryptionError, EncryptionService, SecretPurpose

SNAPSHOT_DATA_TYPE = "main"


@dataclass
class BackendSnapshot:
    """Sync daemon state carried inside a backup."""
    public_sync_path: Optional[str] = None
    private_sync_path: Optional[str] = None
    encryption_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "public_sync_path": self.public_sync_path,
            "private_sync_path": self.private_sync_path,
            "encryption_keys": list(self.encryption_keys),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BackendSnapshot":
        """Build from the daemon's JSON shape. Raises ValueError if malformed."""
        if not isinstance(d, dict):
            raise ValueError("snapshot must be an object")
        keys = d.get("encryption_keys") or []
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise ValueError("encryption_keys must be a list of strings")
        for name in ("public_sync_path", "private_sync_path"):
            if d.get(name) is not None and not isinstance(d[name], str):
                raise ValueError(f"{name} must be a string")
        return cls(
            public_sync_path=d.get("public_sync_path"),
            private_sync_path=d.get("private_sync_path"),
            encryption_keys=keys,
        )


class BackendSnapshotStore:
    """Encrypted single-slot storage for the backend snapshot."""

    def __init__(self, store: SecretStore):
        self.store = store

    def save(
        self,
        snapshot: BackendSnapshot,
        passcode: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        encrypted = EncryptionService.encrypt(
            json.dumps(snapshot.to_dict()),
            passcode,
            SecretPurpose.BACKEND_SNAPSHOT,
        )

        def _replace(c: sqlite3.Connection) -> None:
            c.execute("DELETE FROM backend_snapshot")
            c.execute(
                "INSERT INTO backend_snapshot (data_type, encrypted_data, last_updated) "
                "VALUES (?, ?, ?)",
                (SNAPSHOT_DATA_TYPE, encrypted, int(time.time() * 1000)),
            )

        if conn is not None:
            _replace(conn)
        else:
            self.store.mutate(_replace)

    def load(
        self,
        passcode: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[BackendSnapshot]:
        """
        Decrypt the stored snapshot.

        Returns:
            BackendSnapshot, or None if no snapshot is stored

        Raises:
            IncorrectPasscode: snapshot does not decrypt under passcode
        """
        if conn is not None:
            row = self._latest(conn)
        else:
            with self.store.load() as read_conn:
                row = self._latest(read_conn)
        if row is None:
            return None

        try:
            plaintext = EncryptionService.decrypt(
                row["encrypted_data"], passcode, SecretPurpose.BACKEND_SNAPSHOT
            )
            return BackendSnapshot.from_dict(json.loads(plaintext))
        except DecryptionError:
            raise IncorrectPasscode("Backend snapshot could not be decrypted")
        except ValueError:
            raise IncorrectPasscode("Backend snapshot is malformed")

    def clear(self, conn: Optional[sqlite3.Connection] = None) -> None:
        if conn is not None:
            conn.execute("DELETE FROM backend_snapshot")
        else:
            self.store.mutate(lambda c: c.execute("DELETE FROM backend_snapshot"))

    def has_snapshot(self) -> bool:
        with self.store.load() as conn:
            return self._latest(conn) is not None

    @staticmethod
    def _latest(conn: sqlite3.Connection):
        return conn.execute(
            "SELECT encrypted_data FROM backend_snapshot WHERE data_type = ? "
            "ORDER BY id DESC LIMIT 1",
            (SNAPSHOT_DATA_TYPE,),
        ).fetchone()
