"""Backup manager: export and restore the secret store as a portable archive.

The archive is a ZIP (deflated) with exactly one entry, ``seedkeeper.db``:
a byte-for-byte copy of the store file. Secrets inside it are already
encrypted under the user's passcode, so the archive itself is not wrapped
in another layer.

Restore is validate-then-swap: the archive's store is opened in memory,
its wallet record is checked against the passcode and its mnemonic is
decrypted and validated. Only then is the local store replaced, atomically.
Any failure leaves the local store byte-for-byte unchanged.
"""

import io
import logging
import os
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Optional

from ..core import EventSeverity, EventType, get_audit_logger
from ..errors import InvalidArchive, VaultError
from ..store.secret_store import SecretStore
from ..vault.backend_snapshot import BackendSnapshotStore
from ..vault.wallet_records import WalletRecordManager, decrypt_mnemonic
from .snapshot_client import SnapshotClient

logger = logging.getLogger(__name__)

ARCHIVE_ENTRY_NAME = "seedkeeper.db"

# Refuse to inflate anything larger than this (zip bomb guard)
MAX_STORE_BYTES = 256 * 1024 * 1024


class BackupManager:
    """Orchestrates vault export and restore.

    Args:
        store: The live secret store.
        wallet_records: Wallet record access (passcode checks).
        snapshots: Encrypted backend snapshot slot.
        snapshot_client: Sync daemon collaborator; None disables snapshots.
    """

    def __init__(
        self,
        store: SecretStore,
        wallet_records: WalletRecordManager,
        snapshots: BackendSnapshotStore,
        snapshot_client: Optional[SnapshotClient] = None,
    ):
        self.store = store
        self.wallet_records = wallet_records
        self.snapshots = snapshots
        self.snapshot_client = snapshot_client
        self._lock = threading.Lock()

    # ── Export ───────────────────────────────────────────────────────

    def export_vault(self, passcode: Optional[str] = None) -> bytes:
        """Build a backup archive of the current store.

        With a passcode, the sync daemon's snapshot is fetched and stored
        (encrypted) first so it travels with the backup.

        Raises:
            NoWalletRecord / IncorrectPasscode: passcode check failed.
            SnapshotUnavailable: the sync daemon could not be reached.
            StoreUnavailable: the store could not be read.
        """
        with self._lock:
            if passcode is not None:
                self.wallet_records.verify_passcode(passcode)
                if self.snapshot_client is not None:
                    snapshot = self.snapshot_client.fetch()
                    self.snapshots.save(snapshot, passcode)
                    logger.info(
                        "Backend snapshot captured (%d keys)", len(snapshot.encryption_keys)
                    )

            data = self.store.export()
            archive = self.build_archive(data)

        self._audit_log(EventType.BACKUP_EXPORTED, "Vault backup exported", {
            "store_bytes": len(data),
            "archive_bytes": len(archive),
            "with_snapshot": passcode is not None and self.snapshot_client is not None,
        })
        return archive

    @staticmethod
    def build_archive(data: bytes) -> bytes:
        """Wrap store bytes into a single-entry ZIP."""
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(ARCHIVE_ENTRY_NAME, data)
        return buf.getvalue()

    @staticmethod
    def extract_store(archive: bytes) -> bytes:
        """Pull the store bytes out of an archive.

        Raises:
            InvalidArchive: not a ZIP, or the store entry is missing/oversized.
        """
        try:
            with zipfile.ZipFile(io.BytesIO(archive), "r") as zf:
                try:
                    info = zf.getinfo(ARCHIVE_ENTRY_NAME)
                except KeyError:
                    raise InvalidArchive(f"Backup is missing {ARCHIVE_ENTRY_NAME}")
                if info.file_size > MAX_STORE_BYTES:
                    raise InvalidArchive("Backup store is too large")
                return zf.read(info)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, ValueError) as exc:
            raise InvalidArchive(f"Backup is not a valid archive: {exc}") from exc
        except TypeError as exc:
            raise InvalidArchive("Backup must be bytes") from exc

    # ── Restore ──────────────────────────────────────────────────────

    def restore_vault(self, archive: bytes, passcode: str) -> str:
        """Restore the local store from a backup archive.

        Args:
            archive: Archive bytes (as produced by export_vault()).
            passcode: Passcode of the wallet inside the archive.

        Returns:
            The restored wallet mnemonic.

        Raises:
            InvalidArchive: archive or embedded store unusable.
            NoWalletRecord: archive holds no wallet.
            IncorrectPasscode: passcode rejected or mnemonic invalid.
        """
        try:
            with self._lock:
                data = self.extract_store(archive)
                with self.store.open_bytes(data) as conn:
                    record = self.wallet_records.verify_passcode(passcode, conn=conn)
                    mnemonic = decrypt_mnemonic(record, passcode)
                self.store.persist(data)
        except VaultError as exc:
            self._audit_log(
                EventType.BACKUP_RESTORE_FAILED,
                f"Vault restore rejected: {exc.message}",
                {"reason": exc.code.value},
                severity=EventSeverity.INVESTIGATE,
            )
            raise

        self._audit_log(EventType.BACKUP_RESTORED, "Vault restored from backup", {
            "store_bytes": len(data),
        })
        return mnemonic

    def import_backend_snapshot(self, passcode: str) -> Optional[str]:
        """Hand the restored backend snapshot to the sync daemon.

        Returns:
            The daemon's status message, or None when there is nothing to
            import (no snapshot stored, or no daemon configured).
        """
        if self.snapshot_client is None:
            return None
        snapshot = self.snapshots.load(passcode)
        if snapshot is None:
            return None
        message = self.snapshot_client.import_snapshot(snapshot)
        logger.info("Backend snapshot imported: %s", message)
        return message

    # ── File helpers ─────────────────────────────────────────────────

    @staticmethod
    def write_archive(path: Path, archive: bytes) -> Path:
        """Save an archive to disk atomically (mode 0600)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".backup.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(archive)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path

    @staticmethod
    def read_archive(path: Path) -> bytes:
        """Load an archive from disk. Raises InvalidArchive if unreadable."""
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise InvalidArchive(f"Backup file could not be read: {exc}") from exc

    @staticmethod
    def _audit_log(
        event_type: EventType,
        message: str,
        details: dict,
        severity: EventSeverity = EventSeverity.INFO,
    ):
        get_audit_logger().log_event(event_type, severity, message, details=details)
