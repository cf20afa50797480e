# Seedkeeper - Wallet Vault facade
#
# The only surface the UI layer talks to. Wires the store, record managers,
# session manager and backup manager together, and converts every
# VaultError into a VaultResult so nothing below this boundary leaks
# exceptions into the UI.
#
# Security:
# - Mnemonic and seeds encrypted with AES-256-GCM under per-purpose keys
# - Passcode never stored (deterministic PBKDF2 verifier only)
# - Audit logging for every security-relevant action (never secret values)

import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..backup.backup_manager import BackupManager
from ..backup.snapshot_client import HttpSnapshotClient, SnapshotClient
from ..core import EventSeverity, EventType, VaultSettings, get_audit_logger, load_settings
from ..errors import (
    ContactNotFound,
    ErrorCode,
    IncorrectPasscode,
    InvalidMnemonic,
    VaultError,
    WeakPasscode,
)
from ..store.app_state import AddressBook, NodeConfig
from ..store.secret_store import SecretStore
from .backend_snapshot import BackendSnapshotStore
from .encryption import EncryptionService, SecretPurpose, verify_passcode_strength
from .mnemonic import derive_address, is_mnemonic_valid, normalize_mnemonic
from .session_manager import Session, SessionManager
from .session_store import DeviceKey, PersistedSessionStore
from .sub_account_seeds import SubAccountSeedManager
from .wallet_records import WalletRecord, WalletRecordManager, decrypt_mnemonic

logger = logging.getLogger(__name__)


@dataclass
class VaultResult:
    """Outcome of a facade call."""
    success: bool
    value: Any = None
    error: Optional[ErrorCode] = None
    message: str = ""

    @classmethod
    def ok(cls, value: Any = None, message: str = "") -> "VaultResult":
        return cls(success=True, value=value, message=message)

    @classmethod
    def fail(cls, exc: VaultError) -> "VaultResult":
        return cls(success=False, error=exc.code, message=exc.message)


def _session_view(session: Optional[Session]) -> Optional[Dict[str, Any]]:
    if session is None:
        return None
    return {
        "address": session.address,
        "established_at": session.established_at,
        "expires_at": session.expires_at,
        "timeout_minutes": session.timeout_minutes,
    }


class WalletVault:
    """
    Local encrypted seed vault.

    Usage::

        vault = WalletVault(load_settings())
        vault.create_wallet(mnemonic, "Str0ng!Pass1")
        result = vault.unlock("Str0ng!Pass1", remember=True)
        if result.success:
            print(result.value["address"])

    Args:
        settings: Resolved configuration (default: load_settings())
        snapshot_client: Sync daemon collaborator (default: HTTP client for
            settings.sync_api_url)
        clock: Epoch-seconds clock for session timers
        address_deriver: mnemonic → account address
    """

    def __init__(
        self,
        settings: Optional[VaultSettings] = None,
        snapshot_client: Optional[SnapshotClient] = None,
        clock: Callable[[], float] = time.time,
        address_deriver: Callable[[str], str] = derive_address,
    ):
        self.settings = settings or load_settings()
        self.store = SecretStore(self.settings.store_path)

        self.wallet_records = WalletRecordManager(self.store)
        self.seeds = SubAccountSeedManager(self.store, self.wallet_records)
        self.snapshots = BackendSnapshotStore(self.store)
        self.persisted_sessions = PersistedSessionStore(
            self.store, DeviceKey(self.settings.device_key_path)
        )
        self.sessions = SessionManager(
            self.wallet_records,
            self.persisted_sessions,
            inactivity_minutes=self.settings.inactivity_minutes,
            default_timeout_minutes=self.settings.default_logout_minutes,
            clock=clock,
            address_deriver=address_deriver,
        )
        if snapshot_client is None:
            snapshot_client = HttpSnapshotClient(self.settings.sync_api_url)
        self.backups = BackupManager(
            self.store, self.wallet_records, self.snapshots, snapshot_client
        )
        self.address_book = AddressBook(self.store)
        self.node_config = NodeConfig(self.store)

        self.logger = get_audit_logger()

    def _run(self, operation: str, fn: Callable[[], Any], message: str = "") -> VaultResult:
        """Call fn and wrap its value or VaultError in a VaultResult."""
        try:
            return VaultResult.ok(fn(), message=message)
        except VaultError as exc:
            logger.info("%s failed: %s (%s)", operation, exc.message, exc.code.value)
            return VaultResult.fail(exc)

    # ── Wallet ───────────────────────────────────────────────────────

    def has_wallet(self) -> VaultResult:
        return self._run("has_wallet", self.wallet_records.has_wallet_record)

    def get_wallet_record(self) -> VaultResult:
        """Value: WalletRecord or None."""
        return self._run("get_wallet_record", self.wallet_records.get_wallet_record)

    def create_wallet(
        self,
        mnemonic: str,
        passcode: str,
        logout_time_preference: Optional[int] = None,
    ) -> VaultResult:
        """
        Store a new wallet (signup or import).

        A new wallet starts clean: sub-account seeds, the backend snapshot,
        any remembered session and the stored sync API auth of a previous
        wallet are removed in the same transaction. A live session of the
        previous wallet is ended.

        Value: {"address": ...}
        """
        def _create() -> Dict[str, str]:
            if not is_mnemonic_valid(mnemonic):
                raise InvalidMnemonic()
            is_valid, error = verify_passcode_strength(passcode)
            if not is_valid:
                raise WeakPasscode(error)

            phrase = normalize_mnemonic(mnemonic)
            preference = (
                logout_time_preference
                if logout_time_preference is not None
                else self.settings.default_logout_minutes
            )
            encrypted = EncryptionService.encrypt(phrase, passcode, SecretPurpose.MNEMONIC)
            passcode_hash = EncryptionService.hash_passcode(passcode)

            def _write(conn: sqlite3.Connection) -> WalletRecord:
                record = self.wallet_records.create_wallet(
                    encrypted, passcode_hash, preference, conn=conn
                )
                conn.execute("DELETE FROM sub_account_seeds")
                self.snapshots.clear(conn=conn)
                self.persisted_sessions.clear_session(api_auth=True, conn=conn)
                return record

            self.store.mutate(_write)
            if self.sessions.current is not None:
                self.sessions.logout()
            address = self.sessions.address_deriver(phrase)
            self.logger.log_vault_event(
                EventType.WALLET_CREATED,
                "wallet created",
                details={"address": address, "logout_time_preference": preference},
            )
            return {"address": address}

        return self._run("create_wallet", _create, "Wallet created")

    def change_passcode(self, current_passcode: str, new_passcode: str) -> VaultResult:
        """
        Re-encrypt the mnemonic and every sub-account seed under a new
        passcode, in one transaction. The stale backend snapshot is dropped.

        Value: number of sub-account seeds re-encrypted
        """
        def _change() -> int:
            is_valid, error = verify_passcode_strength(new_passcode)
            if not is_valid:
                raise WeakPasscode(error)

            def _rekey(conn: sqlite3.Connection) -> int:
                record = self.wallet_records.verify_passcode(current_passcode, conn=conn)
                mnemonic = decrypt_mnemonic(record, current_passcode)
                self.wallet_records.update_wallet(
                    EncryptionService.encrypt(mnemonic, new_passcode, SecretPurpose.MNEMONIC),
                    EncryptionService.hash_passcode(new_passcode),
                    conn=conn,
                )
                count = self.seeds.reencrypt_all(conn, current_passcode, new_passcode)
                self.snapshots.clear(conn=conn)
                return count

            try:
                count = self.store.mutate(_rekey)
            except IncorrectPasscode:
                self.logger.log_event(
                    EventType.SESSION_UNLOCK_FAILED,
                    EventSeverity.INVESTIGATE,
                    "Passcode change rejected: incorrect passcode",
                )
                raise
            self.logger.log_event(
                EventType.PASSCODE_CHANGED,
                EventSeverity.ALERT,
                "Wallet passcode changed",
                details={"reencrypted_seeds": count},
            )
            return count

        return self._run("change_passcode", _change, "Passcode changed")

    def reset_wallet(self) -> VaultResult:
        """Log out and wipe the entire store."""
        def _reset() -> None:
            self.sessions.logout()
            self.store.reset()
            self.logger.log_event(
                EventType.WALLET_RESET,
                EventSeverity.ALERT,
                "Wallet store wiped",
            )

        return self._run("reset_wallet", _reset, "Wallet reset")

    # ── Session ──────────────────────────────────────────────────────

    def unlock(
        self,
        passcode: str,
        remember: bool = False,
        timeout_minutes: Optional[int] = None,
    ) -> VaultResult:
        """Value: session view ({"address", "expires_at", ...})."""
        return self._run(
            "unlock",
            lambda: _session_view(self.sessions.unlock(passcode, remember, timeout_minutes)),
        )

    def set_session(
        self,
        mnemonic: str,
        timeout_minutes: Optional[int] = None,
        remember: bool = False,
    ) -> VaultResult:
        return self._run(
            "set_session",
            lambda: _session_view(self.sessions.set_session(mnemonic, timeout_minutes, remember)),
        )

    def logout(self) -> VaultResult:
        return self._run("logout", self.sessions.logout, "Logged out")

    def record_activity(self) -> VaultResult:
        return self._run("record_activity", self.sessions.record_activity)

    def poll(self) -> VaultResult:
        """Value: SessionState after checking both timers."""
        return self._run("poll", self.sessions.poll)

    def restore_persisted_session(self) -> VaultResult:
        """Value: session view, or None when nothing was restored."""
        return self._run(
            "restore_persisted_session",
            lambda: _session_view(self.sessions.restore_persisted()),
        )

    def update_session_timeout(self, minutes: int) -> VaultResult:
        return self._run(
            "update_session_timeout",
            lambda: _session_view(self.sessions.update_session_timeout(minutes)),
            "Session timeout updated",
        )

    def session_status(self) -> Dict[str, Any]:
        """State plus public session details (never the mnemonic)."""
        session = self.sessions.current
        return {
            "state": self.sessions.state.value,
            "session": _session_view(session),
        }

    # ── Sub-account seeds ────────────────────────────────────────────

    def save_seed(self, address: str, seed: str, passcode: str) -> VaultResult:
        def _save() -> None:
            self.seeds.save_seed(address, seed, passcode)
            self.logger.log_vault_event(
                EventType.SEED_SAVED, "sub-account seed saved", details={"address": address}
            )

        return self._run("save_seed", _save, "Seed saved")

    def get_seed(self, address: str, passcode: str) -> VaultResult:
        """Value: the decrypted seed."""
        def _get() -> str:
            try:
                seed = self.seeds.get_seed(address, passcode)
            except IncorrectPasscode:
                self.logger.log_event(
                    EventType.SEED_ACCESS_FAILED,
                    EventSeverity.INVESTIGATE,
                    "Seed access rejected: incorrect passcode",
                    details={"address": address},
                )
                raise
            self.logger.log_vault_event(
                EventType.SEED_ACCESSED, "sub-account seed accessed", details={"address": address}
            )
            return seed

        return self._run("get_seed", _get)

    def has_seed(self, address: str) -> VaultResult:
        return self._run("has_seed", lambda: self.seeds.has_seed(address))

    def delete_seed(self, address: str) -> VaultResult:
        """Value: True if a seed was removed."""
        def _delete() -> bool:
            removed = self.seeds.delete_seed(address)
            if removed:
                self.logger.log_vault_event(
                    EventType.SEED_DELETED, "sub-account seed deleted", details={"address": address}
                )
            return removed

        return self._run("delete_seed", _delete)

    def list_seed_addresses(self) -> VaultResult:
        """Value: addresses with stored seeds, newest first."""
        return self._run("list_seed_addresses", self.seeds.list_addresses_with_seeds)

    # ── Backup ───────────────────────────────────────────────────────

    def export_vault(self, passcode: Optional[str] = None) -> VaultResult:
        """Value: archive bytes."""
        return self._run("export_vault", lambda: self.backups.export_vault(passcode))

    def restore_vault(self, archive: bytes, passcode: str) -> VaultResult:
        """
        Replace the local store from an archive and sign in with it.

        Value: {"address", "snapshot_imported", "snapshot_message"}. When the
        snapshot import fails, snapshot_message carries the reason.
        """
        def _restore() -> Dict[str, Any]:
            mnemonic = self.backups.restore_vault(archive, passcode)
            self.sessions.logout()
            session = self.sessions.set_session(mnemonic)

            # Store already replaced; snapshot problems are reported, not raised
            imported = False
            snapshot_message = None
            try:
                snapshot_message = self.backups.import_backend_snapshot(passcode)
                imported = snapshot_message is not None
            except VaultError as exc:
                snapshot_message = exc.message
                logger.warning("Backend snapshot import failed after restore: %s", exc.message)
                self.logger.log_event(
                    EventType.BACKUP_RESTORED,
                    EventSeverity.ALERT,
                    "Vault restored but backend snapshot could not be imported",
                    details={"reason": exc.code.value},
                )
            return {
                "address": session.address,
                "snapshot_imported": imported,
                "snapshot_message": snapshot_message,
            }

        return self._run("restore_vault", _restore, "Vault restored")


    # ── Sync API auth ────────────────────────────────────────────────

    def set_api_auth(
        self,
        auth_token: str,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
    ) -> VaultResult:
        """Store the sync API token (sealed under the device key).

        Value: token expiry (epoch ms)
        """
        def _set() -> int:
            auth = self.persisted_sessions.set_api_auth(auth_token, user_id, username)
            self.logger.log_vault_event(
                EventType.API_AUTH_STORED,
                "sync API auth stored",
                details={"user_id": user_id, "username": username},
            )
            return auth.token_expiry

        return self._run("set_api_auth", _set)

    def get_api_auth(self) -> VaultResult:
        """Value: ApiAuth, or None when absent or expired."""
        return self._run("get_api_auth", self.persisted_sessions.get_api_auth)

    def clear_api_auth(self) -> VaultResult:
        return self._run("clear_api_auth", self.persisted_sessions.clear_api_auth)

    # ── App state ────────────────────────────────────────────────────

    def list_contacts(self) -> VaultResult:
        return self._run("list_contacts", self.address_book.get_contacts)

    def add_contact(self, name: str, wallet_address: str) -> VaultResult:
        """Value: the new contact id."""
        return self._run(
            "add_contact", lambda: self.address_book.add_contact(name, wallet_address)
        )

    def update_contact(self, contact_id: int, name: str, wallet_address: str) -> VaultResult:
        def _update() -> None:
            if not self.address_book.update_contact(contact_id, name, wallet_address):
                raise ContactNotFound()

        return self._run("update_contact", _update, "Contact updated")

    def delete_contact(self, contact_id: int) -> VaultResult:
        def _delete() -> None:
            if not self.address_book.delete_contact(contact_id):
                raise ContactNotFound()

        return self._run("delete_contact", _delete, "Contact deleted")

    def get_node_endpoint(self) -> VaultResult:
        return self._run("get_node_endpoint", self.node_config.get_wss_endpoint)

    def update_node_endpoint(self, endpoint: str) -> VaultResult:
        """Value: the stored (trimmed) endpoint."""
        def _update() -> str:
            self.node_config.update_wss_endpoint(endpoint)
            return self.node_config.get_wss_endpoint()

        return self._run("update_node_endpoint", _update)

    def reset_node_endpoint(self) -> VaultResult:
        """Value: the default endpoint."""
        return self._run("reset_node_endpoint", self.node_config.reset_wss_endpoint)
