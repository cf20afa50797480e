# Seedkeeper - Error taxonomy
#
# Internal components raise these; the WalletVault facade converts them into
# VaultResult values so nothing below the UI boundary leaks exceptions.

from enum import Enum


class ErrorCode(str, Enum):
    """Stable failure reasons reported to the UI layer."""
    NO_WALLET_RECORD = "no_wallet_record"
    INCORRECT_PASSCODE = "incorrect_passcode"
    STORE_UNAVAILABLE = "store_unavailable"
    INVALID_ARCHIVE = "invalid_archive"
    MIGRATION_FAILURE = "migration_failure"
    INVALID_MNEMONIC = "invalid_mnemonic"
    WEAK_PASSCODE = "weak_passcode"
    SEED_NOT_FOUND = "seed_not_found"
    SNAPSHOT_UNAVAILABLE = "snapshot_unavailable"
    INVALID_TIMEOUT = "invalid_timeout"
    INVALID_ENDPOINT = "invalid_endpoint"
    CONTACT_NOT_FOUND = "contact_not_found"


class VaultError(Exception):
    """Base class for every failure the vault reports to its caller."""

    code: ErrorCode = ErrorCode.STORE_UNAVAILABLE
    default_message = "Vault operation failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NoWalletRecord(VaultError):
    code = ErrorCode.NO_WALLET_RECORD
    default_message = "No wallet record found"


class IncorrectPasscode(VaultError):
    code = ErrorCode.INCORRECT_PASSCODE
    default_message = "Incorrect passcode"


class StoreUnavailable(VaultError):
    """Store file could not be read or written (including corruption)."""
    code = ErrorCode.STORE_UNAVAILABLE
    default_message = "Secret store is unavailable or damaged"


class InvalidArchive(VaultError):
    code = ErrorCode.INVALID_ARCHIVE
    default_message = "Invalid backup file"


class MigrationFailure(VaultError):
    code = ErrorCode.MIGRATION_FAILURE
    default_message = "Schema migration failed"


class InvalidMnemonic(VaultError):
    code = ErrorCode.INVALID_MNEMONIC
    default_message = "Invalid mnemonic phrase"


class WeakPasscode(VaultError):
    code = ErrorCode.WEAK_PASSCODE
    default_message = "Passcode does not meet requirements"


class SeedNotFound(VaultError):
    code = ErrorCode.SEED_NOT_FOUND
    default_message = "No seed found for this sub account"


class SnapshotUnavailable(VaultError):
    code = ErrorCode.SNAPSHOT_UNAVAILABLE
    default_message = "Failed to fetch backend data"


class InvalidTimeout(VaultError):
    code = ErrorCode.INVALID_TIMEOUT
    default_message = "Timeout must be -1 (never) or a positive number of minutes"


class InvalidEndpoint(VaultError):
    code = ErrorCode.INVALID_ENDPOINT
    default_message = "Endpoint must be a ws:// or wss:// URL"


class ContactNotFound(VaultError):
    code = ErrorCode.CONTACT_NOT_FOUND
    default_message = "No contact with this id"
