# Seedkeeper - Vault Module
# Encrypted wallet mnemonic and sub-account seeds, session lifecycle,
# and the WalletVault facade consumed by the UI layer.

from .encryption import (
    DecryptionError,
    EncryptionService,
    SecretPurpose,
    verify_passcode_strength,
)
from .mnemonic import derive_address, generate_mnemonic, is_mnemonic_valid
from .session_manager import Session, SessionManager, SessionState
from .vault_manager import VaultResult, WalletVault

__all__ = [
    "EncryptionService",
    "SecretPurpose",
    "DecryptionError",
    "verify_passcode_strength",
    "derive_address",
    "generate_mnemonic",
    "is_mnemonic_valid",
    "Session",
    "SessionManager",
    "SessionState",
    "VaultResult",
    "WalletVault",
]
