# Seedkeeper - Main Package
#
# Local encrypted seed vault and session lifecycle manager for a desktop
# wallet client. Holds the BIP39 mnemonic and delegated sub-account seeds
# encrypted under the user's passcode in one SQLite file.

__version__ = "0.1.0"
__description__ = "Local encrypted seed vault and session lifecycle manager"

from .errors import ErrorCode, VaultError
from .vault import VaultResult, WalletVault

__all__ = [
    "__version__",
    "ErrorCode",
    "VaultError",
    "VaultResult",
    "WalletVault",
]
