# Seedkeeper - Store Module
# Single-file SQLite secret store, schema migrations, auxiliary app state.

from .app_state import AddressBook, AddressBookEntry, NodeConfig
from .migrations import LATEST_VERSION, apply_migrations
from .secret_store import SecretStore

__all__ = [
    "SecretStore",
    "apply_migrations",
    "LATEST_VERSION",
    "AddressBook",
    "AddressBookEntry",
    "NodeConfig",
]
