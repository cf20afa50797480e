# Seedkeeper - Backup Module
# Single-entry ZIP archives of the secret store, plus the sync daemon client
# that supplies the backend snapshot carried inside them.

from .backup_manager import ARCHIVE_ENTRY_NAME, BackupManager
from .snapshot_client import HttpSnapshotClient, SnapshotClient

__all__ = [
    "ARCHIVE_ENTRY_NAME",
    "BackupManager",
    "HttpSnapshotClient",
    "SnapshotClient",
]
