# Seedkeeper - Core Module
#
# Shared functionality across all Seedkeeper modules:
# - Audit logging
# - Configuration
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
)
from .config import VaultSettings, load_settings

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
    # Configuration
    "VaultSettings",
    "load_settings",
]
