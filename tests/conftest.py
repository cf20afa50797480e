"""
Shared pytest fixtures for the Seedkeeper test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger   -> temp directory  (prevents test events in real audit logs)
  - Vault API      -> no singleton    (each API test wires its own vault)
  - PBKDF2         -> 1000 iterations (600k per derivation makes the suite crawl)
"""

import pytest

from seedkeeper.backup.snapshot_client import SnapshotClient
from seedkeeper.core.config import VaultSettings
from seedkeeper.vault.backend_snapshot import BackendSnapshot


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import seedkeeper.core.audit_log as audit_mod

    # Reset the singleton so the next get_audit_logger() builds a fresh one.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_vault_singleton():
    """Make sure no API test leaks its WalletVault into the next one."""
    import seedkeeper.api.vault_routes as vault_mod

    old_vault = vault_mod._wallet_vault
    vault_mod._wallet_vault = None

    yield

    vault_mod._wallet_vault = old_vault


@pytest.fixture(autouse=True)
def _fast_kdf(monkeypatch):
    """Lower the PBKDF2 work factor for tests."""
    from seedkeeper.vault.encryption import EncryptionService

    monkeypatch.setattr(EncryptionService, "PBKDF2_ITERATIONS", 1000)


# ── Shared helpers ──────────────────────────────────────────────────


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSnapshotClient(SnapshotClient):
    """In-memory stand-in for the sync daemon."""

    def __init__(self, snapshot=None, fail=False):
        self.snapshot = snapshot or BackendSnapshot(
            public_sync_path="/home/user/Hippius/public",
            private_sync_path="/home/user/Hippius/private",
            encryption_keys=["a2V5LW9uZQ==", "a2V5LXR3bw=="],
        )
        self.fail = fail
        self.fetch_calls = 0
        self.imported = []

    def fetch(self) -> BackendSnapshot:
        from seedkeeper.errors import SnapshotUnavailable

        self.fetch_calls += 1
        if self.fail:
            raise SnapshotUnavailable("daemon offline")
        return self.snapshot

    def import_snapshot(self, snapshot: BackendSnapshot) -> str:
        self.imported.append(snapshot)
        return "Data imported successfully"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    data_dir = tmp_path / "data"
    return VaultSettings(
        data_dir=data_dir,
        audit_log_dir=tmp_path / "audit_logs",
        kdf_iterations=1000,
    )


@pytest.fixture
def snapshot_client():
    return FakeSnapshotClient()


@pytest.fixture
def vault(settings, snapshot_client, clock):
    from seedkeeper.vault import WalletVault

    return WalletVault(settings, snapshot_client=snapshot_client, clock=clock)


@pytest.fixture
def make_vault(settings, clock):
    """Factory for extra vaults (another machine, or a restart)."""
    from seedkeeper.vault import WalletVault

    def _make(data_dir=None, snapshot_client=None, vault_clock=None):
        vault_settings = settings.with_data_dir(data_dir) if data_dir else settings
        return WalletVault(
            vault_settings,
            snapshot_client=snapshot_client or FakeSnapshotClient(),
            clock=vault_clock or clock,
        )

    return _make


@pytest.fixture
def snapshot_client_cls():
    """The fake daemon class, for tests that need a variant of it."""
    return FakeSnapshotClient
