"""Tests for vault export/restore archives."""

import io
import zipfile

import pytest

from seedkeeper.backup.backup_manager import ARCHIVE_ENTRY_NAME, BackupManager
from seedkeeper.errors import ErrorCode, InvalidArchive, SnapshotUnavailable
from seedkeeper.vault.session_manager import SessionState

MNEMONIC = "legal winner thank year wave sausage worth useful legal winner thank yellow"
PASSCODE = "Str0ng!Pass1"
SUB_ADDRESS = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"


@pytest.fixture
def wallet(vault):
    assert vault.create_wallet(MNEMONIC, PASSCODE).success
    assert vault.save_seed(SUB_ADDRESS, "sub account seed", PASSCODE).success
    vault.address_book.add_contact("Alice", "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty")
    return vault


@pytest.fixture
def other_machine(make_vault, tmp_path):
    return make_vault(data_dir=tmp_path / "other-machine")


def _zip(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


class TestArchiveFormat:

    def test_single_entry_with_store_bytes(self, wallet):
        archive = wallet.export_vault().value
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert zf.namelist() == [ARCHIVE_ENTRY_NAME]
            assert zf.read(ARCHIVE_ENTRY_NAME) == wallet.store.export()

    def test_secrets_not_in_clear(self, wallet):
        data = BackupManager.extract_store(wallet.export_vault().value)
        assert b"legal winner" not in data
        assert b"sub account seed" not in data

    @pytest.mark.parametrize("archive", [b"", b"not a zip", b"PK\x03\x04garbage"])
    def test_extract_rejects_non_zip(self, archive):
        with pytest.raises(InvalidArchive):
            BackupManager.extract_store(archive)

    def test_extract_requires_store_entry(self):
        with pytest.raises(InvalidArchive):
            BackupManager.extract_store(_zip({"other.db": b"x"}))

    def test_extract_size_guard(self, monkeypatch):
        import seedkeeper.backup.backup_manager as backup_mod

        monkeypatch.setattr(backup_mod, "MAX_STORE_BYTES", 10)
        with pytest.raises(InvalidArchive):
            BackupManager.extract_store(_zip({ARCHIVE_ENTRY_NAME: b"x" * 100}))

    def test_file_roundtrip(self, wallet, tmp_path):
        archive = wallet.export_vault().value
        path = BackupManager.write_archive(tmp_path / "out" / "backup.zip", archive)
        assert BackupManager.read_archive(path) == archive

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(InvalidArchive):
            BackupManager.read_archive(tmp_path / "missing.zip")


class TestExport:

    def test_export_without_passcode_skips_snapshot(self, wallet, snapshot_client):
        assert wallet.export_vault().success
        assert snapshot_client.fetch_calls == 0
        assert not wallet.snapshots.has_snapshot()

    def test_export_with_passcode_captures_snapshot(self, wallet, snapshot_client):
        assert wallet.export_vault(PASSCODE).success
        assert snapshot_client.fetch_calls == 1
        assert wallet.snapshots.load(PASSCODE) == snapshot_client.snapshot

    def test_wrong_passcode(self, wallet, snapshot_client):
        result = wallet.export_vault("WrongPass1!")
        assert result.error == ErrorCode.INCORRECT_PASSCODE
        assert snapshot_client.fetch_calls == 0

    def test_daemon_offline(self, make_vault, snapshot_client_cls, tmp_path):
        vault = make_vault(
            data_dir=tmp_path / "offline", snapshot_client=snapshot_client_cls(fail=True)
        )
        vault.create_wallet(MNEMONIC, PASSCODE)
        assert vault.export_vault(PASSCODE).error == ErrorCode.SNAPSHOT_UNAVAILABLE


class TestRestore:

    def test_restore_on_new_machine(self, wallet, other_machine):
        archive = wallet.export_vault(PASSCODE).value

        result = other_machine.restore_vault(archive, PASSCODE)
        assert result.success
        assert result.value["address"] == wallet.sessions.address_deriver(MNEMONIC)
        assert result.value["snapshot_imported"] is True
        assert result.value["snapshot_message"] == "Data imported successfully"

        assert other_machine.sessions.state == SessionState.AUTHENTICATED
        assert other_machine.get_seed(SUB_ADDRESS, PASSCODE).value == "sub account seed"
        assert [c.name for c in other_machine.list_contacts().value] == ["Alice"]

    def test_restored_store_matches_archive(self, wallet, other_machine):
        archive = wallet.export_vault().value
        other_machine.backups.restore_vault(archive, PASSCODE)
        assert other_machine.store.export() == BackupManager.extract_store(archive)

    def test_without_snapshot(self, wallet, other_machine):
        result = other_machine.restore_vault(wallet.export_vault().value, PASSCODE)
        assert result.success
        assert result.value["snapshot_imported"] is False

    def test_wrong_passcode_leaves_store_untouched(self, wallet, other_machine):
        other_machine.create_wallet(
            "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about",
            "Local!Pass99",
        )
        before = other_machine.settings.store_path.read_bytes()

        result = other_machine.restore_vault(wallet.export_vault().value, "WrongPass1!")
        assert result.error == ErrorCode.INCORRECT_PASSCODE
        assert other_machine.settings.store_path.read_bytes() == before

    def test_archive_without_wallet(self, vault, other_machine):
        result = other_machine.restore_vault(vault.export_vault().value, PASSCODE)
        assert result.error == ErrorCode.NO_WALLET_RECORD

    @pytest.mark.parametrize("archive", [
        b"garbage",
        _zip({"seedkeeper.db": b"not sqlite at all"}),
        _zip({"wrong-name.db": b"SQLite format 3\x00"}),
    ])
    def test_invalid_archives(self, other_machine, archive):
        assert other_machine.restore_vault(archive, PASSCODE).error == ErrorCode.INVALID_ARCHIVE

    def test_snapshot_import_failure_still_restores(
        self, wallet, make_vault, snapshot_client_cls, tmp_path
    ):
        class BrokenImport(snapshot_client_cls):
            def import_snapshot(self, snapshot):
                raise SnapshotUnavailable("daemon offline")

        archive = wallet.export_vault(PASSCODE).value
        target = make_vault(data_dir=tmp_path / "target", snapshot_client=BrokenImport())

        result = target.restore_vault(archive, PASSCODE)
        assert result.success
        assert result.value["snapshot_imported"] is False
        assert target.sessions.state == SessionState.AUTHENTICATED

    def test_unreadable_snapshot_still_restores(self, wallet, other_machine):
        wallet.export_vault(PASSCODE)
        wallet.store.mutate(
            lambda conn: conn.execute("UPDATE backend_snapshot SET encrypted_data = 'AAAA'")
        )
        archive = wallet.export_vault().value

        other_machine.create_wallet(
            "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about",
            "Local!Pass99",
        )

        result = other_machine.restore_vault(archive, PASSCODE)
        assert result.success
        assert result.value["snapshot_imported"] is False
        assert result.value["snapshot_message"] == "Backend snapshot could not be decrypted"
        assert other_machine.get_seed(SUB_ADDRESS, PASSCODE).value == "sub account seed"
        assert other_machine.sessions.current.mnemonic == MNEMONIC
