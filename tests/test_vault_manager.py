"""Tests for the WalletVault facade: wallet lifecycle and passcode changes."""

import json

import pytest

from seedkeeper.errors import ErrorCode
from seedkeeper.vault import VaultResult, derive_address
from seedkeeper.vault.backend_snapshot import BackendSnapshot
from seedkeeper.vault.session_manager import SessionState

MNEMONIC = "legal winner thank year wave sausage worth useful legal winner thank yellow"
OTHER_MNEMONIC = "zoo zoo zoo zoo zoo zoo zoo zoo zoo zoo zoo wrong"
PASSCODE = "Str0ng!Pass1"
NEW_PASSCODE = "N3w!Passcode"
ADDR_A = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
ADDR_B = "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty"


@pytest.fixture
def wallet(vault):
    assert vault.create_wallet(MNEMONIC, PASSCODE).success
    return vault


class TestCreateWallet:

    def test_create(self, vault):
        assert vault.has_wallet().value is False
        result = vault.create_wallet(MNEMONIC, PASSCODE)
        assert result.success
        assert result.value == {"address": derive_address(MNEMONIC)}
        assert vault.has_wallet().value is True
        assert vault.get_wallet_record().value.logout_time_preference == 1440

    def test_create_does_not_unlock(self, vault):
        vault.create_wallet(MNEMONIC, PASSCODE)
        assert vault.sessions.state == SessionState.LOGGED_OUT

    def test_invalid_mnemonic(self, vault):
        result = vault.create_wallet("one two three", PASSCODE)
        assert result == VaultResult(
            success=False, error=ErrorCode.INVALID_MNEMONIC, message="Invalid mnemonic phrase"
        )
        assert vault.has_wallet().value is False

    def test_weak_passcode(self, vault):
        result = vault.create_wallet(MNEMONIC, "short")
        assert result.error == ErrorCode.WEAK_PASSCODE
        assert "8 characters" in result.message

    def test_invalid_preference(self, vault):
        assert vault.create_wallet(MNEMONIC, PASSCODE, 0).error == ErrorCode.INVALID_TIMEOUT

    def test_normalizes_mnemonic(self, vault):
        vault.create_wallet("  " + MNEMONIC.upper() + " ", PASSCODE)
        assert vault.unlock(PASSCODE).success
        assert vault.sessions.current.mnemonic == MNEMONIC

    def test_new_wallet_starts_clean(self, wallet, make_vault):
        wallet.save_seed(ADDR_A, "old seed", PASSCODE)
        wallet.snapshots.save(BackendSnapshot("/p", "/q", ["k"]), PASSCODE)
        wallet.unlock(PASSCODE, remember=True)
        wallet.set_api_auth("sync-token", user_id="u1")

        assert wallet.create_wallet(OTHER_MNEMONIC, NEW_PASSCODE).success

        assert wallet.sessions.current is None
        assert wallet.sessions.state == SessionState.LOGGED_OUT
        assert wallet.get_api_auth().value is None
        assert wallet.list_seed_addresses().value == []
        assert not wallet.snapshots.has_snapshot()
        assert make_vault().restore_persisted_session().value is None
        assert wallet.unlock(PASSCODE).error == ErrorCode.INCORRECT_PASSCODE
        assert wallet.unlock(NEW_PASSCODE).value["address"] == derive_address(OTHER_MNEMONIC)


class TestChangePasscode:

    def test_reencrypts_everything(self, wallet):
        wallet.save_seed(ADDR_A, "seed a", PASSCODE)
        wallet.save_seed(ADDR_B, "seed b", PASSCODE)

        result = wallet.change_passcode(PASSCODE, NEW_PASSCODE)
        assert result.success
        assert result.value == 2

        assert wallet.unlock(PASSCODE).error == ErrorCode.INCORRECT_PASSCODE
        assert wallet.unlock(NEW_PASSCODE).success
        assert wallet.sessions.current.mnemonic == MNEMONIC
        assert wallet.get_seed(ADDR_A, NEW_PASSCODE).value == "seed a"
        assert wallet.get_seed(ADDR_B, PASSCODE).error == ErrorCode.INCORRECT_PASSCODE

    def test_drops_stale_snapshot(self, wallet):
        wallet.snapshots.save(BackendSnapshot("/p", "/q", ["k"]), PASSCODE)
        wallet.change_passcode(PASSCODE, NEW_PASSCODE)
        assert not wallet.snapshots.has_snapshot()

    def test_wrong_current_passcode_changes_nothing(self, wallet):
        wallet.save_seed(ADDR_A, "seed a", PASSCODE)
        before = wallet.store.export()

        result = wallet.change_passcode("WrongPass1!", NEW_PASSCODE)
        assert result.error == ErrorCode.INCORRECT_PASSCODE
        assert wallet.store.export() == before

    def test_weak_new_passcode(self, wallet):
        assert wallet.change_passcode(PASSCODE, "weak").error == ErrorCode.WEAK_PASSCODE
        assert wallet.unlock(PASSCODE).success

    def test_without_wallet(self, vault):
        assert vault.change_passcode(PASSCODE, NEW_PASSCODE).error == ErrorCode.NO_WALLET_RECORD

    def test_alert_logged(self, wallet, tmp_path):
        wallet.change_passcode(PASSCODE, NEW_PASSCODE)
        lines = []
        for path in (tmp_path / "audit_logs").glob("audit_*.log"):
            lines.extend(json.loads(l) for l in path.read_text(encoding="utf-8").splitlines() if l)
        changed = [e for e in lines if e["event_type"] == "wallet.passcode.changed"]
        assert len(changed) == 1
        assert changed[0]["severity"] == "alert"


class TestResetWallet:

    def test_reset(self, wallet):
        wallet.unlock(PASSCODE, remember=True)
        wallet.save_seed(ADDR_A, "seed a", PASSCODE)

        assert wallet.reset_wallet().success
        assert wallet.has_wallet().value is False
        assert wallet.sessions.state == SessionState.LOGGED_OUT
        assert wallet.list_seed_addresses().value == []
        assert wallet.persisted_sessions.get_session() is None


class TestSeeds:

    def test_lifecycle(self, wallet):
        assert wallet.has_seed(ADDR_A).value is False
        assert wallet.save_seed(ADDR_A, "seed a", PASSCODE).success
        assert wallet.has_seed(ADDR_A).value is True
        assert wallet.list_seed_addresses().value == [ADDR_A]
        assert wallet.get_seed(ADDR_A, PASSCODE).value == "seed a"
        assert wallet.delete_seed(ADDR_A).value is True
        assert wallet.delete_seed(ADDR_A).value is False

    def test_errors(self, wallet):
        assert wallet.save_seed(ADDR_A, "s", "WrongPass1!").error == ErrorCode.INCORRECT_PASSCODE
        assert wallet.get_seed(ADDR_B, PASSCODE).error == ErrorCode.SEED_NOT_FOUND


class TestStatus:

    def test_status_never_exposes_mnemonic(self, wallet):
        assert wallet.session_status() == {"state": "logged_out", "session": None}
        wallet.unlock(PASSCODE)
        status = wallet.session_status()
        assert status["state"] == "authenticated"
        assert status["session"]["address"] == derive_address(MNEMONIC)
        assert MNEMONIC not in json.dumps(status)

    def test_store_failure_becomes_result(self, vault, settings):
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.store_path.write_bytes(b"not a database at all " * 100)
        result = vault.has_wallet()
        assert not result.success
        assert result.error == ErrorCode.STORE_UNAVAILABLE


class TestAppState:

    def test_defaults(self, vault):
        assert vault.list_contacts().value == []
        assert vault.get_node_endpoint().value == "wss://rpc.hippius.network"

    def test_contacts(self, vault):
        contact_id = vault.add_contact("Bob", ADDR_A).value
        assert vault.update_contact(contact_id, "Bobby", ADDR_B).success
        assert [(c.name, c.wallet_address) for c in vault.list_contacts().value] == [("Bobby", ADDR_B)]

        assert vault.delete_contact(contact_id).success
        assert vault.delete_contact(contact_id).error == ErrorCode.CONTACT_NOT_FOUND
        assert vault.update_contact(contact_id, "x", "y").error == ErrorCode.CONTACT_NOT_FOUND

    def test_node_endpoint(self, vault):
        assert vault.update_node_endpoint(" wss://node.example:9944 ").value == "wss://node.example:9944"
        assert vault.get_node_endpoint().value == "wss://node.example:9944"
        assert vault.update_node_endpoint("https://node.example").error == ErrorCode.INVALID_ENDPOINT
        assert vault.reset_node_endpoint().value == "wss://rpc.hippius.network"


class TestApiAuth:

    def test_store_and_read(self, wallet):
        assert wallet.get_api_auth().value is None
        assert wallet.set_api_auth("sync-token", user_id="u1", username="alice").success

        auth = wallet.get_api_auth().value
        assert (auth.auth_token, auth.user_id, auth.username) == ("sync-token", "u1", "alice")

        assert wallet.clear_api_auth().success
        assert wallet.get_api_auth().value is None

    def test_logout_clears_api_auth(self, wallet):
        wallet.unlock(PASSCODE, remember=True)
        wallet.set_api_auth("sync-token")
        wallet.logout()
        assert wallet.get_api_auth().value is None

    def test_unlock_keeps_api_auth(self, wallet):
        wallet.set_api_auth("sync-token")
        wallet.unlock(PASSCODE, remember=False)
        assert wallet.get_api_auth().value.auth_token == "sync-token"
