"""Tests for the crypto primitives: passcode verifier and AES-256-GCM tokens."""

import base64

import pytest

from seedkeeper.vault.encryption import (
    DecryptionError,
    EncryptionService,
    SecretPurpose,
    verify_passcode_strength,
)

PASSCODE = "Str0ng!Pass1"
WRONG_PASSCODE = "WrongPass1!"
SECRET = "legal winner thank year wave sausage worth useful legal winner thank yellow"


class TestPasscodeHash:
    """Deterministic PBKDF2 verifier."""

    def test_same_passcode_same_hash(self):
        assert EncryptionService.hash_passcode(PASSCODE) == EncryptionService.hash_passcode(PASSCODE)

    def test_different_passcodes_differ(self):
        assert EncryptionService.hash_passcode(PASSCODE) != EncryptionService.hash_passcode(WRONG_PASSCODE)

    def test_format_records_iterations(self):
        stored = EncryptionService.hash_passcode(PASSCODE)
        scheme, iterations, digest = stored.split("$")
        assert scheme == "pbkdf2_sha256"
        assert int(iterations) == EncryptionService.PBKDF2_ITERATIONS
        assert len(bytes.fromhex(digest)) == 32

    def test_verify(self):
        stored = EncryptionService.hash_passcode(PASSCODE)
        assert EncryptionService.verify_passcode(PASSCODE, stored)
        assert not EncryptionService.verify_passcode(WRONG_PASSCODE, stored)

    def test_verify_uses_stored_iteration_count(self, monkeypatch):
        stored = EncryptionService.hash_passcode(PASSCODE, iterations=500)
        monkeypatch.setattr(EncryptionService, "PBKDF2_ITERATIONS", 2000)
        assert EncryptionService.verify_passcode(PASSCODE, stored)

    @pytest.mark.parametrize("stored", ["", "garbage", "md5$10$abcd", "pbkdf2_sha256$x$ab", None])
    def test_malformed_hash_never_verifies(self, stored):
        assert not EncryptionService.verify_passcode(PASSCODE, stored)


class TestEncryptDecrypt:
    """Purpose-bound AEAD tokens."""

    def test_roundtrip(self):
        token = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        assert EncryptionService.decrypt(token, PASSCODE, SecretPurpose.MNEMONIC) == SECRET

    def test_unicode_roundtrip(self):
        text = "ñandú 🦤 seed"
        token = EncryptionService.encrypt(text, PASSCODE, SecretPurpose.SUB_ACCOUNT_SEED)
        assert EncryptionService.decrypt(token, PASSCODE, SecretPurpose.SUB_ACCOUNT_SEED) == text

    def test_random_salt_and_nonce(self):
        a = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        b = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        assert a != b

    def test_wrong_passcode_raises(self):
        token = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt(token, WRONG_PASSCODE, SecretPurpose.MNEMONIC)

    def test_wrong_purpose_raises(self):
        token = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt(token, PASSCODE, SecretPurpose.SUB_ACCOUNT_SEED)

    def test_wrong_associated_data_raises(self):
        token = EncryptionService.encrypt(
            "seed", PASSCODE, SecretPurpose.SUB_ACCOUNT_SEED, associated_data=b"addr1"
        )
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt(
                token, PASSCODE, SecretPurpose.SUB_ACCOUNT_SEED, associated_data=b"addr2"
            )

    def test_tampered_token_raises(self):
        token = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        blob = bytearray(base64.b64decode(token))
        blob[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt(
                base64.b64encode(bytes(blob)).decode(), PASSCODE, SecretPurpose.MNEMONIC
            )

    @pytest.mark.parametrize("token", ["", "not base64 !!", base64.b64encode(b"short").decode()])
    def test_garbage_token_raises(self, token):
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt(token, PASSCODE, SecretPurpose.MNEMONIC)

    def test_old_tokens_decrypt_after_iteration_change(self, monkeypatch):
        token = EncryptionService.encrypt(SECRET, PASSCODE, SecretPurpose.MNEMONIC)
        monkeypatch.setattr(EncryptionService, "PBKDF2_ITERATIONS", 1500)
        assert EncryptionService.decrypt(token, PASSCODE, SecretPurpose.MNEMONIC) == SECRET


class TestRawKeyEncryption:
    """Device-key tokens used for the remembered session."""

    def test_roundtrip_and_wrong_key(self):
        key = b"\x01" * 32
        token = EncryptionService.encrypt_with_key(SECRET, key, SecretPurpose.PERSISTED_SESSION)
        assert EncryptionService.decrypt_with_key(token, key, SecretPurpose.PERSISTED_SESSION) == SECRET
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt_with_key(token, b"\x02" * 32, SecretPurpose.PERSISTED_SESSION)


class TestPasscodeStrength:

    def test_minimum_length(self):
        assert verify_passcode_strength("Str0ng!Pass1") == (True, "")
        ok, message = verify_passcode_strength("short")
        assert not ok
        assert "8 characters" in message

    def test_blank_rejected(self):
        ok, _ = verify_passcode_strength(" " * 10)
        assert not ok

    def test_configure_rejects_non_positive(self):
        with pytest.raises(ValueError):
            EncryptionService.configure(0)
