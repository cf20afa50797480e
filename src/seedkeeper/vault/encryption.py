# Seedkeeper - Encryption Service
#
# Passcode → verifier (PBKDF2, deterministic)
# Passcode → per-purpose key (PBKDF2 with random salt, then HKDF with a
#            purpose label) → AES-256-GCM
#
# Every secret class (wallet mnemonic, sub-account seeds, backend snapshot,
# persisted session) gets its own derived key, so a ciphertext of one class
# can never be decrypted as another.

import base64
import hmac
import os
import struct
from enum import Enum
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class SecretPurpose(str, Enum):
    """Context labels used for per-purpose key derivation."""
    MNEMONIC = "wallet-mnemonic"
    SUB_ACCOUNT_SEED = "sub-account-seed"
    BACKEND_SNAPSHOT = "backend-snapshot"
    PERSISTED_SESSION = "persisted-session"


class DecryptionError(Exception):
    """Ciphertext failed authentication: wrong key, wrong context, or tampering."""


class EncryptionService:
    """
    Handles passcode hashing and encryption/decryption of vault secrets.

    Flow:
    1. User enters passcode
    2. hash_passcode() produces a deterministic verifier stored with the wallet
    3. encrypt() derives a fresh key per ciphertext: PBKDF2(passcode, salt)
       then HKDF(info=purpose) → AES-256-GCM key
    4. decrypt() raises DecryptionError on any mismatch (AEAD tag check)

    Token layout (base64 for storage):
        version(1) | iterations(4, big-endian) | salt(16) | nonce(12) | ciphertext+tag
    """

    PBKDF2_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 16
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    TOKEN_VERSION = 1

    # Verifier salt is fixed so the same passcode always hashes the same way.
    VERIFIER_SALT = b"seedkeeper/passcode-verifier/v1"
    VERIFIER_SCHEME = "pbkdf2_sha256"

    _HEADER = struct.Struct(">BI")
    _HEADER_SIZE = _HEADER.size + SALT_LENGTH + NONCE_LENGTH

    @classmethod
    def configure(cls, iterations: int) -> None:
        """Set the PBKDF2 work factor used for new hashes and ciphertexts."""
        if iterations < 1:
            raise ValueError("iterations must be positive")
        cls.PBKDF2_ITERATIONS = iterations

    # ── Key derivation ───────────────────────────────────────────────

    @classmethod
    def _pbkdf2(cls, passcode: str, salt: bytes, iterations: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=cls.KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(passcode.encode('utf-8'))

    @classmethod
    def derive_key(
        cls,
        passcode: str,
        salt: bytes,
        purpose: SecretPurpose,
        iterations: int,
    ) -> bytes:
        """
        Derive a purpose-specific 256-bit key from a passcode.

        Args:
            passcode: User's passcode
            salt: Random salt stored in the ciphertext header
            purpose: Secret class the key is for
            iterations: PBKDF2 work factor

        Returns:
            256-bit encryption key
        """
        master = cls._pbkdf2(passcode, salt, iterations)
        return HKDF(
            algorithm=hashes.SHA256(),
            length=cls.KEY_LENGTH,
            salt=None,
            info=f"seedkeeper/{purpose.value}/v1".encode('utf-8'),
        ).derive(master)

    # ── Passcode verifier ────────────────────────────────────────────

    @classmethod
    def hash_passcode(cls, passcode: str, iterations: int = None) -> str:
        """
        One-way, deterministic passcode verifier.

        Same passcode and iteration count always give the same string.
        Format: pbkdf2_sha256$<iterations>$<hex digest>
        """
        iterations = iterations or cls.PBKDF2_ITERATIONS
        digest = cls._pbkdf2(passcode, cls.VERIFIER_SALT, iterations)
        return f"{cls.VERIFIER_SCHEME}${iterations}${digest.hex()}"

    @classmethod
    def verify_passcode(cls, passcode: str, stored_hash: str) -> bool:
        """Check a passcode against a stored verifier (constant-time compare)."""
        try:
            scheme, iterations, _ = stored_hash.split("$", 2)
            iterations = int(iterations)
        except (AttributeError, ValueError):
            return False
        if scheme != cls.VERIFIER_SCHEME or iterations < 1:
            return False
        candidate = cls.hash_passcode(passcode, iterations=iterations)
        return hmac.compare_digest(candidate, stored_hash)

    # ── Passcode-based encryption ────────────────────────────────────

    @classmethod
    def encrypt(
        cls,
        plaintext: str,
        passcode: str,
        purpose: SecretPurpose,
        associated_data: bytes = b"",
    ) -> str:
        """
        Encrypt plaintext under a passcode using AES-256-GCM.

        Args:
            plaintext: Secret to encrypt
            passcode: User's passcode
            purpose: Secret class (selects the derived key)
            associated_data: Extra context bound into the tag (e.g. an address)

        Returns:
            Storage-ready base64 token
        """
        iterations = cls.PBKDF2_ITERATIONS
        salt = os.urandom(cls.SALT_LENGTH)
        nonce = os.urandom(cls.NONCE_LENGTH)
        key = cls.derive_key(passcode, salt, purpose, iterations)

        header = cls._HEADER.pack(cls.TOKEN_VERSION, iterations)
        ciphertext = AESGCM(key).encrypt(
            nonce,
            plaintext.encode('utf-8'),
            cls._aad(purpose, associated_data),
        )
        return cls.encode_for_storage(header + salt + nonce + ciphertext)

    @classmethod
    def decrypt(
        cls,
        token: str,
        passcode: str,
        purpose: SecretPurpose,
        associated_data: bytes = b"",
    ) -> str:
        """
        Decrypt a token produced by encrypt().

        Raises:
            DecryptionError: Wrong passcode, wrong purpose/context, or corrupt data
        """
        version, iterations, salt, nonce, ciphertext = cls._split_token(token)
        if version != cls.TOKEN_VERSION or iterations < 1:
            raise DecryptionError("Unsupported ciphertext format")

        key = cls.derive_key(passcode, salt, purpose, iterations)
        try:
            plaintext = AESGCM(key).decrypt(
                nonce, ciphertext, cls._aad(purpose, associated_data)
            )
        except InvalidTag:
            raise DecryptionError("Authentication failed")
        return cls._decode_utf8(plaintext)

    # ── Raw-key encryption (device key) ──────────────────────────────

    @classmethod
    def encrypt_with_key(cls, plaintext: str, key: bytes, purpose: SecretPurpose) -> str:
        """AES-256-GCM under a raw 32-byte key. Token: nonce(12) | ciphertext+tag."""
        nonce = os.urandom(cls.NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(
            nonce, plaintext.encode('utf-8'), cls._aad(purpose, b"")
        )
        return cls.encode_for_storage(nonce + ciphertext)

    @classmethod
    def decrypt_with_key(cls, token: str, key: bytes, purpose: SecretPurpose) -> str:
        """Inverse of encrypt_with_key(). Raises DecryptionError."""
        blob = cls._decode_token(token)
        if len(blob) <= cls.NONCE_LENGTH:
            raise DecryptionError("Ciphertext too short")
        nonce, ciphertext = blob[:cls.NONCE_LENGTH], blob[cls.NONCE_LENGTH:]
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, cls._aad(purpose, b""))
        except InvalidTag:
            raise DecryptionError("Authentication failed")
        return cls._decode_utf8(plaintext)

    # ── Encoding helpers ─────────────────────────────────────────────

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data for TEXT columns (base64)."""
        return base64.b64encode(data).decode('utf-8')

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64-encoded data from the database."""
        return base64.b64decode(data.encode('utf-8'), validate=True)

    @staticmethod
    def _aad(purpose: SecretPurpose, associated_data: bytes) -> bytes:
        return purpose.value.encode('utf-8') + b"|" + associated_data

    @classmethod
    def _decode_token(cls, token: str) -> bytes:
        try:
            return cls.decode_from_storage(token)
        except (AttributeError, ValueError):
            raise DecryptionError("Ciphertext is not valid base64")

    @classmethod
    def _split_token(cls, token: str) -> Tuple[int, int, bytes, bytes, bytes]:
        blob = cls._decode_token(token)
        if len(blob) <= cls._HEADER_SIZE:
            raise DecryptionError("Ciphertext too short")
        version, iterations = cls._HEADER.unpack_from(blob)
        offset = cls._HEADER.size
        salt = blob[offset:offset + cls.SALT_LENGTH]
        offset += cls.SALT_LENGTH
        nonce = blob[offset:offset + cls.NONCE_LENGTH]
        offset += cls.NONCE_LENGTH
        return version, iterations, salt, nonce, blob[offset:]

    @staticmethod
    def _decode_utf8(data: bytes) -> str:
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError:
            raise DecryptionError("Plaintext is not valid UTF-8")


def verify_passcode_strength(passcode: str) -> Tuple[bool, str]:
    """
    Verify a new passcode meets the minimum requirements.

    Requirements:
    - At least 8 characters
    - Not only whitespace

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(passcode, str) or len(passcode) < 8:
        return False, "Passcode must be at least 8 characters long"

    if not passcode.strip():
        return False, "Passcode cannot be blank"

    return True, ""
