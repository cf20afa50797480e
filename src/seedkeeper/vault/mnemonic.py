# Seedkeeper - BIP39 mnemonic helpers
#
# Validation, generation and address derivation for wallet seed phrases.
#   - Word list: BIP39 English (via the `mnemonic` package)
#   - Accepted lengths: 12, 15, 18, 21, 24 words, checksum verified
#   - Address: BIP39 seed (empty passphrase) → Ed25519 key → 0x + public key hex

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519
from mnemonic import Mnemonic

VALID_WORD_COUNTS = (12, 15, 18, 21, 24)

_WORDS_TO_STRENGTH = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}

_bip39 = Mnemonic("english")


def normalize_mnemonic(phrase: str) -> str:
    """Lower-case, single-space form of a phrase."""
    return " ".join(phrase.strip().lower().split())


def is_mnemonic_valid(phrase) -> bool:
    """True if phrase is a checksum-valid BIP39 English mnemonic."""
    if not isinstance(phrase, str):
        return False
    normalized = normalize_mnemonic(phrase)
    if len(normalized.split(" ")) not in VALID_WORD_COUNTS:
        return False
    return _bip39.check(normalized)


def generate_mnemonic(words: int = 12) -> str:
    """Generate a fresh random mnemonic of the given word count."""
    try:
        strength = _WORDS_TO_STRENGTH[words]
    except KeyError:
        raise ValueError(f"words must be one of {VALID_WORD_COUNTS}, got {words}")
    return _bip39.generate(strength=strength)


def derive_address(phrase: str) -> str:
    """Derive the account address for a mnemonic.

    Raises:
        ValueError: phrase is not a valid mnemonic
    """
    if not is_mnemonic_valid(phrase):
        raise ValueError("Invalid mnemonic phrase")
    seed = Mnemonic.to_seed(normalize_mnemonic(phrase), passphrase="")
    private = ed25519.Ed25519PrivateKey.from_private_bytes(seed[:32])
    public = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return "0x" + public.hex()
