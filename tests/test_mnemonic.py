"""Tests for BIP39 helpers."""

import pytest

from seedkeeper.vault.mnemonic import (
    derive_address,
    generate_mnemonic,
    is_mnemonic_valid,
    normalize_mnemonic,
)

ABANDON = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about"
LEGAL = "legal winner thank year wave sausage worth useful legal winner thank yellow"


class TestValidation:

    @pytest.mark.parametrize("phrase", [ABANDON, LEGAL, "zoo zoo zoo zoo zoo zoo zoo zoo zoo zoo zoo wrong"])
    def test_known_valid(self, phrase):
        assert is_mnemonic_valid(phrase)

    def test_bad_checksum(self):
        assert not is_mnemonic_valid(ABANDON.replace("about", "abandon"))

    def test_unknown_word(self):
        assert not is_mnemonic_valid(ABANDON.replace("about", "bitcoinz"))

    def test_wrong_word_count(self):
        assert not is_mnemonic_valid("abandon " * 10 + "about")

    @pytest.mark.parametrize("value", [None, 42, b"abandon", ""])
    def test_non_strings_and_empty(self, value):
        assert not is_mnemonic_valid(value)

    def test_case_and_spacing_tolerated(self):
        messy = "  " + ABANDON.upper().replace(" ", "   ") + "\n"
        assert is_mnemonic_valid(messy)
        assert normalize_mnemonic(messy) == ABANDON


class TestGeneration:

    @pytest.mark.parametrize("words", [12, 15, 18, 21, 24])
    def test_generated_phrases_validate(self, words):
        phrase = generate_mnemonic(words)
        assert len(phrase.split()) == words
        assert is_mnemonic_valid(phrase)

    def test_unsupported_length(self):
        with pytest.raises(ValueError):
            generate_mnemonic(13)


class TestAddress:

    def test_deterministic_hex_address(self):
        address = derive_address(ABANDON)
        assert address == derive_address(ABANDON)
        assert address.startswith("0x")
        assert len(address) == 2 + 64

    def test_distinct_per_mnemonic(self):
        assert derive_address(ABANDON) != derive_address(LEGAL)

    def test_normalization_does_not_change_address(self):
        assert derive_address(ABANDON.upper()) == derive_address(ABANDON)

    def test_invalid_phrase_rejected(self):
        with pytest.raises(ValueError):
            derive_address("not a mnemonic")
