"""Tests for the Fernet value encryptor."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from bioage.core.storage.encryption import EncryptionError, ValueEncryptor


@pytest.fixture
def key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def encryptor(key: str) -> ValueEncryptor:
    return ValueEncryptor(key)


class TestRoundTrip:
    def test_string_round_trip(self, encryptor: ValueEncryptor):
        token = encryptor.encrypt("south_asian")
        assert token != "south_asian"
        assert encryptor.decrypt(token) == "south_asian"

    def test_unicode_round_trip(self, encryptor: ValueEncryptor):
        assert encryptor.decrypt(encryptor.encrypt("Ångström ✓")) == "Ångström ✓"

    def test_tokens_differ_per_call(self, encryptor: ValueEncryptor):
        assert encryptor.encrypt("male") != encryptor.encrypt("male")

    def test_generated_key_is_usable(self):
        encryptor = ValueEncryptor(ValueEncryptor.generate_key())
        assert encryptor.decrypt(encryptor.encrypt("42")) == "42"


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            ValueEncryptor("")

    def test_whitespace_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            ValueEncryptor("   ")

    def test_malformed_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            ValueEncryptor("not-a-fernet-key")

    def test_surrounding_whitespace_tolerated(self, key: str):
        assert ValueEncryptor(f"  {key}\n").decrypt(ValueEncryptor(key).encrypt("x")) == "x"


class TestTampering:
    def test_wrong_key(self, encryptor: ValueEncryptor):
        token = encryptor.encrypt("female")
        other = ValueEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="Decryption failed"):
            other.decrypt(token)

    def test_garbage_token(self, encryptor: ValueEncryptor):
        with pytest.raises(EncryptionError):
            encryptor.decrypt("definitely-not-a-token")
