"""Tests for the FieldEncryptor (Fernet-based observation encryption)."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from bloom.core.storage.encryption import EncryptionError, FieldEncryptor, parse_keys


@pytest.fixture
def key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def encryptor(key: str) -> FieldEncryptor:
    return FieldEncryptor(key)


class TestRoundTrip:
    def test_observations_round_trip(self, encryptor: FieldEncryptor):
        data = {"vitals": {"systolic": 118, "diastolic": 76}, "symptoms": ["nausea"]}
        token = encryptor.encrypt(data)
        assert isinstance(token, str)
        assert "nausea" not in token
        assert encryptor.decrypt(token) == data

    def test_null_maps_to_empty(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt(None) == ""
        assert encryptor.decrypt("") is None

    def test_unserializable_raises(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError, match="Encryption failed"):
            encryptor.encrypt({"when": object()})


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("")

    def test_whitespace_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor(" , ")

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            FieldEncryptor("not-a-fernet-key")

    def test_wrong_key_cannot_decrypt(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt({"a": 1})
        other = FieldEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="Decryption failed"):
            other.decrypt(token)


class TestMultipleKeys:
    def test_parse_keys(self):
        assert parse_keys(" k1, k2 ,,") == ["k1", "k2"]

    def test_comma_separated_keys(self, key: str):
        second = Fernet.generate_key().decode()
        assert FieldEncryptor(f"{key},{second}").key_count == 2

    def test_secondary_key_decrypts(self, key: str, encryptor: FieldEncryptor):
        token = encryptor.encrypt({"a": 1})
        rotated = FieldEncryptor([Fernet.generate_key().decode(), key])
        assert rotated.decrypt(token) == {"a": 1}

    def test_rotate_moves_token_to_primary(self, key: str, encryptor: FieldEncryptor):
        new_key = Fernet.generate_key().decode()
        token = encryptor.encrypt({"a": 1})
        rotated = FieldEncryptor([new_key, key]).rotate(token)
        assert FieldEncryptor(new_key).decrypt(rotated) == {"a": 1}

    def test_rotate_invalid_token(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError, match="Rotation failed"):
            encryptor.rotate("garbage")
        assert encryptor.rotate("") == ""

    def test_generate_key_is_usable(self):
        assert FieldEncryptor(FieldEncryptor.generate_key()).key_count == 1

    def test_key_helpers_documented(self):
        assert "Returns:" in (FieldEncryptor.generate_key.__doc__ or "")
        assert FieldEncryptor.key_count.__doc__
