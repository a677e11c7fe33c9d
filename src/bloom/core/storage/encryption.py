"""Fernet field encryption for raw observations at rest.

Raw observations (symptom names, blood pressure readings, ...) are
encrypted before they reach SQLite. Derived factors and scores stay in
the clear so history queries never need the key.

Several keys may be configured; the first encrypts, all of them decrypt.
That allows key rotation without re-encrypting the whole store at once.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


def parse_keys(raw: str) -> list[str]:
    """Split a comma-separated ENCRYPTION_KEY value into individual keys."""
    return [part.strip() for part in raw.split(",") if part.strip()]


class FieldEncryptor:
    """Encrypts and decrypts JSON-serializable data.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token = encryptor.encrypt({"systolic": 118})
        encryptor.decrypt(token)  # {"systolic": 118}
    """

    def __init__(self, key: str | Sequence[str]) -> None:
        """Initialize with one Fernet key or several (primary first).

        Raises:
            EncryptionError: If no key is given or a key is invalid.
        """
        keys = parse_keys(key) if isinstance(key, str) else [k for k in key if k]
        if not keys:
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = MultiFernet([Fernet(k.encode()) for k in keys])
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc
        self._key_count = len(keys)

    @property
    def key_count(self) -> int:
        """Number of keys loaded; the first encrypts, all of them decrypt."""
        return self._key_count

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token string.

        ``None`` encrypts to the empty string.

        Raises:
            EncryptionError: If serialization or encryption fails.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Decrypt a token produced by any configured key.

        Raises:
            EncryptionError: If the token is invalid or no key matches.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        return json.loads(plaintext)

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the primary key.

        Raises:
            EncryptionError: If the token cannot be decrypted.
        """
        if not token:
            return ""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key.

        Returns:
            A URL-safe base64-encoded 32-byte key as a string.
        """
        return Fernet.generate_key().decode("utf-8")
