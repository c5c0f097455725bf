"""Fernet encryption for preference values stored at rest."""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a key is unusable or a token cannot be decrypted."""


class ValueEncryptor:
    """Encrypts and decrypts short string values with a Fernet key.

    Usage::

        encryptor = ValueEncryptor(ValueEncryptor.generate_key())
        token = encryptor.encrypt("female")
        encryptor.decrypt(token)  # "female"
    """

    def __init__(self, key: str) -> None:
        """
        Args:
            key: A Fernet key string (``ValueEncryptor.generate_key()``).

        Raises:
            EncryptionError: If the key is empty or malformed.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.strip().encode("utf-8"))
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str:
        """
        Raises:
            EncryptionError: Wrong key, or the token was tampered with.
        """
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
