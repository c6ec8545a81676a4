"""Encryption of stored Notion integration tokens."""

import base64
import os
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken


class TokenDecryptionError(ValueError):
    """Raised when a stored token cannot be decrypted with the current key."""


class EncryptionService:
    """Fernet (AES-128-CBC + HMAC) encryption for Notion API tokens at rest."""

    def __init__(self, encryption_key: Optional[str] = None):
        """
        Initialize encryption service.

        Args:
            encryption_key: Fernet key. Falls back to NOTION_SYNC_ENCRYPTION_KEY,
                          then to a throwaway key (development and tests only)
        """
        key = encryption_key or os.getenv('NOTION_SYNC_ENCRYPTION_KEY')
        self.key = key.encode() if key else Fernet.generate_key()
        self.cipher = Fernet(self.key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token for storage.

        Args:
            plaintext: Token to encrypt

        Returns:
            Base64-encoded ciphertext, or "" for empty input
        """
        if not plaintext:
            return ""
        return base64.b64encode(self.cipher.encrypt(plaintext.encode())).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored token.

        Raises:
            TokenDecryptionError: If the ciphertext was not produced with this key
        """
        if not ciphertext:
            return ""
        try:
            return self.cipher.decrypt(base64.b64decode(ciphertext.encode())).decode()
        except (InvalidToken, ValueError) as e:
            raise TokenDecryptionError("Stored Notion token could not be decrypted") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new key suitable for NOTION_SYNC_ENCRYPTION_KEY."""
        return Fernet.generate_key().decode()
