"""Cryptographic utilities for secure seed storage.

Uses Fernet (AES-128-CBC with HMAC) for symmetric encryption.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Fernet tokens are base64 of a 0x80 version byte
FERNET_PREFIX = "gAAAAA"


class DecryptionError(Exception):
    """Raised when an encrypted secret cannot be decrypted."""

    pass


class SecretEncryptor:
    """Encrypts and decrypts wallet secrets using Fernet.

    Usage:
        encryptor = SecretEncryptor(master_key)
        encrypted = encryptor.encrypt("abandon abandon ...")
        decrypted = encryptor.decrypt(encrypted)
    """

    def __init__(self, master_key: str):
        self._fernet = Fernet(master_key.encode())

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a Fernet token.

        Raises:
            DecryptionError: If the key is wrong or the token is corrupted
        """
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise DecryptionError("Invalid master key or corrupted secret") from e


def get_encryptor(master_key: Optional[str] = None) -> Optional[SecretEncryptor]:
    """Get encryptor instance using MASTER_KEY from settings.

    Returns:
        SecretEncryptor if a key is available, None otherwise
    """
    if master_key is None:
        from hashield.config import get_settings

        master_key = get_settings().master_key

    if not master_key:
        return None

    return SecretEncryptor(master_key)


def encrypt_secret(plaintext: str, master_key: Optional[str] = None) -> str:
    """Encrypt a secret for storage.

    Without a master key the value is stored as-is and a warning is logged.
    """
    encryptor = get_encryptor(master_key)
    if encryptor is None:
        logger.warning("MASTER_KEY not set - storing wallet secret unencrypted")
        return plaintext
    return encryptor.encrypt(plaintext)


def decrypt_secret(stored: str, master_key: Optional[str] = None) -> str:
    """Decrypt a stored secret.

    Values that are not Fernet tokens are returned unchanged.

    Raises:
        DecryptionError: If the value is encrypted but no usable key is set
    """
    if not stored.startswith(FERNET_PREFIX):
        return stored

    encryptor = get_encryptor(master_key)
    if encryptor is None:
        raise DecryptionError("Stored secret is encrypted but MASTER_KEY is not set")
    return encryptor.decrypt(stored)
