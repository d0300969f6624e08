"""
Token encryption — encrypt / decrypt OAuth access tokens at rest.

AES-256-CBC with PKCS7 padding from the ``cryptography`` library.  Every
call draws a fresh 16-byte IV, stored in front of the ciphertext::

    <iv hex>:<ciphertext hex>

so a stored value decrypts with nothing but the process key.  The key comes
from ``config.token_encryption_key`` (env var: ``TOKEN_ENCRYPTION_KEY``),
either 64 hex characters or a 32-character string.  Generate one with::

    openssl rand -hex 32
"""

from __future__ import annotations

import logging
import os
import string

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from connectors.errors import DecryptionFailed

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
_SEPARATOR = ":"


def parse_key(raw: str) -> bytes:
    """Turn the configured key string into 32 key bytes."""
    if len(raw) == KEY_LENGTH * 2 and all(c in string.hexdigits for c in raw):
        return bytes.fromhex(raw)
    key = raw.encode()
    if len(key) != KEY_LENGTH:
        raise ValueError(
            f"TOKEN_ENCRYPTION_KEY must be {KEY_LENGTH} bytes "
            f"(or {KEY_LENGTH * 2} hex characters), got {len(key)} bytes"
        )
    return key


class TokenCipher:
    """Symmetric cipher for stored access tokens."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Token cipher key must be {KEY_LENGTH} bytes")
        self._key = key

    @classmethod
    def from_config_key(cls, raw: str) -> "TokenCipher":
        """
        Build the cipher from the configured key string.

        An empty key falls back to a random per-process key: tokens stay
        encrypted but become unreadable after a restart.
        """
        if not raw:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set, using an ephemeral key. Stored "
                "integration tokens will not survive a restart. Generate a key: openssl rand -hex 32"
            )
            return cls(os.urandom(KEY_LENGTH))
        return cls(parse_key(raw))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token string for storage."""
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode()) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}{_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, stored: str) -> str:
        """
        Decrypt a value produced by ``encrypt``.

        Raises ``DecryptionFailed`` when the value is malformed or was
        encrypted under another key.
        """
        iv_hex, sep, ct_hex = stored.partition(_SEPARATOR)
        if not sep:
            raise DecryptionFailed("Stored token is missing the IV separator")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ct_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode()
        except ValueError as exc:
            raise DecryptionFailed(f"Stored token could not be decrypted: {exc}") from exc
