"""Field-level AES-256-GCM encryption for stored credentials.

Ciphertext is base64(nonce + ciphertext + tag), bound to a fixed
associated-data label. The key comes from ENCRYPTION_MASTER_KEY (64 hex
chars); outside production a random per-process key is used.
"""
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag
from typing import Optional
import base64
import binascii
import logging
import os
import secrets

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
KEY_SIZE = 32
ASSOCIATED_DATA = b"PerpetualWealthPartners"

_process_key: Optional[bytes] = None


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""
    pass


def _get_key() -> bytes:
    global _process_key

    key_hex = os.getenv("ENCRYPTION_MASTER_KEY")
    if key_hex:
        try:
            key = bytes.fromhex(key_hex)
        except ValueError:
            raise EncryptionError("ENCRYPTION_MASTER_KEY must be a hex string")
        if len(key) != KEY_SIZE:
            raise EncryptionError("ENCRYPTION_MASTER_KEY must be 32 bytes (64 hex characters)")
        return key

    if os.getenv("ENVIRONMENT", "development") == "production":
        raise EncryptionError("ENCRYPTION_MASTER_KEY environment variable is required in production")

    if _process_key is None:
        logger.warning(
            "ENCRYPTION_MASTER_KEY not set. Using a random key; encrypted values will not survive a restart."
        )
        _process_key = secrets.token_bytes(KEY_SIZE)
    return _process_key


def encrypt_field(plaintext: Optional[str]) -> str:
    """Encrypt a string. Empty input gives an empty string."""
    if not plaintext:
        return ""
    nonce = secrets.token_bytes(NONCE_SIZE)
    ciphertext = AESGCM(_get_key()).encrypt(nonce, plaintext.encode("utf-8"), ASSOCIATED_DATA)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_field(encrypted: Optional[str]) -> str:
    """Decrypt a value produced by encrypt_field. Raises EncryptionError on tampering."""
    if not encrypted:
        return ""
    try:
        combined = base64.b64decode(encrypted)
        nonce, ciphertext = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        return AESGCM(_get_key()).decrypt(nonce, ciphertext, ASSOCIATED_DATA).decode("utf-8")
    except (InvalidTag, binascii.Error, ValueError) as e:
        raise EncryptionError("Failed to decrypt value") from e


def generate_encryption_key() -> str:
    return secrets.token_hex(KEY_SIZE)
