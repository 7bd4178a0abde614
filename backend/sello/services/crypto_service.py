"""Symmetric encryption for secrets stored at rest (n8n API keys, bot tokens).

Values are sealed with AES-256-GCM. Every call draws a fresh nonce, and the
nonce travels inside the stored string as ``"<nonce hex>:<ciphertext hex>"`` so
a single column round-trips.
"""

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sello.config import get_settings

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12
KEY_LENGTH = 32


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted."""


_cipher: AESGCM | None = None


def _get_cipher() -> AESGCM:
    global _cipher
    if _cipher is None:
        key_hex = get_settings().ENCRYPTION_KEY
        if key_hex:
            key = bytes.fromhex(key_hex)
            if len(key) != KEY_LENGTH:
                raise ValueError(f"ENCRYPTION_KEY must be {KEY_LENGTH} bytes hex encoded, got {len(key)} bytes")
        else:
            logger.warning("ENCRYPTION_KEY is not set, using a random key: stored secrets will not survive a restart")
            key = AESGCM.generate_key(bit_length=KEY_LENGTH * 8)
        _cipher = AESGCM(key)
    return _cipher


def reset_cipher():
    """Forget the cached key so the next call re-reads settings."""
    global _cipher
    _cipher = None


def encrypt(plaintext: str | None) -> str | None:
    if not plaintext:
        return None

    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = _get_cipher().encrypt(nonce, plaintext.encode("utf-8"), None)
    return f"{nonce.hex()}:{ciphertext.hex()}"


def decrypt(value: str | None) -> str | None:
    if not value or not value.strip():
        return None

    nonce_hex, sep, ciphertext_hex = value.partition(":")
    if not sep:
        raise DecryptionError("Malformed encrypted value")
    try:
        nonce = bytes.fromhex(nonce_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
    except ValueError as e:
        raise DecryptionError("Malformed encrypted value") from e
    if len(nonce) != NONCE_LENGTH:
        raise DecryptionError("Malformed encrypted value")

    try:
        plaintext = _get_cipher().decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError("Invalid encrypted data or wrong encryption key") from e
    return plaintext.decode("utf-8")


def decrypt_or_none(value: str | None, label: str = "secret") -> str | None:
    """Decrypt for the read path: an undecryptable value is treated as absent."""
    try:
        return decrypt(value)
    except DecryptionError as e:
        logger.error(f"Could not decrypt {label}: {e}")
        return None
