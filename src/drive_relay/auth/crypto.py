"""
Cookie encryption for Drive Relay.

AES-256-GCM helpers that turn the refresh token into a stateless, transportable
envelope: ``version.iv.ciphertext.tag`` as four base64url segments. The key is
a single 32-byte secret read from the server configuration, so the backend
keeps no storage of its own.
"""

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.config import get_server_config
from ..utils.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = 1
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32


def b64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(text: str) -> bytes:
    """
    Decode base64url (or standard base64) text, with or without padding.

    Raises:
        ValueError: If the text is not valid base64.
    """
    normalized = text.strip().replace("+", "-").replace("/", "_")
    padding = -len(normalized) % 4
    try:
        return base64.urlsafe_b64decode(normalized + "=" * padding)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 segment: {e}") from e


def load_key(key_b64: Optional[str] = None) -> bytes:
    """
    Load and validate the AES key.

    Args:
        key_b64: Encoded key. Defaults to DRIVE_RELAY_ENC_KEY_B64 from the server config.

    Raises:
        ConfigurationError: If the key is missing or does not decode to 32 bytes.
    """
    if key_b64 is None:
        key_b64 = get_server_config().encryption_key_b64
    if not key_b64:
        raise ConfigurationError("Missing DRIVE_RELAY_ENC_KEY_B64 environment variable")
    try:
        key = b64url_decode(key_b64)
    except ValueError:
        raise ConfigurationError("DRIVE_RELAY_ENC_KEY_B64 is not valid base64")
    if len(key) != KEY_LENGTH:
        raise ConfigurationError("DRIVE_RELAY_ENC_KEY_B64 must decode to 32 bytes")
    return key


def generate_key() -> str:
    """Generate a fresh base64url-encoded key suitable for DRIVE_RELAY_ENC_KEY_B64."""
    return b64url_encode(AESGCM.generate_key(bit_length=256))


def encrypt(plaintext: bytes, aad: Optional[bytes] = None, key: Optional[bytes] = None) -> str:
    """
    Encrypt plaintext into a compact envelope string.

    Args:
        plaintext: The data to encrypt.
        aad: Optional associated data binding the envelope to its purpose.
        key: Optional raw key; defaults to the configured key.

    Returns:
        The envelope ``v.iv.ciphertext.tag`` in base64url segments.
    """
    if key is None:
        key = load_key()
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext, aad or None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return ".".join(
        b64url_encode(part)
        for part in (bytes([ENVELOPE_VERSION]), iv, ciphertext, tag)
    )


def decrypt(envelope: str, aad: Optional[bytes] = None, key: Optional[bytes] = None) -> bytes:
    """
    Decrypt an envelope produced by encrypt().

    Args:
        envelope: The envelope string.
        aad: Associated data; must equal the value used at encryption.
        key: Optional raw key; defaults to the configured key.

    Raises:
        DecryptionError: On malformed input, unknown version or failed authentication.
    """
    if key is None:
        key = load_key()

    parts = envelope.split(".") if envelope else []
    if len(parts) != 4:
        raise DecryptionError("Malformed encrypted token")

    try:
        version, iv, ciphertext, tag = (b64url_decode(part) for part in parts)
    except ValueError:
        raise DecryptionError("Malformed encrypted token")

    if len(version) != 1 or version[0] != ENVELOPE_VERSION:
        raise DecryptionError("Unsupported token version")
    if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise DecryptionError("Malformed encrypted token")

    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, aad or None)
    except InvalidTag:
        logger.warning("Rejected encrypted token: authentication tag mismatch")
        raise DecryptionError("Encrypted token failed authentication")
