"""AES-256-GCM encryption for stored shop access tokens.

Key source precedence:
    1. SONA_ENCRYPTION_KEY env var (base64-encoded 32-byte key)
    2. SONA_ENCRYPTION_KEY_FILE env var (path to raw 32-byte key file)

Key length enforcement:
    Both encrypt_token() and decrypt_token() validate len(key) == 32 so a
    short key never silently downgrades to AES-128-GCM.

Ciphertext format: base64(nonce[12] || ciphertext || tag[16]). This is the
layout written by the shop install flow, so tokens stored there decrypt
here unchanged.
"""

import base64
import binascii
import logging
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.errors import DecryptionFailedError

logger = logging.getLogger(__name__)

_REQUIRED_KEY_LENGTH = 32
_NONCE_LENGTH = 12
_TAG_LENGTH = 16


def get_key_source_info() -> dict:
    """Return metadata about the active key source (without revealing the key).

    Returns:
        {"source": "env"|"env_file"|None, "path": str | None}
    """
    if os.environ.get("SONA_ENCRYPTION_KEY", "").strip():
        return {"source": "env", "path": None}

    env_key_file = os.environ.get("SONA_ENCRYPTION_KEY_FILE", "").strip()
    if env_key_file:
        return {"source": "env_file", "path": env_key_file}

    return {"source": None, "path": None}


def load_key() -> bytes:
    """Load the 32-byte AES-256 encryption key from the environment.

    Returns:
        32-byte encryption key.

    Raises:
        ValueError: If no key is configured, the key has invalid length,
            the base64 is invalid, or the key file is unusable.
    """
    env_key = os.environ.get("SONA_ENCRYPTION_KEY", "").strip()
    if env_key:
        try:
            key = base64.b64decode(env_key, validate=True)
        except binascii.Error as e:
            raise ValueError(
                f"SONA_ENCRYPTION_KEY contains invalid base64: {e}"
            ) from e
        if len(key) != _REQUIRED_KEY_LENGTH:
            raise ValueError(
                f"SONA_ENCRYPTION_KEY has invalid length {len(key)} (expected {_REQUIRED_KEY_LENGTH})"
            )
        return key

    env_key_file = os.environ.get("SONA_ENCRYPTION_KEY_FILE", "").strip()
    if env_key_file:
        if not os.path.exists(env_key_file):
            raise ValueError(
                f"SONA_ENCRYPTION_KEY_FILE path does not exist: {env_key_file}"
            )
        if os.path.islink(env_key_file):
            raise ValueError(
                f"SONA_ENCRYPTION_KEY_FILE is a symlink: {env_key_file}. "
                "Symlinks are rejected to prevent link-following attacks."
            )
        if not os.path.isfile(env_key_file):
            raise ValueError(
                f"SONA_ENCRYPTION_KEY_FILE is not a regular file: {env_key_file}"
            )
        with open(env_key_file, "rb") as f:
            key = f.read()
        if len(key) != _REQUIRED_KEY_LENGTH:
            raise ValueError(
                f"Key file {env_key_file} has invalid length {len(key)} (expected {_REQUIRED_KEY_LENGTH})"
            )
        return key

    raise ValueError(
        "No encryption key configured. Set SONA_ENCRYPTION_KEY or SONA_ENCRYPTION_KEY_FILE."
    )


def encrypt_token(token: str, key: bytes) -> str:
    """Encrypt an access token for storage.

    Args:
        token: Plaintext access token.
        key: 32-byte AES-256 key.

    Returns:
        Base64 string of nonce || ciphertext || tag.

    Raises:
        ValueError: If key is not exactly 32 bytes.
    """
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise ValueError(
            f"Encryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes "
            f"(got {len(key)}). AES-256-GCM requires a 256-bit key."
        )
    nonce = os.urandom(_NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, token.encode("utf-8"), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_token(encrypted: str, key: bytes) -> str:
    """Decrypt a stored access token.

    Args:
        encrypted: Base64 string produced by encrypt_token.
        key: 32-byte AES-256 key.

    Returns:
        Plaintext access token.

    Raises:
        DecryptionFailedError: If the payload is malformed, too short, the
            key has the wrong length, or authentication fails.
    """
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise DecryptionFailedError(
            f"Decryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes (got {len(key)})."
        )

    try:
        payload = base64.b64decode((encrypted or "").strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionFailedError(f"Stored Shopify token is not valid base64: {e}") from e

    if len(payload) < _NONCE_LENGTH + _TAG_LENGTH:
        raise DecryptionFailedError("Stored Shopify token payload is too short.")

    nonce = payload[:_NONCE_LENGTH]
    try:
        plaintext = AESGCM(key).decrypt(nonce, payload[_NONCE_LENGTH:], None)
        return plaintext.decode("utf-8")
    except Exception as e:
        # InvalidTag carries no message; name the type instead
        raise DecryptionFailedError(
            f"Decryption failed: {type(e).__name__}"
        ) from e
