#!/usr/bin/env python3
"""Stytch MCP Relay - Per-user secret encryption.

AES-GCM with a random 12-byte nonce per value. Stored form is
base64(nonce || ciphertext || tag). The key is read from ENCRYPTION_KEY
once and shared by every request in the process.
"""

import base64
import binascii
import os
import threading
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from stytch_relay import config

NONCE_SIZE = 12

_aesgcm: Optional[AESGCM] = None
_key_lock = threading.Lock()


class CredentialDecryptError(Exception):
    """Stored value could not be decrypted (tampered, truncated or wrong key)."""


def _init_key() -> AESGCM:
    """Initialize and memoize the AES key from the base64 config value."""
    global _aesgcm
    if _aesgcm is None:
        with _key_lock:
            if _aesgcm is None:
                if not config.ENCRYPTION_KEY:
                    raise ValueError("ENCRYPTION_KEY is not set")
                try:
                    raw = base64.b64decode(config.ENCRYPTION_KEY, validate=True)
                except binascii.Error as e:
                    raise ValueError(f"ENCRYPTION_KEY is not valid base64: {e}") from e
                # AESGCM rejects anything but 128/192/256-bit keys
                _aesgcm = AESGCM(raw)
    return _aesgcm


def reset_key() -> None:
    """Forget the memoized key so the next call re-reads ENCRYPTION_KEY."""
    global _aesgcm
    with _key_lock:
        _aesgcm = None


def encrypt_secret(secret: str) -> str:
    """Encrypt a secret into a base64 string (nonce + ciphertext)."""
    aesgcm = _init_key()
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, secret.encode("utf-8"), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_secret(encrypted: str) -> str:
    """Decrypt a base64 string (nonce + ciphertext) into the original secret."""
    aesgcm = _init_key()
    try:
        buffer = base64.b64decode(encrypted, validate=True)
    except binascii.Error as e:
        raise CredentialDecryptError("Stored value is not valid base64") from e

    if len(buffer) <= NONCE_SIZE:
        raise CredentialDecryptError("Stored value is too short")

    try:
        plaintext = aesgcm.decrypt(buffer[:NONCE_SIZE], buffer[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise CredentialDecryptError("Stored value failed authentication") from e
    return plaintext.decode("utf-8")
