#!/usr/bin/env python3
"""Stytch MCP Relay - Per-user credential store.

Key/value persistence in a JSON file. Keys are "<user_id><field>" and
every value is AES-GCM encrypted (see crypto.py) - plaintext credentials
are never written to disk.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from stytch_relay import config
from stytch_relay.crypto import decrypt_secret, encrypt_secret

logger = config.get_logger("stytch-relay-keystore")

PROJECT_ID_FIELD = "projectID"
SECRET_FIELD = "secret"
API_KEY_FIELD = "apiKey"

# Thread lock for concurrent access
_lock = threading.Lock()


class KeystoreError(Exception):
    """The credential store file exists but cannot be read."""


def _load_store() -> dict:
    """Load the store from disk. Returns empty store if file doesn't exist."""
    path = Path(config.RELAY_KEY_STORE_PATH)
    if not path.exists():
        return {"values": {}}
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.error(f"Failed to read credential store at {path}: {e}")
        raise KeystoreError(f"Credential store at {path} is unreadable: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("values", {}), dict):
        logger.error(f"Credential store at {path} has an unexpected layout")
        raise KeystoreError(f"Credential store at {path} has an unexpected layout")
    data.setdefault("values", {})
    return data


def _save_store(store: dict) -> None:
    """Persist the store to disk, replacing the old file in one step."""
    path = Path(config.RELAY_KEY_STORE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    # mkstemp creates the file owner read/write only
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".credentials-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(store, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Failed to write credential store at {path}: {e}")
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# ==================== Key/Value Primitives ====================

def get_value(key: str) -> Optional[str]:
    """Return the raw (still encrypted) value for a key, or None."""
    return get_values(key)[key]


def get_values(*keys: str) -> Dict[str, Optional[str]]:
    """Return several raw values from a single read of the store."""
    with _lock:
        store = _load_store()
    return {key: store["values"].get(key) for key in keys}


def put_values(values: Dict[str, str]) -> None:
    """Write several raw values in one store update."""
    with _lock:
        store = _load_store()
        store["values"].update(values)
        _save_store(store)


def delete_values(*keys: str) -> None:
    """Delete keys; missing keys are ignored."""
    with _lock:
        store = _load_store()
        removed = [k for k in keys if store["values"].pop(k, None) is not None]
        if removed:
            _save_store(store)


# ==================== Project Credentials ====================

def get_project_credentials(user_id: str) -> Dict[str, Optional[str]]:
    """Return the decrypted project id and secret for a user.

    Both are None unless both are stored.
    """
    stored = get_values(user_id + PROJECT_ID_FIELD, user_id + SECRET_FIELD)
    encrypted_project_id = stored[user_id + PROJECT_ID_FIELD]
    encrypted_secret = stored[user_id + SECRET_FIELD]
    if not encrypted_project_id or not encrypted_secret:
        return {"projectID": None, "secret": None}

    return {
        "projectID": decrypt_secret(encrypted_project_id),
        "secret": decrypt_secret(encrypted_secret),
    }


def set_project_credentials(user_id: str, project_id: Optional[str], secret: Optional[str]) -> None:
    """Store a project id/secret pair. A null or empty half clears both."""
    if not project_id or not secret:
        delete_values(user_id + PROJECT_ID_FIELD, user_id + SECRET_FIELD)
        logger.info(f"Cleared project credentials for user '{user_id}'")
        return

    put_values({
        user_id + PROJECT_ID_FIELD: encrypt_secret(project_id),
        user_id + SECRET_FIELD: encrypt_secret(secret),
    })
    logger.info(f"Stored project credentials for user '{user_id}'")


def has_project_credentials(user_id: str) -> bool:
    """Check if both halves of the project credential exist."""
    stored = get_values(user_id + PROJECT_ID_FIELD, user_id + SECRET_FIELD)
    return all(stored.values())


# ==================== Weather API Key ====================

def get_api_key(user_id: str) -> Optional[str]:
    """Return the decrypted weather API key for a user, or None."""
    encrypted = get_value(user_id + API_KEY_FIELD)
    if not encrypted:
        return None
    return decrypt_secret(encrypted)


def set_api_key(user_id: str, api_key: Optional[str]) -> None:
    """Store the weather API key. None or empty clears it."""
    if not api_key:
        delete_values(user_id + API_KEY_FIELD)
        logger.info(f"Cleared API key for user '{user_id}'")
        return
    put_values({user_id + API_KEY_FIELD: encrypt_secret(api_key)})
    logger.info(f"Stored API key for user '{user_id}'")


def count_entries() -> int:
    """Number of stored values (for health reporting)."""
    with _lock:
        store = _load_store()
    return len(store["values"])
