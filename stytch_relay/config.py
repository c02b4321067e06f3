#!/usr/bin/env python3
"""Stytch MCP Relay - Environment variable loading.

Single source of truth for all configuration values.
All other modules import from here instead of reading os.environ directly.
"""

import os
import logging

from dotenv import load_dotenv
load_dotenv()

# ==================== Stytch Project ====================

STYTCH_PROJECT_ID = os.environ.get('STYTCH_PROJECT_ID', '')
STYTCH_PROJECT_SECRET = os.environ.get('STYTCH_PROJECT_SECRET')  # Required - no default
STYTCH_MANAGEMENT_URL = os.environ.get('STYTCH_MANAGEMENT_URL', 'https://management.stytch.com')

# ==================== Credential Store ====================

# Base64-encoded AES key (16, 24 or 32 bytes) used for per-user secrets
ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY')

# Default: /data/credentials.json (inside container, on persistent volume)
RELAY_KEY_STORE_PATH = os.environ.get('RELAY_KEY_STORE_PATH', '/data/credentials.json')

# ==================== Startup Validation ====================

_REQUIRED_VARS = {
    'STYTCH_PROJECT_ID': STYTCH_PROJECT_ID,
    'STYTCH_PROJECT_SECRET': STYTCH_PROJECT_SECRET,
    'ENCRYPTION_KEY': ENCRYPTION_KEY,
}


def validate_required_config():
    """Fail fast if any required environment variable is missing.

    Called once at server startup so operators see an immediate,
    actionable error instead of a 401 from Stytch on the first request.
    """
    missing = [k for k, v in _REQUIRED_VARS.items() if not v]
    if missing:
        raise SystemExit(
            f"FATAL: Missing required environment variables: {', '.join(missing)}\n"
            f"Set them with -e flags in 'docker run' or in a .env file."
        )

# ==================== Upstream Services ====================

WEATHER_API_URL = os.environ.get('WEATHER_API_URL', 'https://api.openweathermap.org/data/2.5/weather')

# ==================== SSL & Timeouts ====================

RELAY_VERIFY_SSL = os.environ.get('RELAY_VERIFY_SSL', 'true').lower() == 'true'
RELAY_REQUEST_TIMEOUT = int(os.environ.get('RELAY_REQUEST_TIMEOUT', '30'))

# ==================== Web UI ====================

RELAY_STATIC_DIR = os.environ.get('RELAY_STATIC_DIR', 'frontend/dist')

# ==================== stdio Transport ====================

# stdio has no HTTP layer to carry a bearer token, so the token is supplied here
RELAY_ACCESS_TOKEN = os.environ.get('RELAY_ACCESS_TOKEN')
RELAY_SUBJECT = os.environ.get('RELAY_SUBJECT', 'local')

# ==================== Logging ====================

RELAY_LOG_LEVEL = os.environ.get('RELAY_LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, RELAY_LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)
