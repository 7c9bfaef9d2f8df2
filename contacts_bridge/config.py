"""
Shared configuration for Contacts Bridge.

Import from here to avoid duplication across the server, manager and adapters.
"""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Base paths
BRIDGE_ROOT = Path(os.environ.get("CONTACTS_BRIDGE_ROOT", "/data"))
CONFIG_DIR = BRIDGE_ROOT / "config"
DATA_DIR = BRIDGE_ROOT / "contacts"

# Config files
ACCOUNTS_CONFIG = CONFIG_DIR / "contacts_accounts.json"
USER_SETTINGS_FILE = CONFIG_DIR / "user_settings.json"

# Server
SERVER_HOST = os.environ.get("CONTACTS_BRIDGE_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("CONTACTS_BRIDGE_PORT", "8000"))

# Used when no accounts config exists yet
DEFAULT_ACCOUNTS = {
    "accounts": {
        "device": {
            "adapter": "rowstore",
            "config": {"path": str(DATA_DIR / "contacts2.db")},
        },
    },
    "default_account": "device",
}

# Default user settings
DEFAULT_USER_SETTINGS = {
    "locale": "en-US",
    "collation_locale": None,
}


def get_user_settings() -> dict:
    """Get all user settings, layered over the defaults."""
    settings = DEFAULT_USER_SETTINGS.copy()
    try:
        if USER_SETTINGS_FILE.exists():
            settings.update(json.loads(USER_SETTINGS_FILE.read_text()))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable user settings {USER_SETTINGS_FILE}: {e}")
    return settings

