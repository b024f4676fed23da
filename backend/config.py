"""
Application configuration, loaded from config.yaml and merged over defaults.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

# Project root is one level up from backend/
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_FILE = Path(os.environ.get("WATCHPARTY_CONFIG", PROJECT_ROOT / "config.yaml"))

logger = logging.getLogger(__name__)

DEFAULTS = {
    "polling": {
        "party_state": 2000,
        "messages": 3000,
        "invitations": 5000
    },
    "search": {
        "debounce": 500,
        "limit": 10
    },
    "player": {
        "seek_step": 10,
        "controls_timeout": 2000,
        "change_episode_notice": 4000
    },
    "media": {"base_url": "/media"},
    "sessions": {"ttl_hours": 720},
    "faq": []
}

# Sections safe to hand to clients
PUBLIC_SECTIONS = ("polling", "search", "player", "media")

# App configuration (loaded from config.yaml)
app_config: dict = copy.deepcopy(DEFAULTS)


def deep_merge(defaults: dict, overrides: dict) -> dict:
    """Merge overrides into defaults; nested dicts merge key by key."""
    result = defaults.copy()
    for key, value in overrides.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_app_config(path: Optional[Path] = None) -> dict:
    """Load application configuration from config.yaml."""
    global app_config

    path = Path(path or CONFIG_FILE)
    loaded = {}

    if path.exists():
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f) or {}
            logger.info(f"Loaded config from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading config: {e}")
            loaded = {}
    else:
        logger.info("No config.yaml found, using defaults")

    if not isinstance(loaded, dict):
        logger.error(f"Ignoring config {path}: expected a mapping")
        loaded = {}

    app_config = deep_merge(copy.deepcopy(DEFAULTS), loaded)
    return app_config


def get(section: str, key: Optional[str] = None, default=None):
    """Read a config value, e.g. get("search", "limit")."""
    value = app_config.get(section, DEFAULTS.get(section))
    if key is None:
        return value if value is not None else default
    if not isinstance(value, dict):
        return default
    return value.get(key, DEFAULTS.get(section, {}).get(key, default))


def public_config() -> dict:
    return {section: app_config.get(section, {}) for section in PUBLIC_SECTIONS}
