"""
Configuration management for MusicMan
"""
import os
import json
import logging
from typing import Dict, Any, Optional, Tuple

from musicman.exceptions import ConfigurationError

logger = logging.getLogger("MusicMan.Config")

ENV_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
CONFIG_PATH = "config.json"
DEFAULT_LAVALINK_HOST = "localhost:2333"
DEFAULT_LAVALINK_PASSWORD = "youshallnotpass"

DEFAULT_CONFIG = {
    # Token should NEVER be in config file - use environment variables only
    "prefix": "!",
    "language": "en",
    "max_queue_size": 200,
    # upper bound for every call into the voice gateway or the audio node
    "external_call_timeout_seconds": 15,
    # yt-dlp style source prefix used by Lavalink for plain-text queries
    "default_search": "ytsearch",
    "trace_logging": False,
    "structured_logging": False,
    "log_file": "MusicMan.log",
}

_SEARCH_SOURCES = ("ytsearch", "ytmsearch", "scsearch")


def load_env_file(path: Optional[str] = None):
    """Load environment variables from a .env file if it exists."""
    env_path = path or ENV_PATH
    if not os.path.exists(env_path):
        return
    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")
                    # Only set if not already in environment
                    if key and not os.getenv(key):
                        os.environ[key] = value
    except OSError as e:
        logger.warning("Could not load .env file: %s", e)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from config.json, merged with defaults."""
    config_path = path or CONFIG_PATH
    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_conf = json.load(f)
            if not isinstance(user_conf, dict):
                raise ValueError("top-level value must be an object")
            # Remove token from user config if it exists (security measure)
            if "token" in user_conf:
                logger.warning("Token found in %s - this is insecure. Please use DISCORD_TOKEN environment variable instead.", config_path)
                del user_conf["token"]
            config = {**DEFAULT_CONFIG, **user_conf}
        except (OSError, ValueError) as e:
            logger.warning("Could not load %s: %s", config_path, e)
            config = DEFAULT_CONFIG.copy()
    else:
        config = DEFAULT_CONFIG.copy()

    return validate_config(config)


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and sanitize configuration values (non-destructive fallback).

    Does not remove existing keys; only replaces clearly invalid values with
    their defaults.
    """
    def clamp_int(key, minimum, default):
        try:
            if int(cfg.get(key)) < minimum:
                logger.warning("Config '%s'=%s < %s; fallback to %s", key, cfg.get(key), minimum, default)
                cfg[key] = default
            else:
                cfg[key] = int(cfg.get(key))
        except (TypeError, ValueError):
            logger.warning("Config '%s' invalid (%s); fallback to %s", key, cfg.get(key), default)
            cfg[key] = default
    clamp_int("max_queue_size", 1, DEFAULT_CONFIG["max_queue_size"])
    clamp_int("external_call_timeout_seconds", 1, DEFAULT_CONFIG["external_call_timeout_seconds"])
    prefix = cfg.get("prefix")
    if not isinstance(prefix, str) or not prefix.strip() or any(c.isspace() for c in prefix):
        logger.warning("Config 'prefix'=%r invalid; fallback to %r", prefix, DEFAULT_CONFIG["prefix"])
        cfg["prefix"] = DEFAULT_CONFIG["prefix"]
    if cfg.get("default_search") not in _SEARCH_SOURCES:
        logger.warning("Unknown default_search=%s; fallback to 'ytsearch'", cfg.get("default_search"))
        cfg["default_search"] = DEFAULT_CONFIG["default_search"]
    lang = str(cfg.get("language") or "").lower()
    if lang not in ("en", "vi"):
        logger.warning("Unknown language=%s; fallback to 'en'", cfg.get("language"))
        cfg["language"] = "en"
    return cfg


def get_token() -> str:
    """Get Discord token from environment variables only."""
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise ConfigurationError("DISCORD_TOKEN environment variable is required!")
    return token


def get_lavalink_settings() -> Tuple[str, str]:
    """Return ``(uri, password)`` for the Lavalink node.

    ``LAVALINK_HOST`` may be ``host:port`` or a full ``http(s)://`` uri.
    """
    host = (os.getenv("LAVALINK_HOST") or DEFAULT_LAVALINK_HOST).strip().rstrip("/")
    if not host.startswith(("http://", "https://")):
        host = f"http://{host}"
    password = os.getenv("LAVALINK_PASSWORD")
    if not password:
        logger.warning("LAVALINK_PASSWORD not set; using the Lavalink default password")
        password = DEFAULT_LAVALINK_PASSWORD
    return host, password
