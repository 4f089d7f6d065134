import json
import os
from typing import Any, Dict

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify app credentials. The client secret is optional; without it the
    # authorization-code flow uses PKCE.
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_scopes": [
        "user-library-read",
        "playlist-modify-private",
    ],
    "spotify_authorize_url": "https://accounts.spotify.com/authorize",
    "spotify_token_url": "https://accounts.spotify.com/api/token",
    "spotify_api_base_url": "https://api.spotify.com",

    # Local OAuth callback server. The redirect URI registered with Spotify
    # must be http://<oauth_host>:<oauth_port><oauth_callback_path>
    "oauth_host": "127.0.0.1",
    "oauth_port": 3000,
    "oauth_login_path": "/spotify/login",
    "oauth_callback_path": "/spotify/callback",
    "open_browser": True,
    "confirm_browser": False,

    # API client
    "retry_delay_ms": 1000,

    # Playlist
    "playlist_public": False,

    # Logging
    "log_level": "INFO",
    "log_file": "logs/liked_playlist.log",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": True, "non_empty": True},
    "spotify_client_secret": {"type": str, "required": False},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_authorize_url": {"type": str, "required": False},
    "spotify_token_url": {"type": str, "required": False},
    "spotify_api_base_url": {"type": str, "required": False},

    "oauth_host": {"type": str, "required": False},
    "oauth_port": {"type": int, "required": False, "min": 0, "max": 65535},
    "oauth_login_path": {"type": str, "required": False, "prefix": "/"},
    "oauth_callback_path": {"type": str, "required": False, "prefix": "/"},
    "open_browser": {"type": bool, "required": False},
    "confirm_browser": {"type": bool, "required": False},

    "retry_delay_ms": {"type": int, "required": False, "min": 1000, "max": 60000},

    "playlist_public": {"type": bool, "required": False},

    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "log_file": {"type": str, "required": False},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a JSON object.")

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # Type check (bool is an int subclass, so reject it explicitly for ints)
        expected_type = rules.get("type")
        if expected_type and (
            not isinstance(value, expected_type) or (expected_type is int and isinstance(value, bool))
        ):
            errors.append(f"Field '{key}' must be {expected_type.__name__}, got {type(value).__name__}")
            continue

        if rules.get("non_empty") and not str(value).strip():
            errors.append(f"Field '{key}' must not be empty")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        if "prefix" in rules and not str(value).startswith(rules["prefix"]):
            errors.append(f"Field '{key}' must start with '{rules['prefix']}', got '{value}'")

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, int) and not isinstance(value, bool):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def get_config_value(config: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a single config value, falling back to DEFAULT_CONFIG and then `default`."""
    if key in config:
        return config[key]
    return DEFAULT_CONFIG.get(key, default)
