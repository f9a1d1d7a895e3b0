import json
import os
from typing import Any, Dict, Optional

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify Web API (Authorization Code flow)
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_redirect_uri": "http://127.0.0.1:8080",
    "spotify_scopes": [
        "user-top-read",
        "user-read-recently-played",
        "playlist-modify-public",
        "playlist-read-private",
    ],

    # Session behavior
    "spotify_http_timeout": 30,
    "spotify_refresh_skew": 300,
    "playlist_page_size": 50,

    # Playlist generator
    "playlist_description": "Created with TrackTeller - github.com/AnttiRask/TrackTeller",
    "default_time_range": "short_term",
    "default_track_count": 20,
    "market": "US",
}

# Environment variables that win over config.json
ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_CLIENT_SECRET": "spotify_client_secret",
    # The OAuth redirect lands on the app root URL.
    "APP_URL": "spotify_redirect_uri",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": False},
    "spotify_client_secret": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_http_timeout": {"type": (int, float), "required": False, "min": 1, "max": 120},
    "spotify_refresh_skew": {"type": (int, float), "required": False, "min": 0, "max": 1800},
    "playlist_page_size": {"type": int, "required": False, "min": 1, "max": 50},
    "playlist_description": {"type": str, "required": False},
    "default_time_range": {
        "type": str,
        "required": False,
        "choices": ["short_term", "medium_term", "long_term"],
    },
    "default_track_count": {"type": int, "required": False, "min": 1, "max": 50},
    "market": {"type": str, "required": False},
}


def apply_env_overrides(config: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Copy non-empty SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET / APP_URL into config."""
    environ = os.environ if environ is None else environ
    for env_key, config_key in ENV_OVERRIDES.items():
        value = (environ.get(env_key) or "").strip()
        if value:
            config[config_key] = value
    return config


def load_config(path: str = CONFIG_PATH, *, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = list(value) if isinstance(value, list) else value

    return apply_env_overrides(config, environ)


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> bool:
    """Save configuration to file."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except Exception as e:
        raise IOError(f"Failed to save config: {e}")


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

        # bool is an int; never accept it for numeric fields
        expected_type = rules.get("type")
        if isinstance(value, bool) and expected_type is not bool:
            errors.append(f"Field '{key}' must not be a boolean")
            continue

        if expected_type and not isinstance(value, expected_type):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
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

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def get_config_value(key: str, default: Any = None, path: str = CONFIG_PATH) -> Any:
    """Get a single config value with optional default."""
    try:
        config = load_config(path)
        return config.get(key, default)
    except Exception:
        return default
