"""Configuration persistence: load and save ``DirectoryConfig``."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from crew_directory.models import (
    CONFIG_APP_NAME,
    DEFAULT_BASE_URL,
    DEFAULT_MAX_CACHED_KEYS,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    SEARCH_DEBOUNCE_SECONDS,
    DirectoryConfig,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration Persistence
# ============================================================================
#
# Validation contract: _dict_to_config() returns a valid config for any input.
#
#   Field                    Rule                      Handler
#   ───────────────────────  ────────────────────────  ──────────────────
#   page_size                1 ≤ x ≤ MAX_PAGE_SIZE     _coerce_int
#   search_debounce_seconds  0 ≤ x ≤ 5                 _coerce_float
#   request_timeout_seconds  1 ≤ x ≤ 300               _coerce_int
#   max_retries              0 ≤ x ≤ 5                 _coerce_int
#   roles_cache_ttl_hours    0 ≤ x ≤ 24 * 30           _coerce_int
#   max_cached_keys          1 ≤ x ≤ 64                _coerce_int
#   scalar fields            type-checked              _safe_get
#
CONFIG_FILENAME = "config.json"


def get_config_path() -> Path:
    """Get the path to the configuration file.

    Uses platformdirs for cross-platform config directory:
    - Linux: ~/.config/crew-directory/config.json
    - macOS: ~/Library/Application Support/crew-directory/config.json
    - Windows: %APPDATA%/crew-directory/config.json
    """
    config_dir = Path(user_config_dir(CONFIG_APP_NAME))
    return config_dir / CONFIG_FILENAME


def _config_to_dict(config: DirectoryConfig) -> dict[str, Any]:
    """Serialize DirectoryConfig to a JSON-compatible dictionary."""
    return {
        "version": config.version,
        "base_url": config.base_url,
        "page_size": max(1, min(config.page_size, MAX_PAGE_SIZE)),
        "search_debounce_seconds": config.search_debounce_seconds,
        "request_timeout_seconds": config.request_timeout_seconds,
        "max_retries": config.max_retries,
        "rollback_on_failed_mutation": config.rollback_on_failed_mutation,
        "roles_cache_ttl_hours": config.roles_cache_ttl_hours,
        "max_cached_keys": config.max_cached_keys,
        "auth_token": config.auth_token,
    }


def _safe_get(data: dict, key: str, default: Any, expected_type: type) -> Any:
    """Safely get a value from dict with type validation.

    Returns the default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if not isinstance(value, expected_type):
        return default
    return value


def _coerce_int(value: Any, default: int, low: int, high: int) -> int:
    """Validate an integer field and clamp it into ``[low, high]``."""
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return max(low, min(value, high))


def _coerce_float(value: Any, default: float, low: float, high: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(low, min(float(value), high))


def _dict_to_config(data: dict[str, Any]) -> DirectoryConfig:
    """Deserialize a dictionary to DirectoryConfig with type validation."""
    if not isinstance(data, dict):
        raise TypeError(f"expected a JSON object, got {type(data).__name__}")

    return DirectoryConfig(
        base_url=_safe_get(data, "base_url", DEFAULT_BASE_URL, str).rstrip("/")
        or DEFAULT_BASE_URL,
        page_size=_coerce_int(data.get("page_size"), DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE),
        search_debounce_seconds=_coerce_float(
            data.get("search_debounce_seconds"), SEARCH_DEBOUNCE_SECONDS, 0.0, 5.0
        ),
        request_timeout_seconds=_coerce_int(data.get("request_timeout_seconds"), 30, 1, 300),
        max_retries=_coerce_int(data.get("max_retries"), 1, 0, 5),
        rollback_on_failed_mutation=_safe_get(data, "rollback_on_failed_mutation", False, bool),
        roles_cache_ttl_hours=_coerce_int(data.get("roles_cache_ttl_hours"), 24, 0, 24 * 30),
        max_cached_keys=_coerce_int(data.get("max_cached_keys"), DEFAULT_MAX_CACHED_KEYS, 1, 64),
        auth_token=_safe_get(data, "auth_token", "", str),
        version=_coerce_int(data.get("version"), 1, 1, 1_000),
    )


def load_config() -> DirectoryConfig:
    """Load configuration from disk.

    Returns default config if file doesn't exist or is corrupted.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return DirectoryConfig()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        return _dict_to_config(data)
    except json.JSONDecodeError as e:
        logger.warning("Config file has invalid JSON, using defaults: %s", e)
        return DirectoryConfig()
    except (KeyError, TypeError) as e:
        logger.warning("Config file has invalid structure, using defaults: %s", e)
        return DirectoryConfig()
    except OSError as e:
        logger.warning("Could not read config file, using defaults: %s", e)
        return DirectoryConfig()


def save_config(config: DirectoryConfig) -> bool:
    """Save configuration to disk atomically.

    Uses write-to-tempfile + os.replace() so an interrupted write never
    leaves a partial config file. Returns True on success.
    """
    config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = _config_to_dict(config)
        json_str = json.dumps(data, indent=2, ensure_ascii=False)
        fd, tmp_path = tempfile.mkstemp(dir=config_path.parent, suffix=".tmp", prefix=".config-")
        closed = False
        try:
            os.write(fd, json_str.encode("utf-8"))
            os.close(fd)
            closed = True
            os.replace(tmp_path, config_path)
        except BaseException:
            if not closed:
                os.close(fd)
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return True
    except OSError as e:
        logger.error("Failed to save config: %s", e)
        return False


__all__ = [
    "CONFIG_FILENAME",
    "get_config_path",
    "load_config",
    "save_config",
]
