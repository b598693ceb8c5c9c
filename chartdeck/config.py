"""Runtime settings for chartdeck.

Settings come from three layers, later layers winning:
1. Built-in defaults (the Settings model)
2. An optional YAML file named by CHARTDECK_CONFIG
3. Environment overrides (CHARTDECK_DATABASE_PATH, CHARTDECK_LOG_LEVEL)

A stored file only needs the keys it changes; anything missing keeps its
default, so new settings added in later versions need no migration.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CHARTDECK_CONFIG"

# Debounce bounds accepted from user settings
MIN_RENDER_DEBOUNCE_MS = 300
MAX_RENDER_DEBOUNCE_MS = 3000


class Settings(BaseModel):
    """Engine and adapter settings."""

    database_path: str = Field(
        default=str(Path.cwd() / "chartdeck.db"),
        description="SQLite file used by the bundled store adapters",
    )
    storage_limit_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Upper bound on the total serialized size of stored snippets",
    )
    render_debounce_ms: int = Field(
        default=1500,
        description="Delay after the last edit before the preview re-renders",
    )
    autosave_debounce_ms: int = Field(
        default=1000,
        description="Delay after the last edit before the draft is persisted",
    )
    fetch_timeout_s: float = Field(
        default=30.0,
        description="Timeout for dataset URL fetches",
    )
    log_level: str = Field(default="INFO")

    @field_validator("render_debounce_ms")
    @classmethod
    def _clamp_render_debounce(cls, value: int) -> int:
        return max(MIN_RENDER_DEBOUNCE_MS, min(MAX_RENDER_DEBOUNCE_MS, value))

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a settings file. Returns {} when missing or unreadable."""
    if not path.exists():
        logger.warning(f"Config file not found: {path}")
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to read config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Config {path} must be a mapping, got {type(data).__name__}")
        return {}
    return data


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    """Accept both flat keys and the sectioned layout of the settings file.

        storage:
          database_path: ...
        performance:
          render_debounce_ms: 800
    """
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build Settings from defaults, an optional YAML file and the environment."""
    if path is None and os.environ.get(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])

    values: dict[str, Any] = {}
    if path is not None:
        values.update(_flatten(_read_yaml(path)))

    env_overrides = {
        "database_path": os.environ.get("CHARTDECK_DATABASE_PATH"),
        "log_level": os.environ.get("CHARTDECK_LOG_LEVEL"),
    }
    values.update({k: v for k, v in env_overrides.items() if v})

    known = {k: v for k, v in values.items() if k in Settings.model_fields}
    for unknown in sorted(set(values) - set(known)):
        logger.debug(f"Ignoring unknown setting: {unknown}")

    try:
        return Settings.model_validate(known)
    except ValueError as e:
        logger.error(f"Invalid settings, using defaults: {e}")
        return Settings()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
