"""
LibreGlance: configuration loading.

Reads the shell's plugin settings file and overlays environment variables
(optionally from a .env file). Credentials are only checked when a fetch
actually needs them.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from libre_client import ConfigError, NotConfigured
from libre_reading import UNIT_MGDL, UNIT_MMOL
from libre_session import Credentials

# -- Paths --
PLUGIN_SETTINGS_PATH = Path.home() / ".config" / "DankMaterialShell" / "plugin_settings.json"
ENV_PATH = Path.home() / ".config" / "libre-glance" / ".env"
SETTINGS_KEY = "libreGlucose"

DEFAULT_UNIT = UNIT_MMOL
DEFAULT_LOW_THRESHOLD = 4.0
DEFAULT_HIGH_THRESHOLD = 10.0

# Environment variable -> settings key
ENV_OVERRIDES = {
    "LIBRE_USERNAME": "username",
    "LIBRE_PASSWORD": "password",
    "LIBRE_GLUCOSE_UNIT": "glucoseUnit",
    "LIBRE_LOW_THRESHOLD": "lowThreshold",
    "LIBRE_HIGH_THRESHOLD": "highThreshold",
}


@dataclass(frozen=True)
class Configuration:
    username: str = ""
    password: str = field(default="", repr=False)
    glucose_unit: str = DEFAULT_UNIT
    low_threshold: float = DEFAULT_LOW_THRESHOLD
    high_threshold: float = DEFAULT_HIGH_THRESHOLD

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password)

    def require_credentials(self) -> Credentials:
        """Return the credentials, or raise NotConfigured if either is missing."""
        if not self.is_configured:
            raise NotConfigured()
        return Credentials(username=self.username, password=self.password)


def _threshold(settings: dict, key: str, default: float) -> float:
    value = settings.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Config load failed: {key} must be a number, got {value!r}") from e


def from_settings(settings: dict) -> Configuration:
    """Build a Configuration from a libreGlucose settings dict."""
    unit = settings.get("glucoseUnit") or DEFAULT_UNIT
    if unit not in (UNIT_MMOL, UNIT_MGDL):
        unit = DEFAULT_UNIT
    return Configuration(
        username=str(settings.get("username") or ""),
        password=str(settings.get("password") or ""),
        glucose_unit=unit,
        low_threshold=_threshold(settings, "lowThreshold", DEFAULT_LOW_THRESHOLD),
        high_threshold=_threshold(settings, "highThreshold", DEFAULT_HIGH_THRESHOLD),
    )


def read_settings_file(path: Path) -> dict:
    """Return the libreGlucose block of the plugin settings file.

    A missing file or missing block is not an error; unreadable JSON is.
    """
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            settings = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Config load failed: {e}") from e

    if not isinstance(settings, dict):
        raise ConfigError("Config load failed: settings file is not a JSON object")
    block = settings.get(SETTINGS_KEY) or {}
    if not isinstance(block, dict):
        raise ConfigError(f"Config load failed: {SETTINGS_KEY} is not a JSON object")
    return block


def env_settings() -> dict:
    """Settings supplied through LIBRE_* environment variables."""
    return {key: os.environ[var] for var, key in ENV_OVERRIDES.items() if os.environ.get(var)}


def load_config(
    settings_path: Optional[Path] = None,
    env_path: Optional[Path] = None,
) -> Configuration:
    """Load the widget configuration: defaults, then settings file, then env."""
    load_dotenv(dotenv_path=str(env_path or ENV_PATH))

    settings = dict(read_settings_file(settings_path or PLUGIN_SETTINGS_PATH))
    settings.update(env_settings())
    return from_settings(settings)


def with_unit(config: Configuration, unit: str) -> Configuration:
    """Copy of config displaying in another unit."""
    if unit not in (UNIT_MMOL, UNIT_MGDL):
        raise ConfigError(f"Config load failed: unknown glucose unit {unit!r}")
    return replace(config, glucose_unit=unit)
