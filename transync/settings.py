"""SettingsManager — environment profiles and layered configuration."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from transync.config import (
    DEFAULT_API_URL,
    DEFAULT_POLL_INTERVAL,
    MAX_RECONNECT_ATTEMPTS,
    STATE_DIR,
)

logger = logging.getLogger(__name__)

# All known configuration keys with defaults
_CONFIG_KEYS: dict[str, dict[str, Any]] = {
    "TRANSYNC_ENV": {"default": "development", "description": "Environment profile"},
    "TRANSYNC_API_URL": {"default": DEFAULT_API_URL, "description": "Translation server API URL"},
    "TRANSYNC_POLL_INTERVAL": {
        "default": str(DEFAULT_POLL_INTERVAL),
        "description": "Device login poll interval in seconds",
    },
    "TRANSYNC_MAX_RECONNECT_ATTEMPTS": {
        "default": str(MAX_RECONNECT_ATTEMPTS),
        "description": "Live update reconnect attempts before giving up",
    },
    "TRANSYNC_LOG_LEVEL": {"default": "INFO", "description": "Logging level"},
    "TRANSYNC_AUTO_DOWNLOAD": {
        "default": "false",
        "description": "Download remote updates on start when nothing local changed",
    },
    "TRANSYNC_MERGE_STRATEGY": {
        "default": "ask",
        "description": "Default conflict choice: ask, keep_local or take_remote",
    },
    "TRANSYNC_CHECK_ON_START": {"default": "true", "description": "Check the remote on start"},
}

_PROFILES: dict[str, dict[str, str]] = {
    "development": {
        "TRANSYNC_ENV": "development",
        "TRANSYNC_LOG_LEVEL": "DEBUG",
    },
    "production": {
        "TRANSYNC_ENV": "production",
        "TRANSYNC_LOG_LEVEL": "WARNING",
    },
    "testing": {
        "TRANSYNC_ENV": "testing",
        "TRANSYNC_LOG_LEVEL": "DEBUG",
        "TRANSYNC_CHECK_ON_START": "false",
        "TRANSYNC_POLL_INTERVAL": "0.05",
    },
}

_MERGE_STRATEGIES = ("ask", "keep_local", "take_remote")
_TRUE = {"1", "true", "yes", "on"}


class SyncSettings(BaseModel):
    """Typed view over the merged configuration."""

    env: str = "development"
    api_url: str = DEFAULT_API_URL
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    max_reconnect_attempts: int = Field(default=MAX_RECONNECT_ATTEMPTS, ge=1)
    log_level: str = "INFO"
    auto_download: bool = False
    merge_strategy: str = "ask"
    check_on_start: bool = True

    @field_validator("api_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @field_validator("merge_strategy")
    @classmethod
    def _known_strategy(cls, v: str) -> str:
        v = v.lower()
        if v not in _MERGE_STRATEGIES:
            raise ValueError(f"merge_strategy must be one of {', '.join(_MERGE_STRATEGIES)}")
        return v

    @classmethod
    def from_config(cls, config: dict[str, str]) -> SyncSettings:
        return cls(
            env=config["TRANSYNC_ENV"],
            api_url=config["TRANSYNC_API_URL"],
            poll_interval=float(config["TRANSYNC_POLL_INTERVAL"]),
            max_reconnect_attempts=int(config["TRANSYNC_MAX_RECONNECT_ATTEMPTS"]),
            log_level=config["TRANSYNC_LOG_LEVEL"],
            auto_download=config["TRANSYNC_AUTO_DOWNLOAD"].lower() in _TRUE,
            merge_strategy=config["TRANSYNC_MERGE_STRATEGY"],
            check_on_start=config["TRANSYNC_CHECK_ON_START"].lower() in _TRUE,
        )


class SettingsManager:
    """Manage transync configuration across environments."""

    def generate_env_template(self, project_path: str | Path) -> Path:
        """Create .env.example with all config keys.

        Returns the path to the generated file.
        """
        root = Path(project_path)
        env_path = root / ".env.example"

        lines = ["# transync configuration template", "# Copy to .env and fill in values", ""]
        for key, info in _CONFIG_KEYS.items():
            lines.append(f"# {info['description']}")
            lines.append(f"{key}={info['default']}")
            lines.append("")

        env_path.write_text("\n".join(lines), encoding="utf-8")
        return env_path

    def load_config(self, project_path: str | Path) -> dict[str, str]:
        """Load merged config: defaults -> profile -> config.json -> .env -> env vars.

        Returns a flat dict of configuration values.
        """
        root = Path(project_path)
        config: dict[str, str] = {}

        # 1. Defaults
        for key, info in _CONFIG_KEYS.items():
            config[key] = str(info["default"])

        # 2. Profile overrides
        env_name = os.environ.get("TRANSYNC_ENV", config["TRANSYNC_ENV"])
        config.update(_PROFILES.get(env_name, {}))

        # 3. .transync/config.json
        config_json = root / STATE_DIR / "config.json"
        if config_json.is_file():
            try:
                data = json.loads(config_json.read_text(encoding="utf-8"))
                for k, v in data.items():
                    config[k] = _stringify(v)
            except (json.JSONDecodeError, OSError, AttributeError):
                logger.debug("Could not read config.json", exc_info=True)

        # 4. .env file
        env_file = root / ".env"
        if env_file.is_file():
            try:
                for line in env_file.read_text(encoding="utf-8").splitlines():
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    k, v = line.split("=", 1)
                    config[k.strip()] = v.strip().strip("\"'")
            except OSError:
                logger.debug("Could not read .env", exc_info=True)

        # 5. Environment variables override all
        for key in _CONFIG_KEYS:
            env_val = os.environ.get(key)
            if env_val is not None:
                config[key] = env_val

        return config

    def load_settings(self, project_path: str | Path) -> SyncSettings:
        return SyncSettings.from_config(self.load_config(project_path))

    def save_config(self, project_path: str | Path, values: dict[str, Any]) -> Path:
        """Merge *values* into ``.transync/config.json``."""
        unknown = sorted(set(values) - set(_CONFIG_KEYS))
        if unknown:
            raise KeyError(f"Unknown configuration key(s): {', '.join(unknown)}")
        path = Path(project_path) / STATE_DIR / "config.json"
        current: dict[str, Any] = {}
        if path.is_file():
            try:
                current = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.debug("Replacing unreadable config.json", exc_info=True)
        current.update({k: _stringify(v) for k, v in values.items()})
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(current, indent=2, sort_keys=True), encoding="utf-8")
        return path


def configure_logging(settings: SyncSettings) -> None:
    """Apply the configured level to the ``transync`` logger hierarchy."""
    logging.getLogger("transync").setLevel(settings.log_level)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
