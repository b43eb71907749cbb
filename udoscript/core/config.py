"""Configuration loading and validation."""

import os
import json
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigError


MIN_SLEEP_SEC = 0.001
MAX_SLEEP_SEC = 86400.0

KNOWN_QUIRKS = ("libinput",)


class DeviceConfig(BaseModel):
    """Emulated device parameters."""
    path: str = Field(default="/dev/uinput", min_length=1)
    name: str = Field(default="udoscript", min_length=1, max_length=79)
    bus: int = Field(default=0x06, ge=0, le=0xFFFF)  # BUS_VIRTUAL
    vendor: int = Field(default=0, ge=0, le=0xFFFF)
    product: int = Field(default=0, ge=0, le=0xFFFF)
    version: int = Field(default=0, ge=0, le=0xFFFF)
    settle_time: float = Field(default=0.5, ge=MIN_SLEEP_SEC, le=MAX_SLEEP_SEC)
    quirks: list[str] = Field(default_factory=lambda: list(KNOWN_QUIRKS))

    @field_validator("quirks")
    @classmethod
    def _known_quirks(cls, value: list[str]) -> list[str]:
        names = [q.strip().lower() for q in value if q.strip()]
        unknown = [q for q in names if q not in KNOWN_QUIRKS]
        if unknown:
            raise ValueError(f"unknown quirk(s): {', '.join(unknown)}")
        return names

    def has_quirk(self, name: str) -> bool:
        return name in self.quirks

    def with_device_id(self, text: str) -> "DeviceConfig":
        """Return a copy with `vendor:product[:version]` applied."""
        parts = text.split(":")
        if not 1 <= len(parts) <= 3:
            raise ConfigError(f"Invalid device ID: {text}")
        values = []
        for part in parts:
            try:
                value = int(part, 0)
            except ValueError:
                raise ConfigError(f"Invalid device ID: {text}")
            if not 0 <= value <= 0xFFFF:
                raise ConfigError(f"Device ID component out of range: {text}")
            values.append(value)
        update = dict(zip(("vendor", "product", "version"), values))
        return self.model_copy(update=update)

    def device_id(self) -> str:
        return f"0x{self.vendor:04X}:0x{self.product:04X}:0x{self.version:04X}"


class EngineConfig(BaseModel):
    """Main engine configuration."""
    device: DeviceConfig = Field(default_factory=DeviceConfig)

    # Execution
    key_delay: float = Field(default=0.05, gt=MIN_SLEEP_SEC, le=MAX_SLEEP_SEC)
    dry_run: bool = Field(default=False)
    shell: str = Field(default="/bin/sh")

    # Limits
    max_control_depth: int = Field(default=16, ge=2, le=256)
    max_expression_depth: int = Field(default=32, ge=4, le=1024)
    max_script_depth: int = Field(default=8, ge=1, le=64)

    # Logging
    verbosity: int = Field(default=0, ge=0, le=3)
    log_format: str = Field(default="console")

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError(f"unsupported log format: {value}")
        return value


# Environment variable → (section, field)
ENV_OVERRIDES = {
    "UDOSCRIPT_DEVICE": ("device", "path"),
    "UDOSCRIPT_DEV_NAME": ("device", "name"),
    "UDOSCRIPT_SETTLE_TIME": ("device", "settle_time"),
    "UDOSCRIPT_QUIRKS": ("device", "quirks"),
    "UDOSCRIPT_KEY_DELAY": (None, "key_delay"),
    "UDOSCRIPT_DRY_RUN": (None, "dry_run"),
    "UDOSCRIPT_SHELL": (None, "shell"),
    "UDOSCRIPT_VERBOSITY": (None, "verbosity"),
    "LOG_FORMAT": (None, "log_format"),
}


class ConfigLoader:
    """Loads and validates YAML/JSON configuration with environment overrides."""

    def __init__(self, environ: Optional[dict[str, str]] = None, use_dotenv: bool = True):
        if environ is None:
            if use_dotenv:
                load_dotenv()
            environ = dict(os.environ)
        self.environ = environ

    def load(self, path: Optional[Union[str, Path]] = None) -> EngineConfig:
        """Load configuration from a file (if any), then apply the environment."""
        if path is None:
            path = self.environ.get("UDOSCRIPT_CONFIG")
        data = self._load_file(Path(path)) if path else {}
        data = self._apply_environment(data)
        device_id = self.environ.get("UDOSCRIPT_DEV_ID")
        try:
            config = EngineConfig(**data)
        except Exception as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(path) if path else None)
        if device_id:
            config = config.model_copy(update={"device": config.device.with_device_id(device_id)})
        return config

    def _apply_environment(self, data: dict[str, Any]) -> dict[str, Any]:
        data = dict(data)
        for name, (section, field) in ENV_OVERRIDES.items():
            raw = self.environ.get(name)
            if raw is None or raw == "":
                continue
            value: Any = raw
            if field == "quirks":
                value = [q for q in raw.split(",") if q.strip()]
            elif field == "dry_run":
                value = raw.strip().lower() in ("1", "true", "yes", "on")
            if section is None:
                data[field] = value
            else:
                nested = dict(data.get(section) or {})
                nested[field] = value
                data[section] = nested
        return data

    def _load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                data = json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

        if not isinstance(data, dict):
            raise ConfigError("Config root must be a mapping", config_path=str(path))
        return data
