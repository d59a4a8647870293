"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from networth_tracker.core.exceptions import ConfigurationError


class StorageConfig(BaseModel):
    """SQLite storage configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/networth.db"


class FrankfurterConfig(BaseModel):
    """Frankfurter exchange-rate provider configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = "https://api.frankfurter.dev/v1"
    timeout_seconds: float = 10.0

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("timeout_seconds")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v


class ProvidersConfig(BaseModel):
    """Aggregated provider configuration."""

    model_config = ConfigDict(frozen=True)

    frankfurter: FrankfurterConfig = FrankfurterConfig()


class SyncConfig(BaseModel):
    """When the API server schedules background rate syncs."""

    model_config = ConfigDict(frozen=True)

    on_startup: bool = True
    after_balance_sheet_create: bool = True


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8000
    api_key: str | None = None


class AppConfig(BaseModel):
    """Root configuration for networth-tracker."""

    model_config = ConfigDict(frozen=True)

    storage: StorageConfig = StorageConfig()
    providers: ProvidersConfig = ProvidersConfig()
    sync: SyncConfig = SyncConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "NETWORTH_",
) -> AppConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (NETWORTH_STORAGE__SQLITE_PATH, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        NETWORTH_PROVIDERS__FRANKFURTER__TIMEOUT_SECONDS=5  ->
        providers.frankfurter.timeout_seconds = 5
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return AppConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigurationError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("NETWORTH_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigurationError(
                f"Config file from NETWORTH_CONFIG not found: {env_path}",
                context={"field": "NETWORTH_CONFIG", "value": env_path},
            )
        return p

    default = Path("networth.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # NETWORTH_CONFIG points at the file, it is not a setting
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            nested = target.get(part)
            target[part] = dict(nested) if isinstance(nested, dict) else {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
