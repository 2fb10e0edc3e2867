"""capgraph configuration: Pydantic model and TOML load with environment overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from capgraph.core.constants import (
    CAPABILITY_BEARING_PREFIXES,
    CONFIG_FILENAME,
    DB_FILENAME,
    DEFAULT_MAX_ROLE_DEPTH,
    _default_data_dir,
)
from capgraph.core.exceptions import ConfigError, ConfigNotFoundError


def capgraph_dir() -> Path:
    """
    Return the capgraph data directory, creating it if needed.

    macOS : ~/Library/Application Support/capgraph
    Linux : ~/.config/capgraph  (or $XDG_CONFIG_HOME/capgraph)
    Other : ~/.capgraph
    """
    d = _default_data_dir()
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


class DatabaseConfig(BaseModel):
    path: str = ""  # empty → use default


class EngineConfig(BaseModel):
    """Resolution engine settings."""

    model_config = {"extra": "forbid"}

    max_role_depth: int = DEFAULT_MAX_ROLE_DEPTH
    """Deepest role inheritance chain resolution will follow."""

    accepted_prefixes: list[str] = Field(default_factory=lambda: list(CAPABILITY_BEARING_PREFIXES))
    """Entity code prefixes that may hold capabilities."""

    @field_validator("max_role_depth")
    @classmethod
    def validate_depth(cls, v: int) -> int:
        if not (1 <= v <= 256):
            raise ValueError("max_role_depth must be between 1 and 256")
        return v

    @field_validator("accepted_prefixes")
    @classmethod
    def validate_prefixes(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("accepted_prefixes must not be empty")
        cleaned = [p.strip().upper() for p in v]
        for prefix in cleaned:
            if len(prefix) != 4 or not prefix.endswith("_"):
                raise ValueError(f"Prefix {prefix!r} must be three letters and an underscore")
        return cleaned


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class CapGraphConfig(BaseModel):
    """Root capgraph configuration model."""

    config_version: int = 1
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    _config_path: Path | None = None

    @property
    def db_path(self) -> Path:
        if self.database.path:
            return Path(self.database.path).expanduser()
        return capgraph_dir() / DB_FILENAME


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("CAPGRAPH_CONFIG"):
        return Path(env_path)
    return _default_data_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None) -> CapGraphConfig:
    """
    Load CapGraphConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (CAPGRAPH_*)
      2. Config file ($CAPGRAPH_CONFIG or platform data dir / config.toml)
    """
    import tomllib

    cfg_path = Path(path) if path is not None else _config_file_path()

    if not cfg_path.exists():
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    try:
        with open(cfg_path, "rb") as f:
            data = tomllib.load(f)
    except Exception as exc:
        raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc

    config = _validate(data, source=str(cfg_path))
    config._config_path = cfg_path
    return config


def load_config_or_default(path: Path | str | None = None) -> CapGraphConfig:
    """
    Like :func:`load_config`, but fall back to defaults (plus environment
    overrides) when there is no config file.  An explicit *path* that does
    not exist is still an error.
    """
    try:
        return load_config(path)
    except ConfigNotFoundError:
        if path is not None:
            raise
        return _validate({}, source="<defaults>")


def _validate(data: dict[str, Any], source: str) -> CapGraphConfig:
    _apply_env_overrides(data)
    try:
        return CapGraphConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {source}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay CAPGRAPH_* environment variables onto parsed TOML."""
    if level := os.environ.get("CAPGRAPH_LOG_LEVEL", ""):
        data.setdefault("logging", {})["level"] = level
    if fmt := os.environ.get("CAPGRAPH_LOG_FORMAT", ""):
        data.setdefault("logging", {})["format"] = fmt
    if db := os.environ.get("CAPGRAPH_DB_PATH", ""):
        data.setdefault("database", {})["path"] = db
    if depth := os.environ.get("CAPGRAPH_MAX_ROLE_DEPTH", ""):
        try:
            data.setdefault("engine", {})["max_role_depth"] = int(depth)
        except ValueError as exc:
            raise ConfigError(f"CAPGRAPH_MAX_ROLE_DEPTH must be an integer, got {depth!r}") from exc
