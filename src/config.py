"""Configuration loading for the InnSync calendar engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from models.stay import StayStatus
from models.window import DEFAULT_TIMELINE_DAYS, WEEKDAYS, ViewType


class CalendarConfig(BaseModel):
    """Calendar view defaults."""

    default_view: ViewType = ViewType.WEEK
    week_starts_on: str = "sunday"
    timeline_days: int = Field(default=DEFAULT_TIMELINE_DAYS, ge=1, le=366)
    hidden_statuses: list[StayStatus] = Field(default_factory=list)

    @field_validator("week_starts_on")
    @classmethod
    def _known_weekday(cls, value: str) -> str:
        value = value.lower()
        if value not in WEEKDAYS:
            raise ValueError(f"Unknown weekday: {value}")
        return value


class StoreConfig(BaseModel):
    """Which stay record store to use and where it lives."""

    kind: Literal["sqlite", "rest"] = "sqlite"
    db_path: str | None = None
    base_url: str | None = None


class EngineConfig(BaseModel):
    """Main configuration model."""

    property_id: str | None = None
    debounce_seconds: float = Field(default=0.5, ge=0)
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    notification_limit: int = Field(default=50, ge=1)
    fetch_timeout: float = Field(default=10.0, gt=0)
    fetch_retries: int = Field(default=3, ge=1)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)


class SecretsConfig(BaseModel):
    """Secrets configuration model."""

    rest: dict[str, str] = Field(default_factory=dict)


def find_config_dir() -> Path:
    """Find the config directory.

    Looks for config directory in the following order:
    1. ./config (relative to cwd)
    2. ../config (parent of cwd)
    3. ~/.config/innsync
    """
    cwd = Path.cwd()

    if (cwd / "config").is_dir():
        return cwd / "config"

    if (cwd.parent / "config").is_dir():
        return cwd.parent / "config"

    home_config = Path.home() / ".config" / "innsync"
    if home_config.is_dir():
        return home_config

    return cwd / "config"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(config_dir: Path | None = None) -> EngineConfig:
    """Load the main configuration."""
    if config_dir is None:
        config_dir = find_config_dir()

    config_path = config_dir / "config.yaml"
    data = load_yaml(config_path)
    return EngineConfig.model_validate(data)


def load_secrets(config_dir: Path | None = None) -> SecretsConfig:
    """Load the secrets configuration."""
    if config_dir is None:
        config_dir = find_config_dir()

    secrets_path = config_dir / "secrets.yaml"
    data = load_yaml(secrets_path)
    return SecretsConfig.model_validate(data)


def get_rest_secret(secrets: SecretsConfig, key: str) -> str | None:
    """Get a secret value for the REST store."""
    return secrets.rest.get(key)
