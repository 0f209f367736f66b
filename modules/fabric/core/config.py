"""
Configuration Management.

Loads secrets from config/.env and settings from config/settings/*.yaml.
No hardcoded values in code. All configuration comes from these sources.

Secrets (.env):
    BROKER_PASSWORD

Settings (YAML):
    application.yaml - Service identity, pagination defaults
    logging.yaml     - Logging configuration
    features.yaml    - Feature flags
    events.yaml      - Forwarding pipeline retry, timeout and breaker settings
    rpc.yaml         - RPC call timeout and channel naming
    broker.yaml      - Redis broker connection settings
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from modules.fabric.core.config_schema import (
    ApplicationSchema,
    BrokerSchema,
    EventsSchema,
    FeaturesSchema,
    LoggingSchema,
    RpcSchema,
)


def find_project_root() -> Path:
    """Find project root by looking for .project_root marker file."""
    current = Path.cwd()
    while current != current.parent:
        if (current / ".project_root").exists():
            return current
        current = current.parent
    raise RuntimeError("Project root not found. Ensure .project_root file exists.")


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load a YAML configuration file from config/settings/."""
    project_root = find_project_root()
    config_path = project_root / "config" / "settings" / filename

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


class Settings(BaseSettings):
    """Secrets loaded from config/.env. Only passwords, tokens, and keys."""

    broker_password: str = ""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


SECTIONS: dict[str, tuple[type[BaseModel], str]] = {
    "application": (ApplicationSchema, "application.yaml"),
    "logging": (LoggingSchema, "logging.yaml"),
    "features": (FeaturesSchema, "features.yaml"),
    "events": (EventsSchema, "events.yaml"),
    "rpc": (RpcSchema, "rpc.yaml"),
    "broker": (BrokerSchema, "broker.yaml"),
}
"""Section name → (schema, file under config/settings/)."""


def _load_validated(schema_cls: type[BaseModel], filename: str) -> Any:
    """Load YAML and validate against schema. Returns typed model instance."""
    raw = load_yaml_config(filename)
    try:
        return schema_cls(**raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {filename}:\n{e}") from e


class AppConfig:
    """
    Every settings file, validated once at construction.

    A missing key, wrong type or unknown field in any file fails here,
    at startup, naming the file.
    """

    def __init__(self) -> None:
        self._sections: dict[str, BaseModel] = {
            name: _load_validated(schema_cls, filename)
            for name, (schema_cls, filename) in SECTIONS.items()
        }

    def sections(self) -> dict[str, BaseModel]:
        """All sections by name, in declaration order."""
        return dict(self._sections)

    @property
    def application(self) -> ApplicationSchema:
        return self._sections["application"]

    @property
    def logging(self) -> LoggingSchema:
        return self._sections["logging"]

    @property
    def features(self) -> FeaturesSchema:
        return self._sections["features"]

    @property
    def events(self) -> EventsSchema:
        """Domain and gateway channels, forwarding pipeline tuning."""
        return self._sections["events"]

    @property
    def rpc(self) -> RpcSchema:
        return self._sections["rpc"]

    @property
    def broker(self) -> BrokerSchema:
        return self._sections["broker"]


@lru_cache
def get_settings() -> Settings:
    """Get cached secrets instance. Resolves .env path from project root."""
    env_path = find_project_root() / "config" / ".env"
    return Settings(_env_file=str(env_path))


@lru_cache
def get_app_config() -> AppConfig:
    """Get cached application configuration."""
    return AppConfig()


def get_redis_url() -> str:
    """
    Construct the broker Redis URL from YAML config and secrets.

    Returns:
        Redis connection URL string.
    """
    broker = get_app_config().broker
    password = get_settings().broker_password
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{broker.host}:{broker.port}/{broker.db}"
