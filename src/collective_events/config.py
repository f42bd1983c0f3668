"""Event bus configuration."""

import os
from typing import Optional
from urllib.parse import quote

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EventBusSettings(BaseSettings):
    """Broker connection and consumer defaults.

    Values come from keyword arguments, then ``REDIS_*`` environment
    variables (e.g. ``REDIS_HOST``, ``REDIS_PASSWORD``), then ``.env``.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Connection
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, ge=1, le=65535, description="Redis port")
    password: Optional[str] = Field(default=None, description="Redis password")
    db: int = Field(default=0, ge=0, description="Redis database index")
    max_connections: int = Field(default=10, ge=1, description="Command pool size (publish, ack, groups)")
    max_blocking_connections: int = Field(
        default=50, ge=1, description="Blocking-read pool size (one per concurrent wait or consumer)"
    )
    pool_timeout: float = Field(
        default=20.0, gt=0, description="Seconds to wait for a free pooled connection"
    )

    # Consumers
    block_ms: int = Field(default=1000, ge=1, description="Blocking read window in milliseconds")
    read_count: int = Field(default=10, ge=1, description="Max entries per read")
    wait_timeout_ms: int = Field(
        default=30000, ge=1, description="Default correlation wait timeout in milliseconds"
    )
    group_prefix: str = Field(
        default="collective-strategist", description="Prefix for library-created consumer groups"
    )

    @property
    def url(self) -> str:
        """Redis connection URL for these settings."""
        auth = f":{quote(self.password, safe='')}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


def load_event_bus_settings(config_path: str = "config.yaml") -> EventBusSettings:
    """Load event bus settings from the ``event_bus`` section of a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        EventBusSettings with YAML values overriding environment/defaults.
        If the file or the section is missing, environment/defaults only.
    """
    section = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            full_config = yaml.safe_load(f) or {}
            section = full_config.get("event_bus") or {}

    known_fields = set(EventBusSettings.model_fields)
    filtered = {k: v for k, v in section.items() if k in known_fields}
    return EventBusSettings(**filtered)
