"""gatesync configuration with defaults matching a stock gateway node."""

from __future__ import annotations

import shlex
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gatesync._version import __version__


class Settings(BaseSettings):
    """
    gatesync configuration.

    All settings can be overridden via environment variables with GATESYNC_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="GATESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    log_format: Literal["text", "json"] = "text"

    # Shared configuration store
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    redis_timeout_ms: int = 5_000

    # Connection setup: one initial attempt plus `connect_retries` retries.
    connect_retries: int = 4
    connect_retry_delay_seconds: float = 1.0

    # Session pool (fail-fast once `pool_size` sessions are outstanding).
    pool_size: int = 100
    pool_idle_timeout_seconds: float = 10.0

    # Local artifacts and serving layer
    conf_dir: str = "/etc/api-gateway/managed_confs/"
    resource_field: str = "resources"
    reload_command: str = "/usr/local/sbin/nginx -s reload"

    # Keyspace notifications. Empty disables the CONFIG SET call (managed Redis
    # deployments often reject it; flags must then be set server-side).
    notify_keyspace_events: str = "KEA"
    notification_timeout_seconds: float = 1.0

    # Health endpoint server
    host: str = "0.0.0.0"
    port: int = 8080

    version: str = __version__

    @field_validator("redis_password", mode="before")
    @classmethod
    def _blank_password_is_none(cls, value: object) -> object:
        """An empty password means no AUTH step."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def redis_timeout_seconds(self) -> float:
        return self.redis_timeout_ms / 1000

    @property
    def reload_argv(self) -> list[str]:
        """Split the reload command into an argv list."""
        return shlex.split(self.reload_command)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
