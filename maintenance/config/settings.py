"""
Maintenance -- process configuration via pydantic-settings.

These are the knobs of the *process* (where documents live, which storage
backend to use, logging, metrics).  The maintenance behaviour itself
(commands, messages, ping texts) lives in the config document handled by
``maintenance.config.store``.

Environment variables override defaults using the ``MAINTENANCE_`` prefix
(e.g. ``MAINTENANCE_STORAGE_BACKEND=redis``).

Usage:
    from maintenance.config.settings import get_settings
    settings = get_settings()          # cached singleton
    print(settings.config_path)
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MaintenanceSettings(BaseSettings):
    """Top-level configuration for the maintenance service."""

    # ------------------------------------------------------------------
    # General
    # ------------------------------------------------------------------
    instance_id: str = "maintenance-1"
    environment: str = "production"  # production | staging | development
    version: str = "3.0.7"
    platform_name: str = "standalone"

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    data_dir: str = "./data"
    config_file: str = "config.yml"
    whitelist_file: str = "WhitelistedPlayers.yml"

    # ------------------------------------------------------------------
    # Storage backend
    # ------------------------------------------------------------------
    storage_backend: Literal["file", "redis"] = "file"
    redis_url: str = "redis://localhost:6379"
    redis_key_prefix: str = "maintenance"

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------
    tick_interval_seconds: float = Field(default=1.0, gt=0)

    # ------------------------------------------------------------------
    # Standalone platform
    # ------------------------------------------------------------------
    max_players: int = 100

    # ------------------------------------------------------------------
    # Network collaborators
    # ------------------------------------------------------------------
    update_checks: bool = True
    update_url: str = "https://api.spigotmc.org/legacy/update.php?resource=40699"
    dump_url: str = "https://hastebin.com/documents"
    http_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    metrics_enabled: bool = False
    prometheus_port: int = 8000
    log_level: str = "INFO"
    log_format: str = "text"  # json | text

    # ------------------------------------------------------------------
    # Pydantic-settings config
    # ------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_prefix="MAINTENANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def config_path(self) -> str:
        return os.path.join(self.data_dir, self.config_file)

    @property
    def whitelist_path(self) -> str:
        return os.path.join(self.data_dir, self.whitelist_file)


@lru_cache(maxsize=1)
def get_settings() -> MaintenanceSettings:
    """Return a cached singleton of the process settings.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return MaintenanceSettings()
