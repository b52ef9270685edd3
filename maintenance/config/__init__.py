"""Maintenance -- configuration package.

Process settings plus the typed document store and its storage backends.
"""

from maintenance.config.backends import (
    ConfigLoadError,
    ConfigSaveError,
    RedisDocumentBackend,
    StorageBackend,
    StorageError,
    YamlFileBackend,
    create_backend,
)
from maintenance.config.settings import MaintenanceSettings, get_settings
from maintenance.config.store import ConfigStore, translate_color_codes

__all__ = [
    # settings
    "MaintenanceSettings",
    "get_settings",
    # store
    "ConfigStore",
    "translate_color_codes",
    # backends
    "StorageBackend",
    "YamlFileBackend",
    "RedisDocumentBackend",
    "create_backend",
    "StorageError",
    "ConfigLoadError",
    "ConfigSaveError",
]
