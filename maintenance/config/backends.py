"""
Storage backends for config documents.

A backend moves a whole document (a nested ``dict``) between memory and
durable storage.  Two backends are provided:

- ``YamlFileBackend``       -- flat YAML document on the local filesystem
- ``RedisDocumentBackend``  -- JSON blob under a single Redis key, shared by
                               every instance pointing at the same Redis

Both raise ``ConfigLoadError`` when a document is missing, unreadable or
malformed, and ``ConfigSaveError`` when it cannot be written.  Which one is
used is decided by ``MaintenanceSettings.storage_backend`` (see
``create_backend``), never by the host platform.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

import yaml
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StorageError(Exception):
    """Base class for document storage failures."""


class ConfigLoadError(StorageError):
    """Raised when a document cannot be loaded. Fatal at startup."""


class ConfigSaveError(StorageError):
    """Raised by a backend when a document cannot be written."""


# ---------------------------------------------------------------------------
# Backend interface
# ---------------------------------------------------------------------------


class StorageBackend(ABC):
    """Reads and writes one whole document."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable location, used in logs and dumps."""

    @abstractmethod
    async def exists(self) -> bool:
        ...

    @abstractmethod
    async def read(self) -> dict[str, Any]:
        """Return the stored document. Raises ``ConfigLoadError``."""

    @abstractmethod
    async def write(self, data: dict[str, Any]) -> None:
        """Replace the stored document. Raises ``ConfigSaveError``."""


# ---------------------------------------------------------------------------
# YAML file backend
# ---------------------------------------------------------------------------


class YamlFileBackend(StorageBackend):
    """YAML document on disk.

    Writes are atomic: the document is dumped to ``<path>.tmp``, fsynced and
    then moved over the original with ``os.replace``.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def location(self) -> str:
        return self._path

    async def exists(self) -> bool:
        return await asyncio.to_thread(os.path.isfile, self._path)

    async def read(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def write(self, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, data)

    def _read(self) -> dict[str, Any]:
        if not os.path.isfile(self._path):
            raise ConfigLoadError(f"Document {self._path} does not exist")
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigLoadError(f"Unable to read {self._path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigLoadError(f"Malformed YAML in {self._path}: {exc}") from exc

        # An empty file is an empty document (fresh whitelist)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Document {self._path} must be a mapping, got {type(data).__name__}"
            )
        return data

    def _write(self, data: dict[str, Any]) -> None:
        directory = os.path.dirname(self._path)
        tmp = self._path + ".tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    data, f,
                    sort_keys=False,
                    allow_unicode=True,
                    default_flow_style=False,
                )
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigSaveError(f"Unable to save {self._path}: {exc}") from exc

    def __repr__(self) -> str:
        return f"YamlFileBackend(path={self._path!r})"


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisDocumentBackend(StorageBackend):
    """Whole document stored as JSON under one Redis key.

    Lets several server instances (e.g. proxies behind one network) share
    the same maintenance flag and whitelist.
    """

    def __init__(self, redis_client: Any, key: str) -> None:
        self._redis = redis_client
        self._key = key

    @property
    def location(self) -> str:
        return f"redis:{self._key}"

    async def exists(self) -> bool:
        try:
            return bool(await self._redis.exists(self._key))
        except RedisError as exc:
            raise ConfigLoadError(f"Unable to reach Redis for {self._key}: {exc}") from exc

    async def read(self) -> dict[str, Any]:
        try:
            raw = await self._redis.get(self._key)
        except RedisError as exc:
            raise ConfigLoadError(f"Unable to read {self._key} from Redis: {exc}") from exc

        if raw is None:
            raise ConfigLoadError(f"Redis key {self._key} does not exist")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigLoadError(f"Malformed JSON under {self._key}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Document {self._key} must be a mapping, got {type(data).__name__}"
            )
        return data

    async def write(self, data: dict[str, Any]) -> None:
        try:
            await self._redis.set(self._key, json.dumps(data))
        except (RedisError, TypeError) as exc:
            raise ConfigSaveError(f"Unable to write {self._key} to Redis: {exc}") from exc

    def __repr__(self) -> str:
        return f"RedisDocumentBackend(key={self._key!r})"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_backend(settings: Any, document: str, redis_client: Optional[Any] = None) -> StorageBackend:
    """Build the backend for ``document`` ("config" or "whitelist").

    Args:
        settings: ``MaintenanceSettings`` instance.
        document: Logical document name.
        redis_client: Required when ``settings.storage_backend == "redis"``.
    """
    if document not in ("config", "whitelist"):
        raise ValueError(f"Unknown document: {document}")

    if settings.storage_backend == "redis":
        if redis_client is None:
            raise ValueError("Redis storage backend selected but no Redis client given")
        return RedisDocumentBackend(redis_client, f"{settings.redis_key_prefix}:{document}")

    path = settings.config_path if document == "config" else settings.whitelist_path
    return YamlFileBackend(path)
