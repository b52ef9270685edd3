"""Tests for document storage backends."""

import json
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from maintenance.config.backends import (
    ConfigLoadError,
    ConfigSaveError,
    RedisDocumentBackend,
    YamlFileBackend,
    create_backend,
)


class TestYamlFileBackend:

    @pytest.mark.asyncio
    async def test_write_then_read_keeps_order(self, tmp_dir):
        backend = YamlFileBackend(os.path.join(tmp_dir, "doc.yml"))
        await backend.write({"b": 1, "a": ["x", "y"], "c": {"d": "ü"}})
        data = await backend.read()
        assert list(data) == ["b", "a", "c"]
        assert data["c"]["d"] == "ü"

    @pytest.mark.asyncio
    async def test_no_tmp_file_left(self, tmp_dir):
        path = os.path.join(tmp_dir, "doc.yml")
        await YamlFileBackend(path).write({"a": 1})
        assert os.listdir(tmp_dir) == ["doc.yml"]

    @pytest.mark.asyncio
    async def test_empty_file_is_empty_document(self, tmp_dir):
        path = os.path.join(tmp_dir, "doc.yml")
        open(path, "w").close()
        assert await YamlFileBackend(path).read() == {}

    @pytest.mark.asyncio
    async def test_exists(self, tmp_dir):
        backend = YamlFileBackend(os.path.join(tmp_dir, "doc.yml"))
        assert await backend.exists() is False
        await backend.write({})
        assert await backend.exists() is True

    @pytest.mark.asyncio
    async def test_write_into_file_path_fails(self, tmp_dir):
        blocker = os.path.join(tmp_dir, "blocker")
        open(blocker, "w").close()
        backend = YamlFileBackend(os.path.join(blocker, "doc.yml"))
        with pytest.raises(ConfigSaveError):
            await backend.write({"a": 1})


class TestRedisDocumentBackend:
    """Redis backend with a mocked client."""

    @pytest.mark.asyncio
    async def test_read_decodes_json(self):
        client = AsyncMock()
        client.get.return_value = json.dumps({"maintenance-enabled": True}).encode()
        backend = RedisDocumentBackend(client, "maintenance:config")
        assert await backend.read() == {"maintenance-enabled": True}
        client.get.assert_awaited_once_with("maintenance:config")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = AsyncMock()
        client.get.return_value = None
        with pytest.raises(ConfigLoadError):
            await RedisDocumentBackend(client, "k").read()

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        client = AsyncMock()
        client.get.return_value = "{not json"
        with pytest.raises(ConfigLoadError):
            await RedisDocumentBackend(client, "k").read()

    @pytest.mark.asyncio
    async def test_connection_error_on_read(self):
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("down")
        with pytest.raises(ConfigLoadError):
            await RedisDocumentBackend(client, "k").read()

    @pytest.mark.asyncio
    async def test_write(self):
        client = AsyncMock()
        await RedisDocumentBackend(client, "k").write({"a": [1, 2]})
        client.set.assert_awaited_once_with("k", json.dumps({"a": [1, 2]}))

    @pytest.mark.asyncio
    async def test_write_error(self):
        client = AsyncMock()
        client.set.side_effect = RedisConnectionError("down")
        with pytest.raises(ConfigSaveError):
            await RedisDocumentBackend(client, "k").write({})

    @pytest.mark.asyncio
    async def test_exists(self):
        client = AsyncMock()
        client.exists.return_value = 1
        assert await RedisDocumentBackend(client, "k").exists() is True


class TestCreateBackend:

    def _settings(self, backend="file"):
        return SimpleNamespace(
            storage_backend=backend,
            redis_key_prefix="net",
            config_path="data/config.yml",
            whitelist_path="data/WhitelistedPlayers.yml",
        )

    def test_file_backends(self):
        config = create_backend(self._settings(), "config")
        whitelist = create_backend(self._settings(), "whitelist")
        assert isinstance(config, YamlFileBackend)
        assert config.location == "data/config.yml"
        assert whitelist.location == "data/WhitelistedPlayers.yml"

    def test_redis_backend_keys(self):
        backend = create_backend(self._settings("redis"), "whitelist", AsyncMock())
        assert isinstance(backend, RedisDocumentBackend)
        assert backend.location == "redis:net:whitelist"

    def test_redis_without_client(self):
        with pytest.raises(ValueError):
            create_backend(self._settings("redis"), "config")

    def test_unknown_document(self):
        with pytest.raises(ValueError):
            create_backend(self._settings(), "other")
