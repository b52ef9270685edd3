"""Pytest configuration and shared fixtures."""
import os
import sys
import tempfile

import pytest
import pytest_asyncio

# Ensure the project root is on sys.path so 'maintenance' is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from maintenance.config.backends import YamlFileBackend
from maintenance.config.defaults import DEFAULT_CONFIG
from maintenance.config.store import ConfigStore
from maintenance.platform.base import Platform


class RecordingPlatform(Platform):
    """In-memory platform that records every side effect."""

    name = "recording"

    def __init__(self, max_players=20, failing_commands=()):
        self.broadcasts = []
        self.commands = []
        self.kicked = []
        self.online = {}
        self.max_players = max_players
        self.failing_commands = set(failing_commands)

    async def broadcast(self, message):
        self.broadcasts.append(message)

    async def execute_console_command(self, command):
        if command in self.failing_commands:
            raise RuntimeError(f"command failed: {command}")
        self.commands.append(command)

    async def kick_players(self, message, exempt):
        kicked = [pid for pid in self.online if not exempt(pid)]
        for pid in kicked:
            del self.online[pid]
            self.kicked.append((pid, message))
        return len(kicked)

    def get_online_players(self):
        return len(self.online)

    def get_max_players(self):
        return self.max_players


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def platform():
    return RecordingPlatform()


@pytest_asyncio.fixture
async def config_store(tmp_dir):
    """Loaded config document seeded with the bundled defaults."""
    store = ConfigStore(YamlFileBackend(os.path.join(tmp_dir, "config.yml")), name="config")
    await store.ensure_exists(DEFAULT_CONFIG)
    await store.load()
    return store


@pytest_asyncio.fixture
async def whitelist_store(tmp_dir):
    store = ConfigStore(
        YamlFileBackend(os.path.join(tmp_dir, "WhitelistedPlayers.yml")),
        name="whitelist",
        migrations=(),
    )
    await store.ensure_exists({})
    await store.load()
    return store
