"""
ConfigStore -- typed, reloadable document with schema migration.

One ``ConfigStore`` wraps one document (the main config or the whitelist)
and one ``StorageBackend``.  Reads are served from the in-memory tree;
``save()`` flushes the whole tree back to the backend.

Rules:
- ``load()`` / ``reload()`` failures are FATAL (``ConfigLoadError`` propagates)
- ``save()`` failures are recoverable: logged, reported as ``False``, and the
  in-memory tree stays authoritative until the next successful save
- Typed getters never raise for absent paths

Paths are dotted (``"messages.kick-message"``).
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Callable, Iterable, Optional

from maintenance.config.backends import (
    ConfigLoadError,
    ConfigSaveError,
    StorageBackend,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Colour codes
# ---------------------------------------------------------------------------

COLOR_CHAR = "§"
ALT_COLOR_CHAR = "&"
_COLOR_CODES = frozenset("0123456789AaBbCcDdEeFfKkLlMmNnOoRrXx")


def translate_color_codes(text: str, marker: str = ALT_COLOR_CHAR) -> str:
    """Turn ``&c``-style markers into formatting directives (``§c``).

    Only a marker directly followed by a known code character is rewritten;
    a lone ``&`` is left alone.
    """
    chars = list(text)
    for i in range(len(chars) - 1):
        if chars[i] == marker and chars[i + 1] in _COLOR_CODES:
            chars[i] = COLOR_CHAR
            chars[i + 1] = chars[i + 1].lower()
    return "".join(chars)


# ---------------------------------------------------------------------------
# Schema migrations
# ---------------------------------------------------------------------------

Migration = Callable[[dict], bool]


def migrate_ping_message(tree: dict) -> bool:
    """Legacy singular ``pingmessage`` -> list-valued ``pingmessages``."""
    if "pingmessage" not in tree:
        return False
    legacy = tree.pop("pingmessage")
    if isinstance(legacy, list):
        tree["pingmessages"] = [str(v) for v in legacy]
    elif legacy is None:
        tree["pingmessages"] = []
    else:
        tree["pingmessages"] = [str(legacy)]
    return True


CONFIG_MIGRATIONS: tuple[Migration, ...] = (migrate_ping_message,)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_MISSING = object()


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# ConfigStore
# ---------------------------------------------------------------------------


class ConfigStore:
    """Typed accessors over a nested document with reload/save/migrate.

    Usage::

        store = ConfigStore(YamlFileBackend("data/config.yml"), name="config")
        await store.ensure_exists(DEFAULT_CONFIG)
        await store.load()
        await store.migrate()

        store.get_bool("kick-on-maintenance")
        await store.update("maintenance-enabled", True)
    """

    def __init__(
        self,
        backend: StorageBackend,
        name: str = "config",
        migrations: Optional[Iterable[Migration]] = None,
    ) -> None:
        self._backend = backend
        self._name = name
        self._migrations: tuple[Migration, ...] = (
            tuple(migrations) if migrations is not None else CONFIG_MIGRATIONS
        )
        self._data: dict[str, Any] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    # -- properties --------------------------------------------------------- #

    @property
    def name(self) -> str:
        return self._name

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def loaded(self) -> bool:
        return self._loaded

    # -- lifecycle ---------------------------------------------------------- #

    async def ensure_exists(self, defaults: dict[str, Any]) -> bool:
        """Write ``defaults`` if the backend holds no document yet.

        Returns True when a new document was created.
        """
        if await self._backend.exists():
            return False
        try:
            await self._backend.write(copy.deepcopy(defaults))
        except ConfigSaveError as exc:
            raise ConfigLoadError(
                f"Unable to create default {self._name} document: {exc}"
            ) from exc
        logger.info("Created default %s document at %s", self._name, self._backend.location)
        return True

    async def load(self) -> None:
        """Parse the backing document into memory. Raises ``ConfigLoadError``."""
        async with self._lock:
            self._data = await self._backend.read()
            self._loaded = True
        logger.info(
            "Loaded %s document from %s (%d top-level keys)",
            self._name, self._backend.location, len(self._data),
        )

    async def reload(self) -> None:
        """Re-read from storage, discarding unsaved in-memory edits."""
        logger.info("Reloading %s document", self._name)
        await self.load()

    async def save(self) -> bool:
        """Persist the full tree. Returns False (and logs) on failure."""
        async with self._lock:
            return await self._write_locked()

    async def update(self, path: str, value: Any) -> bool:
        """Set ``path`` and persist in one step.

        Runs under the store lock, so the edit can neither land in a tree
        that a concurrent ``load()`` is about to replace nor be saved
        without.  Returns the result of the save.
        """
        async with self._lock:
            self.set(path, value)
            return await self._write_locked()

    async def migrate(self) -> bool:
        """Rewrite deprecated keys to the current schema and save.

        Returns True when anything changed.  Running it on an already
        migrated document changes nothing and does not save.
        """
        async with self._lock:
            changed = False
            for migration in self._migrations:
                if migration(self._data):
                    logger.info("Applied %s migration %s", self._name, migration.__name__)
                    changed = True
            if changed:
                await self._write_locked()
        return changed

    async def _write_locked(self) -> bool:
        snapshot = copy.deepcopy(self._data)
        try:
            await self._backend.write(snapshot)
        except ConfigSaveError as exc:
            logger.error("Failed to save %s document: %s", self._name, exc)
            return False
        logger.debug("Saved %s document to %s", self._name, self._backend.location)
        return True

    # -- raw path access ---------------------------------------------------- #

    def get(self, path: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def contains(self, path: str) -> bool:
        return self.get(path, _MISSING) is not _MISSING

    def set(self, path: str, value: Any) -> None:
        """Set ``path`` to ``value``; ``None`` removes the key."""
        parts = path.split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value

    def keys(self) -> list[str]:
        """Top-level keys in document order."""
        return list(self._data.keys())

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    # -- typed getters ------------------------------------------------------ #

    def get_raw_string(self, path: str, default: Optional[str] = None) -> Optional[str]:
        value = self.get(path)
        if value is None or isinstance(value, (dict, list)):
            return default
        return str(value)

    def get_string(self, path: str, default: Optional[str] = None) -> Optional[str]:
        """String at ``path`` with colour codes translated."""
        value = self.get_raw_string(path, default)
        if value is None:
            return None
        return translate_color_codes(value)

    def get_bool(self, path: str, default: bool = False) -> bool:
        value = self.get(path)
        if isinstance(value, bool):
            return value
        return default

    def get_int(self, path: str, default: int = 0) -> int:
        value = _to_int(self.get(path))
        return default if value is None else value

    def get_int_list(self, path: str) -> list[int]:
        value = self.get(path)
        if not isinstance(value, list):
            return []
        result = []
        for item in value:
            converted = _to_int(item)
            if converted is not None:
                result.append(converted)
        return result

    def get_string_list(self, path: str) -> list[str]:
        value = self.get(path)
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item is not None and not isinstance(item, (dict, list))]

    def __repr__(self) -> str:
        return f"ConfigStore(name={self._name!r}, backend={self._backend!r}, loaded={self._loaded})"
