"""
AccessControlList -- persisted whitelist of player identities.

The whitelist document is an ordered mapping ``uuid-string -> display name``.
Mutations are atomic read-modify-write operations: the in-memory mapping and
the document are updated under one lock and the document is saved before the
lock is released.

Invalid identifier strings raise ``InvalidIdentifierError`` before anything
is touched.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from maintenance.config.backends import ConfigLoadError
from maintenance.config.store import ConfigStore

logger = logging.getLogger(__name__)

PlayerId = Union[uuid.UUID, str]


class InvalidIdentifierError(ValueError):
    """Raised for a string that is not a valid player UUID."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid player identifier: {value!r}")


def parse_player_id(value: PlayerId) -> uuid.UUID:
    """Return ``value`` as a UUID, accepting dashed or undashed hex."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError, TypeError):
        raise InvalidIdentifierError(str(value)) from None


@dataclass(frozen=True, slots=True)
class WhitelistEntry:
    player_id: uuid.UUID
    display_name: str


class AccessControlList:
    """Insertion-ordered whitelist backed by its own document.

    Usage::

        acl = AccessControlList(whitelist_store)
        await acl.load()
        await acl.add("a8179ff3-c201-4a75-bdaa-9d14aca6f83f", "KennyTV")
        acl.contains(player_uuid)
    """

    def __init__(self, store: ConfigStore) -> None:
        self._store = store
        self._entries: dict[uuid.UUID, str] = {}
        self._lock = asyncio.Lock()

    # -- loading ------------------------------------------------------------ #

    async def load(self) -> None:
        """(Re)build the mapping from the document. Raises ``ConfigLoadError``."""
        async with self._lock:
            await self._store.reload()
            entries: dict[uuid.UUID, str] = {}
            for key in self._store.keys():
                try:
                    player_id = parse_player_id(key)
                except InvalidIdentifierError as exc:
                    raise ConfigLoadError(
                        f"Whitelist document contains an invalid key: {key!r}"
                    ) from exc
                entries[player_id] = self._store.get_raw_string(key, "") or ""
            self._entries = entries
        logger.info("Loaded %d whitelisted players", len(self._entries))

    # -- mutations ---------------------------------------------------------- #

    async def add(self, player_id: PlayerId, display_name: str) -> bool:
        """Add a player. Returns False if the id is already whitelisted.

        Raises ``TypeError`` when ``display_name`` is not a string.
        """
        pid = parse_player_id(player_id)
        if not isinstance(display_name, str):
            raise TypeError(f"display_name must be a str, got {type(display_name).__name__}")
        async with self._lock:
            if pid in self._entries:
                return False
            self._entries[pid] = display_name
            await self._store.update(str(pid), display_name)
        logger.info("Whitelisted %s (%s)", display_name, pid)
        return True

    async def remove(self, player_id: PlayerId) -> bool:
        """Remove a player. Returns whether an entry was removed."""
        pid = parse_player_id(player_id)
        async with self._lock:
            if pid not in self._entries:
                return False
            name = self._entries.pop(pid)
            await self._store.update(str(pid), None)
        logger.info("Removed %s (%s) from the whitelist", name, pid)
        return True

    # -- queries ------------------------------------------------------------ #

    def contains(self, player_id: PlayerId) -> bool:
        return parse_player_id(player_id) in self._entries

    def get_name(self, player_id: PlayerId) -> Optional[str]:
        return self._entries.get(parse_player_id(player_id))

    def find_by_name(self, display_name: str) -> Optional[WhitelistEntry]:
        """Case-insensitive lookup by display name."""
        wanted = display_name.lower()
        for pid, name in self._entries.items():
            if name.lower() == wanted:
                return WhitelistEntry(pid, name)
        return None

    def list_all(self) -> list[WhitelistEntry]:
        return [WhitelistEntry(pid, name) for pid, name in self._entries.items()]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, player_id: object) -> bool:
        try:
            return self.contains(player_id)  # type: ignore[arg-type]
        except InvalidIdentifierError:
            return False
