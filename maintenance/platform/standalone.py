"""Standalone platform: no game host attached, side effects go to the log."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from maintenance.platform.base import Platform

logger = logging.getLogger(__name__)


class StandalonePlatform(Platform):
    """Keeps an in-memory session table; broadcasts and commands are logged."""

    name = "standalone"

    def __init__(self, max_players: int = 100) -> None:
        self._max_players = max_players
        self._sessions: dict[uuid.UUID, str] = {}

    # -- sessions ----------------------------------------------------------- #

    def connect(self, player_id: uuid.UUID, name: str) -> None:
        self._sessions[player_id] = name

    def disconnect(self, player_id: uuid.UUID) -> None:
        self._sessions.pop(player_id, None)

    # -- Platform ----------------------------------------------------------- #

    async def broadcast(self, message: str) -> None:
        logger.info("[broadcast] %s", message)

    async def execute_console_command(self, command: str) -> None:
        logger.info("[console] %s", command)

    async def kick_players(self, message: str, exempt: Callable[[uuid.UUID], bool]) -> int:
        kicked = [pid for pid in self._sessions if not exempt(pid)]
        for pid in kicked:
            name = self._sessions.pop(pid)
            logger.info("[kick] %s (%s): %s", name, pid, message)
        return len(kicked)

    def get_online_players(self) -> int:
        return len(self._sessions)

    def get_max_players(self) -> int:
        return self._max_players
