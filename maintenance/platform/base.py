"""
Platform capability interface.

The core never branches on the host type.  A host adapter implements
``Platform`` (broadcast, console commands, kicking, player counts) and gets a
periodic ``schedule_tick`` for free.

The narrower ports below are what individual collaborators actually consume:

    NotificationPort  -- used by the engine and the service for side effects
    StatusQuery       -- consumed by the status-display / protocol layer
    ConnectionGate    -- consulted for every incoming session
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Ports
# --------------------------------------------------------------------------- #


@runtime_checkable
class NotificationPort(Protocol):
    async def broadcast(self, message: str) -> None:
        """Send ``message`` to every connected session."""
        ...

    async def execute_console_command(self, command: str) -> None:
        """Run ``command`` as the server console."""
        ...


@runtime_checkable
class StatusQuery(Protocol):
    def is_maintenance(self) -> bool:
        ...

    def get_timer_message(self) -> str:
        ...


@runtime_checkable
class ConnectionGate(Protocol):
    def is_allowed(self, player_id: Union[uuid.UUID, str], has_bypass: bool = False) -> bool:
        ...


# --------------------------------------------------------------------------- #
# Platform
# --------------------------------------------------------------------------- #

TickCallback = Callable[[], Awaitable[Any]]


class Platform(ABC):
    """Base class for host adapters."""

    name: str = "platform"

    @abstractmethod
    async def broadcast(self, message: str) -> None:
        ...

    @abstractmethod
    async def execute_console_command(self, command: str) -> None:
        ...

    @abstractmethod
    async def kick_players(self, message: str, exempt: Callable[[uuid.UUID], bool]) -> int:
        """Kick every online player for whom ``exempt`` is False.

        Returns the number of players kicked.
        """

    @abstractmethod
    def get_online_players(self) -> int:
        ...

    @abstractmethod
    def get_max_players(self) -> int:
        ...

    # -- scheduling --------------------------------------------------------- #

    async def _run_periodic(self, callback: TickCallback, interval_seconds: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                await callback()
            except asyncio.CancelledError:
                logger.info("Tick task cancelled on %s", self.name)
                raise
            except Exception as exc:
                logger.error("Tick failed on %s: %s", self.name, exc, exc_info=True)

    def schedule_tick(
        self,
        callback: TickCallback,
        interval_seconds: float = 1.0,
        name: Optional[str] = None,
    ) -> asyncio.Task[None]:
        """Run ``callback`` every ``interval_seconds`` as a background task.

        Returns the ``asyncio.Task`` so the caller can cancel it later.
        A failing callback is logged and the loop carries on.
        """
        return asyncio.create_task(
            self._run_periodic(callback, interval_seconds),
            name=name or f"{self.name}-tick",
        )
