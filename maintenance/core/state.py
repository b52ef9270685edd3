"""
MaintenanceState -- single source of truth for the maintenance flag.

Owns the config document.  Every call to ``set_mode`` persists the flag,
saves the document and then fires the caller-supplied notification exactly
once.  The crash-recovery end-timer (``saved-endtimer``) is persisted the
moment it changes.

There is no module-level flag: the state is an explicit handle passed to the
engine, the service and anything else that needs it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from maintenance.config.store import ConfigStore

logger = logging.getLogger(__name__)

ENABLED_KEY = "maintenance-enabled"
END_TIMER_KEY = "saved-endtimer"

ModeListener = Callable[[bool], Union[None, Awaitable[None]]]


class MaintenanceState:
    """Persisted maintenance flag plus end-timer bookkeeping."""

    def __init__(self, config: ConfigStore, on_change: Optional[ModeListener] = None) -> None:
        self._config = config
        self._on_change = on_change
        self._enabled = config.get_bool(ENABLED_KEY)
        self._lock = asyncio.Lock()

    @property
    def config(self) -> ConfigStore:
        return self._config

    def set_listener(self, on_change: Optional[ModeListener]) -> None:
        """Install the callback fired after every ``set_mode``."""
        self._on_change = on_change

    def refresh(self) -> None:
        """Re-read the flag after the config document was reloaded."""
        self._enabled = self._config.get_bool(ENABLED_KEY)

    # -- mode --------------------------------------------------------------- #

    def is_enabled(self) -> bool:
        return self._enabled

    async def set_mode(self, enabled: bool) -> None:
        """Persist ``enabled``, save, then notify.

        Setting the current value again still saves and notifies.
        """
        enabled = bool(enabled)
        async with self._lock:
            previous = self._enabled
            self._enabled = enabled
            await self._config.update(ENABLED_KEY, enabled)

        logger.info(
            "maintenance.mode_set",
            extra={"from_state": previous, "to_state": enabled},
        )
        await self._notify(enabled)

    async def _notify(self, enabled: bool) -> None:
        if self._on_change is None:
            return
        result = self._on_change(enabled)
        if inspect.isawaitable(result):
            await result

    # -- end-timer ---------------------------------------------------------- #

    def get_saved_end_timer(self) -> int:
        """Epoch millis of the interrupted disable countdown, 0 if none."""
        return self._config.get_int(END_TIMER_KEY, 0)

    async def set_saved_end_timer(self, value: int) -> None:
        async with self._lock:
            await self._config.update(END_TIMER_KEY, int(value))
        logger.debug("Saved end-timer set to %d", value)

    def __repr__(self) -> str:
        return f"MaintenanceState(enabled={self._enabled}, saved_end_timer={self.get_saved_end_timer()})"

