"""
MaintenanceService -- wires state, engine, whitelist and platform together.

This is the object the command layer and the protocol layer talk to.  It
implements ``StatusQuery`` and ``ConnectionGate`` and owns the side effects
of every mode change:

1. broadcast the activated / deactivated message
2. kick non-whitelisted players when enabling (``kick-on-maintenance``)
3. run ``commands-on-enable`` / ``commands-on-disable``; a failing command is
   logged and the remaining commands still run

Manual mode changes go through the engine so they are serialised against the
countdown tick and cancel any running countdown.
"""

from __future__ import annotations

import logging
import random
import uuid
from typing import Any, Optional, Union

from maintenance.config.defaults import DEFAULT_BROADCAST_THRESHOLDS, DEFAULT_MESSAGES
from maintenance.config.store import ConfigStore, translate_color_codes
from maintenance.core.engine import ScheduledTransitionEngine
from maintenance.core.state import MaintenanceState
from maintenance.core.timefmt import format_duration, format_hms, split_seconds
from maintenance.core.whitelist import AccessControlList
from maintenance.network.dump import DiagnosticDump
from maintenance.observability.metrics import MetricsCollector
from maintenance.platform.base import Platform

logger = logging.getLogger(__name__)

PlayerId = Union[uuid.UUID, str]


class MaintenanceService:
    """Facade over the maintenance core.

    Usage::

        service = MaintenanceService.create(config_store, acl, platform)
        await service.continue_last_end_timer()
        tick_task = service.start_ticking()

        await service.start_countdown(600, enable=False)
        service.is_allowed(player_uuid)
    """

    def __init__(
        self,
        state: MaintenanceState,
        engine: ScheduledTransitionEngine,
        whitelist: AccessControlList,
        platform: Platform,
        metrics: Optional[MetricsCollector] = None,
        tick_interval_seconds: float = 1.0,
    ):
        self._state = state
        self._engine = engine
        self._acl = whitelist
        self._platform = platform
        self._metrics = metrics
        self._tick_interval = tick_interval_seconds

        self._state.set_listener(self._on_mode_changed)
        self._engine.configure(formatter=self._format_countdown_broadcast)

        if self._metrics:
            self._metrics.maintenance_enabled.set(1 if state.is_enabled() else 0)
            self._metrics.whitelist_size.set(len(whitelist))

    @classmethod
    def create(
        cls,
        config: ConfigStore,
        whitelist: AccessControlList,
        platform: Platform,
        metrics: Optional[MetricsCollector] = None,
        tick_interval_seconds: float = 1.0,
    ) -> "MaintenanceService":
        """Build state and engine from an already loaded config document."""
        state = MaintenanceState(config)
        engine = ScheduledTransitionEngine(
            state,
            platform,
            broadcast_thresholds=broadcast_thresholds_from(config),
            persist_end_timer=config.get_bool("save-endtimer-on-stop"),
        )
        return cls(state, engine, whitelist, platform, metrics, tick_interval_seconds)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> MaintenanceState:
        return self._state

    @property
    def engine(self) -> ScheduledTransitionEngine:
        return self._engine

    @property
    def whitelist(self) -> AccessControlList:
        return self._acl

    @property
    def config(self) -> ConfigStore:
        return self._state.config

    @property
    def platform(self) -> Platform:
        return self._platform

    # ------------------------------------------------------------------
    # Mode and countdowns
    # ------------------------------------------------------------------

    async def set_maintenance(self, enabled: bool) -> None:
        """Flip immediately, cancelling any running countdown."""
        await self._engine.set_mode(enabled)

    async def start_countdown(self, seconds: int, enable: bool) -> bool:
        return await self._engine.start(seconds, enable)

    async def schedule_maintenance(self, delay_seconds: int, duration_seconds: int) -> bool:
        return await self._engine.schedule(delay_seconds, duration_seconds)

    async def cancel_countdown(self) -> bool:
        return await self._engine.cancel()

    async def continue_last_end_timer(self) -> bool:
        """Resume a disable countdown interrupted by the last shutdown."""
        if not self.config.get_bool("save-endtimer-on-stop"):
            return False
        return await self._engine.resume_from_persisted()

    def start_ticking(self):
        """Start the single periodic task that drives the engine."""
        return self._platform.schedule_tick(
            self._tick, self._tick_interval, name="maintenance-tick"
        )

    async def _tick(self) -> None:
        await self._engine.tick()
        if self._metrics:
            self._metrics.countdown_seconds.set(self._engine.seconds_remaining)

    # ------------------------------------------------------------------
    # StatusQuery
    # ------------------------------------------------------------------

    def is_maintenance(self) -> bool:
        return self._state.is_enabled()

    def get_message(self, key: str) -> str:
        return self.config.get_string(f"messages.{key}", DEFAULT_MESSAGES.get(key, key)) or ""

    def get_timer_message(self) -> str:
        if not self._engine.is_running:
            return self.get_message("motd-timer-not-running")
        hours, minutes, seconds = split_seconds(self._engine.seconds_remaining)
        return (
            self.get_message("motd-timer")
            .replace("%HOURS%", f"{hours:02d}")
            .replace("%MINUTES%", f"{minutes:02d}")
            .replace("%SECONDS%", f"{seconds:02d}")
        )

    def format_duration(self, seconds: int) -> str:
        units = {unit: self.get_message(unit) for unit in ("hour", "hours", "minute", "minutes", "second", "seconds")}
        return format_duration(seconds, units)

    def replace_ping_variables(self, text: str) -> str:
        if "%TIMER%" in text:
            text = text.replace("%TIMER%", self.get_timer_message())
        if "%ONLINE%" in text:
            text = text.replace("%ONLINE%", str(self._platform.get_online_players()))
        if "%MAX%" in text:
            text = text.replace("%MAX%", str(self._platform.get_max_players()))
        return text

    def get_ping_message(self) -> Optional[str]:
        """Random configured ping message, or None when not applicable."""
        if not self.is_maintenance() or not self.config.get_bool("enable-ping-messages"):
            return None
        messages = self.config.get_string_list("pingmessages")
        if not messages:
            return None
        text = translate_color_codes(random.choice(messages)).replace("%NEWLINE%", "\n")
        return self.replace_ping_variables(text)

    # ------------------------------------------------------------------
    # ConnectionGate and whitelist
    # ------------------------------------------------------------------

    def is_allowed(self, player_id: PlayerId, has_bypass: bool = False) -> bool:
        """Whether a session for ``player_id`` may join right now.

        Raises ``InvalidIdentifierError`` for malformed ids.
        """
        if has_bypass or not self.is_maintenance():
            return True
        return self._acl.contains(player_id)

    async def add_to_whitelist(self, player_id: PlayerId, display_name: str) -> bool:
        added = await self._acl.add(player_id, display_name)
        if added and self._metrics:
            self._metrics.whitelist_size.set(len(self._acl))
        return added

    async def remove_from_whitelist(self, player_id: PlayerId) -> bool:
        removed = await self._acl.remove(player_id)
        if removed and self._metrics:
            self._metrics.whitelist_size.set(len(self._acl))
        return removed

    # ------------------------------------------------------------------
    # Reload / dump
    # ------------------------------------------------------------------

    async def reload(self) -> None:
        """Re-read both documents. Raises ``ConfigLoadError`` on failure.

        Holds the engine lock, so no tick or manual toggle runs in between.
        """
        async with self._engine.lock:
            await self.config.reload()
            await self.config.migrate()
            self._state.refresh()
            await self._acl.load()
            self._engine.configure(
                broadcast_thresholds=broadcast_thresholds_from(self.config),
                persist_end_timer=self.config.get_bool("save-endtimer-on-stop"),
            )
        if self._metrics:
            self._metrics.maintenance_enabled.set(1 if self.is_maintenance() else 0)
            self._metrics.whitelist_size.set(len(self._acl))
        logger.info("Configuration reloaded")

    def build_dump(self, version: str, instance_id: str = "") -> DiagnosticDump:
        return DiagnosticDump(
            version=version,
            platform=self._platform.name,
            instance_id=instance_id,
            maintenance_enabled=self.is_maintenance(),
            countdown_running=self._engine.is_running,
            countdown_seconds_remaining=self._engine.seconds_remaining,
            saved_end_timer=self._state.get_saved_end_timer(),
            whitelist_size=len(self._acl),
            storage={
                "config": self.config.backend.location,
            },
            config=self.config.snapshot(),
        )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _format_countdown_broadcast(self, target_state: bool, seconds_remaining: int) -> str:
        key = "starttimer-broadcast" if target_state else "endtimer-broadcast"
        return self.get_message(key).replace("%TIME%", format_hms(seconds_remaining))

    async def _on_mode_changed(self, enabled: bool) -> None:
        if self._metrics:
            self._metrics.record_mode(enabled)

        if enabled:
            await self._broadcast(self.get_message("maintenance-activated"))
            if self.config.get_bool("kick-on-maintenance"):
                await self._kick_players()
        else:
            await self._broadcast(self.get_message("maintenance-deactivated"))

        await self._run_commands(enabled)

    async def _broadcast(self, message: str) -> None:
        try:
            await self._platform.broadcast(message)
        except Exception as exc:
            logger.error("Broadcast failed: %s", exc)

    async def _kick_players(self) -> None:
        message = self.get_message("kick-message").replace("%NEWLINE%", "\n")
        try:
            kicked = await self._platform.kick_players(message, exempt=self._acl.contains)
        except Exception as exc:
            logger.error("Kicking players failed: %s", exc)
            return
        if kicked:
            logger.info("Kicked %d players for maintenance", kicked)
            if self._metrics:
                self._metrics.players_kicked.inc(kicked)

    async def _run_commands(self, enabled: bool) -> None:
        phase = "enable" if enabled else "disable"
        for command in self.config.get_string_list(f"commands-on-{phase}"):
            try:
                await self._platform.execute_console_command(command)
            except Exception as exc:
                logger.error(
                    "Error while executing extra maintenance %s command %r: %s",
                    phase, command, exc, exc_info=True,
                )
                if self._metrics:
                    self._metrics.command_failures.labels(phase=phase).inc()


def broadcast_thresholds_from(config: ConfigStore) -> list[int]:
    if not config.contains("timer-broadcast-for-seconds"):
        return list(DEFAULT_BROADCAST_THRESHOLDS)
    return config.get_int_list("timer-broadcast-for-seconds")


def describe(service: MaintenanceService) -> dict[str, Any]:
    """Plain-dict status view for logs."""
    return {
        "maintenance": service.is_maintenance(),
        "countdown": service.engine.engine_state.value,
        "seconds_remaining": service.engine.seconds_remaining,
        "whitelisted": len(service.whitelist),
    }
