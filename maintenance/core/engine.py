"""
Maintenance -- scheduled-transition engine.

Drives automatic enable/disable of maintenance mode over time.  At most one
transition is held at a time:

    SINGLE_SHOT -> flip to ``target_state`` once the countdown reaches zero.
    RECURRING   -> enable after ``delay``, disable after ``duration``,
                   repeat until cancelled.

Engine states
-------------
    IDLE          --[start / schedule / resume]--> COUNTING_DOWN
    COUNTING_DOWN --[countdown hits zero]--------> COMPLETED  (single shot)
    COUNTING_DOWN --[countdown hits zero]--------> COUNTING_DOWN (recurring)
    COUNTING_DOWN --[cancel / manual set_mode]---> CANCELLED

COMPLETED and CANCELLED hold no transition; the engine is idle in both.

Crash recovery
--------------
A *disable* countdown persists its wall-clock deadline as ``saved-endtimer``
so that ``resume_from_persisted`` can continue it after a restart.  Enable
countdowns and recurring schedules are never persisted.

Concurrency
-----------
``tick``, ``start``, ``schedule``, ``cancel``, ``resume_from_persisted`` and
``set_mode`` are serialised by one ``asyncio.Lock``; a cancel therefore lands
between ticks, never inside one.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from maintenance.config.defaults import DEFAULT_BROADCAST_THRESHOLDS
from maintenance.core.state import MaintenanceState
from maintenance.core.timefmt import format_hms
from maintenance.platform.base import NotificationPort

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Enums
# --------------------------------------------------------------------------- #


class TransitionKind(str, enum.Enum):
    SINGLE_SHOT = "SINGLE_SHOT"
    RECURRING = "RECURRING"


class EngineState(str, enum.Enum):
    IDLE = "IDLE"
    COUNTING_DOWN = "COUNTING_DOWN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# --------------------------------------------------------------------------- #
# Transition record
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class ScheduledTransition:
    """The single in-flight transition. Mutated once per tick."""
    kind: TransitionKind
    target_state: bool
    seconds_remaining: int
    broadcast_thresholds: tuple[int, ...] = ()
    # recurring only
    delay_seconds: int = 0
    maintenance_duration_seconds: int = 0


BroadcastFormatter = Callable[[bool, int], str]


def default_broadcast_formatter(target_state: bool, seconds_remaining: int) -> str:
    verb = "enabled" if target_state else "disabled"
    return f"Maintenance will be {verb} in {format_hms(seconds_remaining)}"


def normalise_thresholds(thresholds: Iterable[int]) -> tuple[int, ...]:
    """Unique positive thresholds, largest first."""
    return tuple(sorted({int(t) for t in thresholds if int(t) > 0}, reverse=True))


# --------------------------------------------------------------------------- #
# Engine
# --------------------------------------------------------------------------- #


class ScheduledTransitionEngine:
    """Countdown / recurring state machine over ``MaintenanceState``.

    Usage::

        engine = ScheduledTransitionEngine(state, platform)
        await engine.start(300, target_state=False)   # disable in 5 min
        platform.schedule_tick(engine.tick, 1.0)
    """

    def __init__(
        self,
        state: MaintenanceState,
        notifier: NotificationPort,
        broadcast_thresholds: Iterable[int] = DEFAULT_BROADCAST_THRESHOLDS,
        persist_end_timer: bool = True,
        formatter: Optional[BroadcastFormatter] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._state = state
        self._notifier = notifier
        self._thresholds = normalise_thresholds(broadcast_thresholds)
        self._persist_end_timer = persist_end_timer
        self._formatter = formatter or default_broadcast_formatter
        self._clock = clock

        self._transition: Optional[ScheduledTransition] = None
        self._engine_state = EngineState.IDLE
        self._lock = asyncio.Lock()

        # Counters for observability
        self.total_ticks: int = 0
        self.total_completed: int = 0
        self.total_cancelled: int = 0

    # -- properties --------------------------------------------------------- #

    @property
    def engine_state(self) -> EngineState:
        return self._engine_state

    @property
    def is_running(self) -> bool:
        return self._transition is not None

    @property
    def is_idle(self) -> bool:
        return self._transition is None

    @property
    def seconds_remaining(self) -> int:
        return self._transition.seconds_remaining if self._transition else 0

    @property
    def transition(self) -> Optional[ScheduledTransition]:
        """Copy of the active transition, if any."""
        if self._transition is None:
            return None
        return dataclasses.replace(self._transition)

    @property
    def broadcast_thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def persist_end_timer(self) -> bool:
        return self._persist_end_timer

    @property
    def lock(self) -> asyncio.Lock:
        """Held for the whole of every operation; hold it to run between ticks."""
        return self._lock

    def configure(
        self,
        broadcast_thresholds: Optional[Iterable[int]] = None,
        persist_end_timer: Optional[bool] = None,
        formatter: Optional[BroadcastFormatter] = None,
    ) -> None:
        """Update defaults after a config reload. Active transitions keep theirs."""
        if broadcast_thresholds is not None:
            self._thresholds = normalise_thresholds(broadcast_thresholds)
        if persist_end_timer is not None:
            self._persist_end_timer = persist_end_timer
        if formatter is not None:
            self._formatter = formatter

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -- operations --------------------------------------------------------- #

    async def start(
        self,
        duration_seconds: int,
        target_state: bool,
        broadcast_thresholds: Optional[Iterable[int]] = None,
    ) -> bool:
        """Start a single-shot countdown, replacing any active transition.

        Returns False (and schedules nothing) when ``duration_seconds <= 0``
        or ``target_state`` already is the current mode.
        """
        async with self._lock:
            if duration_seconds <= 0 or target_state == self._state.is_enabled():
                logger.debug(
                    "Ignoring countdown start (duration=%s, target=%s, enabled=%s)",
                    duration_seconds, target_state, self._state.is_enabled(),
                )
                return False

            self._replace(ScheduledTransition(
                kind=TransitionKind.SINGLE_SHOT,
                target_state=bool(target_state),
                seconds_remaining=int(duration_seconds),
                broadcast_thresholds=self._thresholds_for(broadcast_thresholds),
            ))

            if not target_state and self._persist_end_timer:
                await self._state.set_saved_end_timer(
                    self._now_ms() + int(duration_seconds) * 1000
                )
            else:
                await self._clear_end_timer()

            logger.info(
                "Countdown started: maintenance -> %s in %s",
                "ON" if target_state else "OFF", format_hms(duration_seconds),
            )
            await self._maybe_broadcast(self._transition)
            return True

    async def schedule(
        self,
        delay_seconds: int,
        maintenance_duration_seconds: int,
        broadcast_thresholds: Optional[Iterable[int]] = None,
    ) -> bool:
        """Start a recurring enable/disable cycle, replacing any active transition."""
        async with self._lock:
            if delay_seconds <= 0 or maintenance_duration_seconds <= 0:
                logger.debug(
                    "Ignoring schedule (delay=%s, duration=%s)",
                    delay_seconds, maintenance_duration_seconds,
                )
                return False

            self._replace(ScheduledTransition(
                kind=TransitionKind.RECURRING,
                target_state=True,
                seconds_remaining=int(delay_seconds),
                broadcast_thresholds=self._thresholds_for(broadcast_thresholds),
                delay_seconds=int(delay_seconds),
                maintenance_duration_seconds=int(maintenance_duration_seconds),
            ))
            await self._clear_end_timer()

            logger.info(
                "Recurring maintenance scheduled: every %s for %s",
                format_hms(delay_seconds), format_hms(maintenance_duration_seconds),
            )
            await self._maybe_broadcast(self._transition)
            return True

    async def tick(self) -> None:
        """Advance the active transition by one second."""
        async with self._lock:
            transition = self._transition
            if transition is None:
                return

            self.total_ticks += 1
            transition.seconds_remaining = max(transition.seconds_remaining - 1, 0)
            if transition.seconds_remaining > 0:
                await self._maybe_broadcast(transition)
                return

            try:
                await self._apply(transition.target_state)
            finally:
                self._advance(transition)
                if transition.kind is TransitionKind.SINGLE_SHOT:
                    await self._clear_end_timer()

            if transition.kind is TransitionKind.RECURRING:
                await self._maybe_broadcast(transition)

    async def cancel(self) -> bool:
        """Drop the active transition. Returns False if there was none."""
        async with self._lock:
            if self._transition is None:
                return False
            self._drop()
            await self._clear_end_timer()
            logger.info("Countdown cancelled")
            return True

    async def resume_from_persisted(
        self,
        saved_end_timer: Optional[int] = None,
        now_ms: Optional[int] = None,
    ) -> bool:
        """Continue a disable countdown interrupted by a restart.

        Returns True when a countdown was resumed or applied immediately.
        """
        if saved_end_timer is None:
            saved_end_timer = self._state.get_saved_end_timer()
        if now_ms is None:
            now_ms = self._now_ms()
        if not saved_end_timer:
            return False

        async with self._lock:
            logger.info("Found interrupted end-timer from last uptime")
            if not self._state.is_enabled():
                logger.info("Maintenance has already been disabled, the timer has been dropped")
                await self._clear_end_timer()
                return False

            remaining = (saved_end_timer - now_ms) // 1000
            if saved_end_timer <= now_ms or remaining <= 0:
                logger.info("The end-timer has already expired, disabling maintenance")
                await self._state.set_mode(False)
                await self._clear_end_timer()
                return True

            # The persisted deadline is kept as-is
            self._replace(ScheduledTransition(
                kind=TransitionKind.SINGLE_SHOT,
                target_state=False,
                seconds_remaining=int(remaining),
                broadcast_thresholds=self._thresholds,
            ))
            logger.info("End-timer continued: maintenance will be disabled in %s", format_hms(remaining))
            return True

    async def set_mode(self, enabled: bool) -> None:
        """Manual flip: cancels any active transition, then sets the mode."""
        async with self._lock:
            if self._transition is not None:
                self._drop()
                await self._clear_end_timer()
                logger.info("Countdown cancelled by manual mode change")
            await self._state.set_mode(enabled)

    # -- internals ---------------------------------------------------------- #

    def _thresholds_for(self, thresholds: Optional[Iterable[int]]) -> tuple[int, ...]:
        return self._thresholds if thresholds is None else normalise_thresholds(thresholds)

    def _replace(self, transition: ScheduledTransition) -> None:
        if self._transition is not None:
            logger.info("Replacing active %s transition", self._transition.kind.value)
        self._transition = transition
        self._engine_state = EngineState.COUNTING_DOWN

    def _drop(self) -> None:
        self._transition = None
        self._engine_state = EngineState.CANCELLED
        self.total_cancelled += 1

    def _advance(self, transition: ScheduledTransition) -> None:
        if transition.kind is TransitionKind.SINGLE_SHOT:
            self._transition = None
            self._engine_state = EngineState.COMPLETED
            self.total_completed += 1
        elif transition.target_state:
            transition.target_state = False
            transition.seconds_remaining = transition.maintenance_duration_seconds
        else:
            transition.target_state = True
            transition.seconds_remaining = transition.delay_seconds

    async def _apply(self, target_state: bool) -> None:
        if self._state.is_enabled() == target_state:
            logger.info("Maintenance already %s, nothing to apply", "ON" if target_state else "OFF")
            return
        await self._state.set_mode(target_state)

    async def _clear_end_timer(self) -> None:
        if self._state.get_saved_end_timer() != 0:
            await self._state.set_saved_end_timer(0)

    async def _maybe_broadcast(self, transition: Optional[ScheduledTransition]) -> None:
        if transition is None or transition.seconds_remaining not in transition.broadcast_thresholds:
            return
        message = self._formatter(transition.target_state, transition.seconds_remaining)
        try:
            await self._notifier.broadcast(message)
        except Exception as exc:
            logger.error("Countdown broadcast failed: %s", exc)

    def __repr__(self) -> str:
        return (
            f"ScheduledTransitionEngine(state={self._engine_state.value}, "
            f"remaining={self.seconds_remaining})"
        )
