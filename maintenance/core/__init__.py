"""Maintenance -- core state machine, whitelist and countdown engine."""

from maintenance.core.engine import (
    EngineState,
    ScheduledTransition,
    ScheduledTransitionEngine,
    TransitionKind,
)
from maintenance.core.state import MaintenanceState
from maintenance.core.timefmt import format_duration, format_hms
from maintenance.core.whitelist import (
    AccessControlList,
    InvalidIdentifierError,
    WhitelistEntry,
    parse_player_id,
)

__all__ = [
    # state
    "MaintenanceState",
    # engine
    "ScheduledTransitionEngine",
    "ScheduledTransition",
    "TransitionKind",
    "EngineState",
    # whitelist
    "AccessControlList",
    "WhitelistEntry",
    "InvalidIdentifierError",
    "parse_player_id",
    # formatting
    "format_hms",
    "format_duration",
]
