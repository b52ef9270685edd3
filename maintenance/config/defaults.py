"""Bundled default documents written on first start."""

from __future__ import annotations

DEFAULT_BROADCAST_THRESHOLDS: list[int] = [
    1200, 900, 600, 300, 120, 60, 30, 20, 10, 5, 4, 3, 2, 1,
]

DEFAULT_MESSAGES: dict[str, str] = {
    "maintenance-activated": "&cMaintenance mode has been enabled!",
    "maintenance-deactivated": "&aMaintenance mode has been disabled!",
    "kick-message": "&cThe server is currently under maintenance!%NEWLINE%&cTry again later!",
    "starttimer-broadcast": "&eMaintenance will be enabled in &6%TIME%",
    "endtimer-broadcast": "&eMaintenance will be disabled in &6%TIME%",
    "motd-timer": "%HOURS%:%MINUTES%:%SECONDS%",
    "motd-timer-not-running": "-",
    "hour": "hour",
    "hours": "hours",
    "minute": "minute",
    "minutes": "minutes",
    "second": "second",
    "seconds": "seconds",
}

DEFAULT_CONFIG: dict = {
    "maintenance-enabled": False,
    "save-endtimer-on-stop": True,
    "saved-endtimer": 0,
    "kick-on-maintenance": False,
    "enable-ping-messages": False,
    "pingmessages": [
        "&cWe are currently under maintenance!%NEWLINE%&7Timer: &e%TIMER%",
    ],
    "timer-broadcast-for-seconds": list(DEFAULT_BROADCAST_THRESHOLDS),
    "commands-on-enable": [],
    "commands-on-disable": [],
    "messages": dict(DEFAULT_MESSAGES),
}

DEFAULT_WHITELIST: dict = {}
