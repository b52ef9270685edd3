"""Maintenance -- host platform adapters and collaborator ports."""

from maintenance.platform.base import (
    ConnectionGate,
    NotificationPort,
    Platform,
    StatusQuery,
)
from maintenance.platform.standalone import StandalonePlatform

__all__ = [
    "Platform",
    "NotificationPort",
    "StatusQuery",
    "ConnectionGate",
    "StandalonePlatform",
]
