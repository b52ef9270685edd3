"""Countdown formatting helpers."""

from __future__ import annotations

from typing import Mapping, Optional


def split_seconds(total: int) -> tuple[int, int, int]:
    """Return ``(hours, minutes, seconds)`` for ``total`` seconds."""
    total = max(int(total), 0)
    minutes_total, seconds = divmod(total, 60)
    hours, minutes = divmod(minutes_total, 60)
    return hours, minutes, seconds


def format_hms(total: int) -> str:
    """``3725`` -> ``"01:02:05"``."""
    hours, minutes, seconds = split_seconds(total)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_duration(total: int, units: Optional[Mapping[str, str]] = None) -> str:
    """``3725`` -> ``"1 hour 2 minutes 5 seconds"``; zero parts are skipped.

    ``units`` maps ``hour``/``hours``/``minute``/... to localised words.
    """
    units = units or {}
    parts = []
    for name, value in zip(("hour", "minute", "second"), split_seconds(total)):
        if value == 0:
            continue
        key = name if value == 1 else name + "s"
        parts.append(f"{value} {units.get(key, key)}")
    return " ".join(parts)
