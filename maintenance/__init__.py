"""Maintenance -- maintenance-mode service for game server networks.

Persisted on/off flag, whitelist gate, countdown / recurring scheduler and
the side effects (broadcasts, kicks, console commands) of every transition.
"""

__version__ = "3.0.7"
