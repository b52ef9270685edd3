"""Prometheus metrics for the maintenance service.

- maintenance mode gauge
- mode changes by direction
- countdown seconds remaining
- whitelist size
- console command failures
- build info

Each collector owns its own ``CollectorRegistry`` so several instances (one
per test, one per process) never collide on metric names.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Info,
    start_http_server,
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Centralized Prometheus metrics collector."""

    def __init__(self, port: int = 8000, registry: Optional[CollectorRegistry] = None):
        self._port = port
        self._started = False
        self.registry = registry or CollectorRegistry()

        # === Mode ===
        self.maintenance_enabled = Gauge(
            'maintenance_enabled',
            'Maintenance mode (1=enabled, 0=disabled)',
            registry=self.registry,
        )

        self.mode_changes = Counter(
            'maintenance_mode_changes_total',
            'Maintenance mode changes',
            ['to_state'],
            registry=self.registry,
        )

        # === Countdown ===
        self.countdown_seconds = Gauge(
            'maintenance_countdown_seconds',
            'Seconds remaining on the active countdown (0 when idle)',
            registry=self.registry,
        )

        # === Whitelist ===
        self.whitelist_size = Gauge(
            'maintenance_whitelist_size',
            'Number of whitelisted players',
            registry=self.registry,
        )

        # === Side effects ===
        self.command_failures = Counter(
            'maintenance_command_failures_total',
            'Console commands that raised while running',
            ['phase'],
            registry=self.registry,
        )

        self.players_kicked = Counter(
            'maintenance_players_kicked_total',
            'Players kicked when maintenance was enabled',
            registry=self.registry,
        )

        # === Build Info ===
        self.build_info = Info(
            'maintenance_build',
            'Build information',
            registry=self.registry,
        )

    def record_mode(self, enabled: bool):
        self.maintenance_enabled.set(1 if enabled else 0)
        self.mode_changes.labels(to_state="on" if enabled else "off").inc()

    def start_server(self):
        """Start Prometheus HTTP server."""
        if self._started:
            return
        try:
            start_http_server(self._port, registry=self.registry)
            self._started = True
            logger.info(f"Prometheus metrics server started on port {self._port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")

    def set_build_info(self, version: str, instance_id: str, platform: str):
        """Set build information."""
        self.build_info.info({
            'version': version,
            'instance_id': instance_id,
            'platform': platform,
        })
