"""Maintenance -- observability package.

Prometheus metrics for mode, countdown and whitelist.
"""

from maintenance.observability.metrics import MetricsCollector

__all__: list[str] = [
    "MetricsCollector",
]
