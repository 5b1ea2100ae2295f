"""
Alerts Module
=============

Capacity alert decisions and presentation sinks.

    - coordinator.py: Per-entity alert state machine (debounce, dedup)
    - sink.py: AlertSink contract plus logging and in-memory sinks
"""

from venue_capacity.alerts.coordinator import AlertCoordinator, AlertThresholds
from venue_capacity.alerts.sink import AlertSink, InMemoryAlertSink, LoggingAlertSink

__all__ = [
    "AlertCoordinator",
    "AlertThresholds",
    "AlertSink",
    "InMemoryAlertSink",
    "LoggingAlertSink",
]
