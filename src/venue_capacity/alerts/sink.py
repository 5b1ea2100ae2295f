"""
Alert Sinks
===========

Presentation-side collaborators that receive alert payloads.

The engine only calls ``present`` and ``dismiss``; it owns no rendering.
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, List, Protocol

from venue_capacity.models.alert import Alert, AlertSeverity


logger = logging.getLogger(__name__)


class AlertSink(Protocol):
    """Contract of an alert presentation sink."""

    def present(self, alert: Alert) -> None:
        ...

    def dismiss(self, alert_id: str) -> None:
        ...


class LoggingAlertSink:
    """Sink that writes alerts to the log."""

    def present(self, alert: Alert) -> None:
        level = logging.WARNING if alert.severity is AlertSeverity.WARNING else logging.ERROR
        logger.log(level, f"ALERT [{alert.severity.value}] {alert.title}: {alert.message}")

    def dismiss(self, alert_id: str) -> None:
        logger.info(f"Alert dismissed: {alert_id}")


class InMemoryAlertSink:
    """
    Sink that keeps visible alerts in memory.

    Used by the HTTP service to expose current alerts, and by tests to
    inspect what was presented.

    Attributes:
        presented: Most recent presented alerts, oldest first
        dismissed: Most recent dismissed alert ids, oldest first
        history: Maximum entries kept in presented and dismissed
    """

    def __init__(self, history: int = 100) -> None:
        if history <= 0:
            raise ValueError(f"history must be > 0, got {history}")
        self.history = history
        self._lock = threading.Lock()
        self._active: Dict[str, Alert] = {}
        self.presented: Deque[Alert] = deque(maxlen=history)
        self.dismissed: Deque[str] = deque(maxlen=history)

    def present(self, alert: Alert) -> None:
        with self._lock:
            self._active[alert.id] = alert
            self.presented.append(alert)

    def dismiss(self, alert_id: str) -> None:
        with self._lock:
            self._active.pop(alert_id, None)
            self.dismissed.append(alert_id)

    def active(self) -> List[Alert]:
        """Alerts presented and not yet dismissed."""
        with self._lock:
            return list(self._active.values())
