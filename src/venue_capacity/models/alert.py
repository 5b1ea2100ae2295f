"""
Alert Models
============

Alert payloads, decisions and per-entity alert state.

The coordinator decides THAT an alert exists, its severity and its
message. How it is displayed belongs to the AlertSink.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AlertSeverity(str, Enum):
    """
    Severity of a presented alert.

    Attributes:
        WARNING: Occupancy in [90%, 100%) of expected capacity
        CRITICAL: Occupancy at or over expected capacity
        ERROR: Live updates failed permanently (not a capacity alert)
    """

    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"


class AlertAction(str, Enum):
    """
    Outcome of a single coordinator evaluation.

    Attributes:
        FIRE: A new alert was presented (superseding any previous one)
        HOLD: State unchanged (no alert, or same severity still active)
        SUPPRESS: Evaluation ignored inside the debounce window
        CLEAR: Active alert dismissed, occupancy back under threshold
    """

    FIRE = "fire"
    HOLD = "hold"
    SUPPRESS = "suppress"
    CLEAR = "clear"


@dataclass(frozen=True, slots=True)
class Alert:
    """
    Payload handed to the alert sink.

    Attributes:
        id: Correlation token (uuid4 hex)
        entity_id: Monitored entity the alert belongs to
        severity: Alert severity
        title: Short headline
        message: Human-readable body
        persistent: Whether the sink should keep it until dismissed
        percentage: Occupancy percentage that triggered the alert
    """

    id: str
    entity_id: str
    severity: AlertSeverity
    title: str
    message: str
    persistent: bool
    percentage: float

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "persistent": self.persistent,
            "percentage": round(self.percentage, 1),
        }


@dataclass(frozen=True, slots=True)
class AlertDecision:
    """Result of an alert evaluation."""

    action: AlertAction
    alert: Optional[Alert] = None
    dismissed_id: Optional[str] = None

    def __repr__(self) -> str:
        severity = self.alert.severity.value if self.alert else None
        return f"AlertDecision({self.action.value}, severity={severity})"


@dataclass
class AlertState:
    """
    Mutable per-entity alert state.

    Owned exclusively by the AlertCoordinator and mutated only by its
    evaluation step.
    """

    active_alert_id: Optional[str] = None
    active_severity: Optional[AlertSeverity] = None
    last_fired_at: Optional[float] = None
    last_evaluated_percentage: float = 0.0

    def reset(self) -> None:
        self.active_alert_id = None
        self.active_severity = None
        self.last_fired_at = None
        self.last_evaluated_percentage = 0.0
