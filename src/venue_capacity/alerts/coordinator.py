"""
Alert Coordinator
=================

Stateful capacity-alert decision layer for one monitored entity.

State Machine:
    clear   → warning:  ratio in [warning_ratio, critical_ratio)
    *       → critical: ratio >= critical_ratio
    warning/critical → clear: ratio < warning_ratio on a later evaluation
    warning ↔ critical: superseding fire (old alert dismissed first)

Rules:
    - Debounce: evaluations within ``cooldown_seconds`` of the last fired
      alert are ignored entirely (SUPPRESS)
    - Deduplication: at most one active alert; any active alert is
      dismissed before a new one is presented
    - Same severity already active: HOLD, nothing is re-presented
    - Each evaluation emits at most one transition

The coordinator decides THAT an alert exists, its severity and its
message. Display is delegated to the AlertSink.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from venue_capacity.alerts.sink import AlertSink
from venue_capacity.models.alert import (
    Alert,
    AlertAction,
    AlertDecision,
    AlertSeverity,
    AlertState,
)
from venue_capacity.models.forecast import Forecast


logger = logging.getLogger(__name__)


@dataclass
class AlertThresholds:
    """
    Thresholds for alert transitions.

    Loaded from configuration file.
    """

    warning_ratio: float = 0.90
    critical_ratio: float = 1.0
    cooldown_seconds: float = 2.0

    def __post_init__(self) -> None:
        if not 0 < self.warning_ratio <= self.critical_ratio:
            raise ValueError("thresholds must satisfy 0 < warning_ratio <= critical_ratio")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")


class AlertCoordinator:
    """
    Per-entity capacity alert state machine.

    Owns the entity's AlertState; nothing else mutates it.

    Attributes:
        entity_id: Monitored entity
        thresholds: Configured threshold values
        sink: Alert presentation sink

    Example:
        coordinator = AlertCoordinator("event-42", sink)
        decision = coordinator.evaluate(ratio=0.95)
        # decision.action == AlertAction.FIRE
    """

    def __init__(
        self,
        entity_id: str,
        sink: AlertSink,
        thresholds: Optional[AlertThresholds] = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.entity_id = entity_id
        self.sink = sink
        self.thresholds = thresholds or AlertThresholds()
        self._clock = clock
        self._id_factory = id_factory
        self._state = AlertState()

    @property
    def state(self) -> AlertState:
        return self._state

    @property
    def active_alert_id(self) -> Optional[str]:
        return self._state.active_alert_id

    def evaluate(
        self,
        ratio: float,
        forecast: Optional[Forecast] = None,
        expected_max: Optional[int] = None,
        current_time: Optional[float] = None,
    ) -> AlertDecision:
        """
        Evaluate the current occupancy ratio.

        Args:
            ratio: Current count / expected_max
            forecast: Current forecast, used only for message content
            expected_max: Capacity the forecast was computed against
            current_time: Evaluation time (defaults to the clock)

        Returns:
            AlertDecision describing the single transition, if any
        """
        now = self._clock() if current_time is None else current_time
        state = self._state

        if state.last_fired_at is not None:
            elapsed = now - state.last_fired_at
            if elapsed < self.thresholds.cooldown_seconds:
                logger.debug(
                    f"[{self.entity_id}] evaluation suppressed "
                    f"({elapsed:.2f}s since last alert)"
                )
                return AlertDecision(action=AlertAction.SUPPRESS)

        percentage = ratio * 100.0
        state.last_evaluated_percentage = percentage
        target = self._target_severity(ratio)

        if target is None:
            if state.active_alert_id is None:
                return AlertDecision(action=AlertAction.HOLD)
            dismissed = self._dismiss_active()
            logger.info(
                f"[{self.entity_id}] capacity alert cleared at {percentage:.1f}%"
            )
            return AlertDecision(action=AlertAction.CLEAR, dismissed_id=dismissed)

        if target == state.active_severity:
            return AlertDecision(action=AlertAction.HOLD)

        dismissed = self._dismiss_active()
        alert = self._build_alert(target, percentage, forecast, expected_max)
        self.sink.present(alert)
        state.active_alert_id = alert.id
        state.active_severity = target
        state.last_fired_at = now

        logger.info(
            f"[{self.entity_id}] capacity alert fired: {target.value} "
            f"at {percentage:.1f}% (id={alert.id})"
        )
        return AlertDecision(action=AlertAction.FIRE, alert=alert, dismissed_id=dismissed)

    def clear(self) -> Optional[str]:
        """
        Dismiss any active alert and reset state.

        Called on disposal so no alert outlives its entity.

        Returns:
            Dismissed alert id, if one was active
        """
        dismissed = self._dismiss_active()
        self._state.reset()
        return dismissed

    def _target_severity(self, ratio: float) -> Optional[AlertSeverity]:
        th = self.thresholds
        if ratio >= th.critical_ratio:
            return AlertSeverity.CRITICAL
        if ratio >= th.warning_ratio:
            return AlertSeverity.WARNING
        return None

    def _dismiss_active(self) -> Optional[str]:
        alert_id = self._state.active_alert_id
        if alert_id is None:
            return None
        self.sink.dismiss(alert_id)
        self._state.active_alert_id = None
        self._state.active_severity = None
        return alert_id

    def _build_alert(
        self,
        severity: AlertSeverity,
        percentage: float,
        forecast: Optional[Forecast],
        expected_max: Optional[int],
    ) -> Alert:
        if severity is AlertSeverity.CRITICAL:
            title = "Over Capacity"
            message = f"Occupancy at {percentage:.0f}% of expected capacity."
        else:
            title = "Near Capacity"
            message = f"Occupancy at {percentage:.0f}% of expected capacity."

        if forecast is not None and forecast.peak is not None and expected_max:
            peak_pct = forecast.peak.count / expected_max * 100.0
            if peak_pct > percentage:
                message += (
                    f" Predicted {peak_pct:.0f}% occupancy in "
                    f"{forecast.peak.minutes_ahead} minutes."
                )

        if severity is AlertSeverity.CRITICAL:
            message += " Consider implementing entry restrictions."
        else:
            message += " Monitor attendance trends closely."

        return Alert(
            id=self._id_factory(),
            entity_id=self.entity_id,
            severity=severity,
            title=title,
            message=message,
            persistent=severity is AlertSeverity.CRITICAL,
            percentage=percentage,
        )
