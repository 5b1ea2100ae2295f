"""
Snapshot Output Models
======================

This module defines the value object the engine hands to the presentation
layer after every accepted sample.

Output Contract:
    {
        "entity_id": "event-42",
        "computed_at": 1770500938.284,
        "current_occupancy": 950,
        "expected_max": 1000,
        "capacity_is_default": false,
        "percentage": 95.0,
        "density_tier": "critical",
        "evacuation_minutes": 12.5,
        "flow": {"entering": 6.7, "leaving": 0.0, "net": 6.7},
        "high_flow": false,
        "forecast": {
            "confidence": 95.0,
            "low_confidence": false,
            "trend_per_sample": 100.0,
            "points": [{"minutes_ahead": 15, "predicted_count": 1000.0,
                        "risk_level": "critical", "time": 1770501838.0}],
            "peak": {"count": 1000.0, "minutes_ahead": 15, "time": 1770501838.0}
        },
        "alert": {"action": "fire", "severity": "warning", "alert_id": "..."},
        "connection": {"phase": "live", "attempt": 0,
                       "next_retry_at": null, "exhausted": false},
        "sample_count": 12
    }

Design Rules:
    - Everything here is DERIVED; nothing is persisted
    - The engine never decides how a snapshot is rendered
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from venue_capacity.models.alert import AlertAction, AlertSeverity
from venue_capacity.models.connection import ConnectionPhase
from venue_capacity.models.density import DensityTier, RiskLevel


class FlowOutput(BaseModel):
    """Flow rate in people per minute."""

    entering: float = Field(..., ge=0.0, description="Inflow (people/minute)")
    leaving: float = Field(..., ge=0.0, description="Outflow (people/minute)")
    net: float = Field(..., description="entering - leaving (people/minute)")


class PredictionPointOutput(BaseModel):
    """A single projected occupancy point."""

    minutes_ahead: int = Field(..., gt=0)
    predicted_count: float = Field(..., ge=0.0)
    risk_level: RiskLevel
    time: float


class PeakOutput(BaseModel):
    """Maximum projected occupancy in the horizon."""

    count: float = Field(..., ge=0.0)
    minutes_ahead: int = Field(..., gt=0)
    time: float


class ForecastOutput(BaseModel):
    """
    Occupancy forecast.

    An empty ``points`` list means fewer than the minimum number of
    samples were available.
    """

    confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Heuristic confidence in [50, 95]; 0 when no forecast",
    )
    low_confidence: bool = Field(
        default=False,
        description="True when computed against a default capacity",
    )
    trend_per_sample: float = Field(
        default=0.0,
        description="Fitted people-per-sample slope of the recent window",
    )
    points: List[PredictionPointOutput] = Field(default_factory=list)
    peak: Optional[PeakOutput] = None


class AlertOutput(BaseModel):
    """Outcome of the latest alert evaluation."""

    action: AlertAction
    severity: Optional[AlertSeverity] = None
    alert_id: Optional[str] = None
    message: Optional[str] = None


class ConnectionOutput(BaseModel):
    """Live-update connection state."""

    phase: ConnectionPhase
    attempt: int = Field(default=0, ge=0)
    next_retry_at: Optional[float] = None
    exhausted: bool = False


class OccupancySnapshot(BaseModel):
    """
    Complete derived state of one monitored entity.

    Attributes:
        entity_id: Monitored entity identifier
        computed_at: UNIX timestamp when the snapshot was built
        current_occupancy: Count of the latest sample
        expected_max: Capacity used for the ratios
        capacity_is_default: Whether expected_max is the fallback value
        percentage: current_occupancy / expected_max * 100
        density_tier: Density classification
        evacuation_minutes: RSET estimate
        flow: Flow rate over the recent window
        high_flow: Net inflow above the configured threshold
        forecast: Occupancy forecast
        alert: Latest alert decision
        connection: Live-update connection state
        sample_count: Samples currently held for the entity
    """

    entity_id: str
    computed_at: float = Field(..., gt=0)
    current_occupancy: int = Field(..., ge=0)
    expected_max: int = Field(..., gt=0)
    capacity_is_default: bool = False
    percentage: float = Field(..., ge=0.0)
    density_tier: DensityTier
    evacuation_minutes: float = Field(..., ge=0.0)
    flow: FlowOutput
    high_flow: bool = False
    forecast: ForecastOutput = Field(default_factory=ForecastOutput)
    alert: Optional[AlertOutput] = None
    connection: Optional[ConnectionOutput] = None
    sample_count: int = Field(default=0, ge=0)
