"""
Data Models
===========

Data models for the venue capacity engine.

This module re-exports all data models for convenient access.

Models:
    Input:
        - Sample: Attendance count at a point in time

    Signals:
        - FlowRate: Entering/leaving/net people per minute
        - DensityTier, RiskLevel, DensityState: Density classification
        - PredictionPoint, PeakPrediction, Forecast: Occupancy projection

    State:
        - AlertState, AlertDecision, Alert: Alert coordinator values
        - ConnectionPhase, ConnectionState: Connection manager values

    Output:
        - OccupancySnapshot: Complete per-entity output contract
"""

from venue_capacity.models.sample import Sample
from venue_capacity.models.flow import FlowRate
from venue_capacity.models.density import DensityState, DensityTier, RiskLevel
from venue_capacity.models.forecast import Forecast, PeakPrediction, PredictionPoint
from venue_capacity.models.alert import (
    Alert,
    AlertAction,
    AlertDecision,
    AlertSeverity,
    AlertState,
)
from venue_capacity.models.connection import ConnectionPhase, ConnectionState
from venue_capacity.models.output import OccupancySnapshot

__all__ = [
    # Input
    "Sample",
    # Signals
    "FlowRate",
    "DensityTier",
    "RiskLevel",
    "DensityState",
    "PredictionPoint",
    "PeakPrediction",
    "Forecast",
    # State
    "Alert",
    "AlertAction",
    "AlertDecision",
    "AlertSeverity",
    "AlertState",
    "ConnectionPhase",
    "ConnectionState",
    # Output
    "OccupancySnapshot",
]
