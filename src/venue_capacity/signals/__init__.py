"""
Signals Module
==============

Derived occupancy signals.

This module provides the analyzers that turn the raw sample series into
values suitable for alerting and display. All of them recompute from the
full current window on every call.
"""

from venue_capacity.signals.density_classifier import (
    DensityClassifier,
    occupancy_ratio,
    risk_for_ratio,
    tier_for_ratio,
)
from venue_capacity.signals.flow_analyzer import FlowAnalyzer
from venue_capacity.signals.prediction_engine import PredictionEngine, fit_trend
from venue_capacity.signals.rset import PresetRsetEstimator, RsetEstimator, RsetPreset

__all__ = [
    "DensityClassifier",
    "FlowAnalyzer",
    "PredictionEngine",
    "PresetRsetEstimator",
    "RsetEstimator",
    "RsetPreset",
    "fit_trend",
    "occupancy_ratio",
    "risk_for_ratio",
    "tier_for_ratio",
]
