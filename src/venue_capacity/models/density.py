"""
Density Models
==============

Discrete crowd-density classifications.

Both enums are ordered by severity so that tiers can be compared
with ``rank`` when checking escalation.
"""

from dataclasses import dataclass
from enum import Enum


class DensityTier(str, Enum):
    """
    Crowd density tier as a function of count / expected_max.

    Thresholds (percentage of capacity):
        VERY_LOW: < 25
        LOW:      [25, 50)
        MEDIUM:   [50, 75)
        HIGH:     [75, 90)
        CRITICAL: >= 90
    """

    VERY_LOW = "very-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = [
    DensityTier.VERY_LOW,
    DensityTier.LOW,
    DensityTier.MEDIUM,
    DensityTier.HIGH,
    DensityTier.CRITICAL,
]


class RiskLevel(str, Enum):
    """Risk attached to a predicted occupancy point."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


@dataclass(frozen=True, slots=True)
class DensityState:
    """
    Classifier output for the current occupancy.

    Attributes:
        ratio: count / expected_max, clamped to [0, inf)
        tier: Density tier for the ratio
        evacuation_minutes: RSET estimate passed through from the estimator
    """

    ratio: float
    tier: DensityTier
    evacuation_minutes: float

    @property
    def percentage(self) -> float:
        return self.ratio * 100.0

    def __repr__(self) -> str:
        return (
            f"DensityState({self.tier.value}, {self.percentage:.1f}%, "
            f"evac={self.evacuation_minutes:.1f}min)"
        )
