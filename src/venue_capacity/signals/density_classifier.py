"""
Density & Evacuation Classifier
===============================

Maps occupancy to a density tier and an evacuation-time estimate.

Tier Thresholds (percentage of expected capacity):
    < 25      very-low
    [25, 50)  low
    [50, 75)  medium
    [75, 90)  high
    >= 90     critical

The same percentage bands drive prediction risk levels, with very-low
and low collapsed into a single ``low`` risk.
"""

import logging
from typing import Optional

from venue_capacity.errors import validate_capacity
from venue_capacity.models.density import DensityState, DensityTier, RiskLevel
from venue_capacity.signals.rset import PresetRsetEstimator, RsetEstimator


logger = logging.getLogger(__name__)


def occupancy_ratio(count: float, expected_max: int) -> float:
    """
    count / expected_max, clamped to [0, inf).

    Raises:
        InvalidCapacity: If expected_max <= 0
    """
    expected_max = validate_capacity(expected_max)
    return max(0.0, count / expected_max)


def tier_for_ratio(ratio: float) -> DensityTier:
    """Density tier for an occupancy ratio."""
    if ratio >= 0.90:
        return DensityTier.CRITICAL
    if ratio >= 0.75:
        return DensityTier.HIGH
    if ratio >= 0.50:
        return DensityTier.MEDIUM
    if ratio >= 0.25:
        return DensityTier.LOW
    return DensityTier.VERY_LOW


def risk_for_ratio(ratio: float) -> RiskLevel:
    """Risk level for a predicted occupancy ratio."""
    tier = tier_for_ratio(ratio)
    if tier in (DensityTier.VERY_LOW, DensityTier.LOW):
        return RiskLevel.LOW
    return RiskLevel(tier.value)


class DensityClassifier:
    """
    Density tier and evacuation-time classifier.

    Attributes:
        estimator: RSET estimator collaborator
        preset: Preset name passed to the estimator
        exit_count: Exit count passed to the estimator (None = unknown)

    Raises:
        ValueError: If the default estimator does not know the preset

    Example:
        classifier = DensityClassifier()
        state = classifier.classify(count=950, expected_max=1000)
        # state.tier == DensityTier.CRITICAL
    """

    def __init__(
        self,
        estimator: Optional[RsetEstimator] = None,
        preset: str = "standard",
        exit_count: Optional[int] = None,
    ) -> None:
        self.estimator = estimator or PresetRsetEstimator()
        if isinstance(self.estimator, PresetRsetEstimator) and preset not in self.estimator.presets:
            raise ValueError(
                f"Unknown RSET preset {preset!r}, expected one of {sorted(self.estimator.presets)}"
            )
        self.preset = preset
        self.exit_count = exit_count

    def classify(self, count: int, expected_max: int) -> DensityState:
        """
        Classify the current occupancy.

        Args:
            count: Current occupancy
            expected_max: Expected capacity, must be > 0

        Returns:
            DensityState with ratio, tier and evacuation estimate

        Raises:
            InvalidCapacity: If expected_max <= 0
        """
        ratio = occupancy_ratio(count, expected_max)
        tier = tier_for_ratio(ratio)

        minutes = self.estimator.estimate(
            occupancy=max(0, count),
            preset=self.preset,
            exit_count=self.exit_count,
        )

        logger.debug(
            f"Density: {count}/{expected_max} = {ratio * 100:.1f}% -> {tier.value}, "
            f"evac={minutes}min"
        )
        return DensityState(ratio=ratio, tier=tier, evacuation_minutes=float(minutes))
