"""
Density & Evacuation Classifier Tests
=====================================
"""

import pytest

from venue_capacity.errors import InvalidCapacity
from venue_capacity.models.density import DensityTier, RiskLevel
from venue_capacity.signals.density_classifier import (
    DensityClassifier,
    occupancy_ratio,
    risk_for_ratio,
    tier_for_ratio,
)
from venue_capacity.signals.rset import PresetRsetEstimator, RsetPreset


class TestTiers:
    """Tier thresholds on the occupancy percentage."""

    @pytest.mark.parametrize(
        "count,expected",
        [
            (0, DensityTier.VERY_LOW),
            (249, DensityTier.VERY_LOW),
            (250, DensityTier.LOW),
            (499, DensityTier.LOW),
            (500, DensityTier.MEDIUM),
            (749, DensityTier.MEDIUM),
            (750, DensityTier.HIGH),
            (899, DensityTier.HIGH),
            (900, DensityTier.CRITICAL),
            (1500, DensityTier.CRITICAL),
        ],
    )
    def test_boundaries(self, count, expected):
        state = DensityClassifier().classify(count, 1000)
        assert state.tier == expected

    def test_tier_is_monotonic_in_count(self):
        classifier = DensityClassifier()
        ranks = [classifier.classify(c, 1000).tier.rank for c in range(0, 1500, 10)]
        assert ranks == sorted(ranks)

    def test_percentage(self):
        state = DensityClassifier().classify(500, 1000)
        assert state.percentage == 50.0
        assert state.ratio == 0.5


class TestRiskLevels:
    """Prediction risk collapses very-low and low."""

    @pytest.mark.parametrize(
        "ratio,expected",
        [
            (0.1, RiskLevel.LOW),
            (0.3, RiskLevel.LOW),
            (0.6, RiskLevel.MEDIUM),
            (0.8, RiskLevel.HIGH),
            (0.95, RiskLevel.CRITICAL),
        ],
    )
    def test_risk_for_ratio(self, ratio, expected):
        assert risk_for_ratio(ratio) == expected

    def test_tier_for_ratio_matches_classifier(self):
        assert tier_for_ratio(0.9) == DensityTier.CRITICAL
        assert tier_for_ratio(0.8999) == DensityTier.HIGH


class TestCapacityValidation:
    """expected_max must be positive."""

    @pytest.mark.parametrize("expected_max", [0, -10])
    def test_rejects_non_positive(self, expected_max):
        with pytest.raises(InvalidCapacity):
            DensityClassifier().classify(100, expected_max)

    def test_invalid_capacity_is_value_error(self):
        with pytest.raises(ValueError):
            occupancy_ratio(10, 0)

    def test_rejects_bool(self):
        with pytest.raises(InvalidCapacity):
            occupancy_ratio(10, True)


class TestEvacuation:
    """RSET pass-through."""

    def test_unknown_exits_inferred_from_occupancy(self):
        # 5 exits inferred, 5000 / (5 * 60) = 16.67 minutes of travel
        state = DensityClassifier().classify(5000, 25000)
        assert state.evacuation_minutes == 19.7

    def test_empty_venue_is_pre_movement_only(self):
        state = DensityClassifier().classify(0, 1000)
        assert state.evacuation_minutes == 3.0

    def test_known_exit_count(self):
        state = DensityClassifier(exit_count=10).classify(5000, 25000)
        assert state.evacuation_minutes == 11.3

    def test_injected_estimator(self):
        calls = []

        class StubEstimator:
            def estimate(self, occupancy, preset, exit_count):
                calls.append((occupancy, preset, exit_count))
                return 42.0

        classifier = DensityClassifier(estimator=StubEstimator(), preset="stadium", exit_count=4)
        state = classifier.classify(800, 1000)

        assert state.evacuation_minutes == 42.0
        assert calls == [(800, "stadium", 4)]

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            PresetRsetEstimator().estimate(100, "arena", None)

    def test_unknown_preset_rejected_at_construction(self):
        with pytest.raises(ValueError, match="arena"):
            DensityClassifier(preset="arena")

    def test_custom_preset_table(self):
        estimator = PresetRsetEstimator(presets={"arena": RsetPreset(2.0, 50.0, 500)})
        state = DensityClassifier(estimator=estimator, preset="arena").classify(500, 1000)
        assert state.evacuation_minutes == 12.0

    def test_invalid_exit_count(self):
        with pytest.raises(ValueError):
            PresetRsetEstimator().estimate(100, "standard", 0)
