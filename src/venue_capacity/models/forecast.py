"""
Forecast Models
===============

Data models for the prediction engine output.

A Forecast is an ordered, finite sequence of PredictionPoints plus the
peak of that sequence. An empty forecast means "insufficient data" and
is a valid outcome, not an error.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from venue_capacity.models.density import RiskLevel


@dataclass(frozen=True, slots=True)
class PredictionPoint:
    """
    Projected occupancy at a fixed offset from the latest sample.

    Attributes:
        minutes_ahead: Offset from the latest sample (> 0)
        predicted_count: Projected occupancy, clamped to [0, expected_max]
        risk_level: Risk derived from predicted_count / expected_max
        time: UNIX timestamp of the projected point
    """

    minutes_ahead: int
    predicted_count: float
    risk_level: RiskLevel
    time: float

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.minutes_ahead <= 0:
            raise ValueError("minutes_ahead must be positive")
        if self.predicted_count < 0:
            raise ValueError("predicted_count must be non-negative")


@dataclass(frozen=True, slots=True)
class PeakPrediction:
    """Highest projected point in the forecast horizon."""

    count: float
    minutes_ahead: int
    time: float


@dataclass(frozen=True, slots=True)
class Forecast:
    """
    Occupancy projection for one entity.

    Attributes:
        points: Projected points, ascending by minutes_ahead
        confidence: Heuristic confidence in [50, 95]; 0 when empty
        peak: Maximum projected point, None when empty
        low_confidence: True when computed against a default capacity
        slope: Fitted people-per-sample trend
    """

    points: Tuple[PredictionPoint, ...] = field(default_factory=tuple)
    confidence: float = 0.0
    peak: Optional[PeakPrediction] = None
    low_confidence: bool = False
    slope: float = 0.0

    @classmethod
    def empty(cls, low_confidence: bool = False) -> "Forecast":
        return cls(low_confidence=low_confidence)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PredictionPoint]:
        return iter(self.points)
