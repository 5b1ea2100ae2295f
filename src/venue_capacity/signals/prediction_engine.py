"""
Prediction Engine
=================

Short-window linear projection of occupancy.

This engine:
    - Takes the most recent ``window`` samples (default 5)
    - Fits ordinary least squares of count against sample index
      (x = 0..n-1), NOT against wall-clock time
    - Projects predicted = clamp(m * (n - 1 + h) + b, 0, expected_max)
      for horizon steps h = 1..steps (default 15-minute steps, 2 hours)
    - Stops projecting after the first point that reaches expected_max
    - Scores confidence from the residual spread of the fit

Confidence Heuristic:
    confidence = clamp(100 - sqrt(residual_variance) / expected_max * 100,
                       min_confidence, max_confidence)

    The bounds ([50, 95] by default) are part of the policy: this is a
    coarse indicator, not a calibrated interval.

Degenerate Input:
    Fewer than ``window`` samples or a non-finite fit yield an empty
    Forecast. The engine never raises on sample content.
"""

import logging
import math
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from venue_capacity.errors import validate_capacity
from venue_capacity.models.forecast import Forecast, PeakPrediction, PredictionPoint
from venue_capacity.models.sample import Sample
from venue_capacity.signals.density_classifier import risk_for_ratio


logger = logging.getLogger(__name__)


def fit_trend(counts: Sequence[float]) -> Tuple[float, float, float]:
    """
    Least-squares line through counts indexed 0..n-1.

    Args:
        counts: Observed counts, oldest first (n >= 2)

    Returns:
        Tuple of (slope, intercept, residual_variance)
    """
    y = np.asarray(counts, dtype=np.float64)
    x = np.arange(len(y), dtype=np.float64)

    # Closed-form OLS; x has non-zero variance whenever n >= 2
    x_mean = x.mean()
    y_mean = y.mean()
    sxx = np.sum((x - x_mean) ** 2)
    slope = float(np.sum((x - x_mean) * (y - y_mean)) / sxx)
    intercept = float(y_mean - slope * x_mean)

    residuals = y - (slope * x + intercept)
    variance = float(np.mean(residuals ** 2))
    return slope, intercept, variance


class PredictionEngine:
    """
    Occupancy forecaster over a short sample window.

    Stateless: every call recomputes from the samples it is given.

    Attributes:
        window: Samples used for the fit (also the minimum required)
        step_minutes: Minutes between projected points
        steps: Maximum number of projected points
        min_confidence: Lower confidence bound
        max_confidence: Upper confidence bound

    Example:
        engine = PredictionEngine()
        forecast = engine.predict(store.tail(engine.window), expected_max=1000)
        if forecast.peak:
            print(forecast.peak.count, forecast.confidence)
    """

    def __init__(
        self,
        window: int = 5,
        step_minutes: int = 15,
        steps: int = 8,
        min_confidence: float = 50.0,
        max_confidence: float = 95.0,
    ) -> None:
        errors = []
        if window < 2:
            errors.append(f"window must be >= 2, got {window}")
        if step_minutes <= 0:
            errors.append(f"step_minutes must be > 0, got {step_minutes}")
        if steps <= 0:
            errors.append(f"steps must be > 0, got {steps}")
        if not 0 <= min_confidence <= max_confidence <= 100:
            errors.append(
                f"confidence bounds must satisfy 0 <= min <= max <= 100, "
                f"got [{min_confidence}, {max_confidence}]"
            )
        if errors:
            raise ValueError("Prediction parameter validation failed:\n" + "\n".join(errors))

        self.window = window
        self.step_minutes = step_minutes
        self.steps = steps
        self.min_confidence = min_confidence
        self.max_confidence = max_confidence

    def predict(
        self,
        samples: Sequence[Sample],
        expected_max: int,
        low_confidence: bool = False,
    ) -> Forecast:
        """
        Build a forecast from the most recent samples.

        Args:
            samples: Samples ascending by timestamp
            expected_max: Expected capacity, must be > 0
            low_confidence: Mark the forecast as computed against a
                default capacity

        Returns:
            Forecast; empty when fewer than ``window`` samples exist

        Raises:
            InvalidCapacity: If expected_max <= 0
        """
        expected_max = validate_capacity(expected_max)
        recent = list(samples)[-self.window:]

        if len(recent) < self.window:
            return Forecast.empty(low_confidence=low_confidence)

        slope, intercept, variance = fit_trend([s.count for s in recent])
        if not all(math.isfinite(v) for v in (slope, intercept, variance)):
            logger.warning("Non-finite regression result, no forecast produced")
            return Forecast.empty(low_confidence=low_confidence)

        confidence = self.confidence(variance, expected_max)
        points = tuple(
            self.iter_projection(
                slope,
                intercept,
                n=len(recent),
                expected_max=expected_max,
                origin=recent[-1].timestamp,
            )
        )

        return Forecast(
            points=points,
            confidence=confidence,
            peak=self._peak(points),
            low_confidence=low_confidence,
            slope=slope,
        )

    def confidence(self, variance: float, expected_max: int) -> float:
        """Bounded variance-based confidence score."""
        raw = 100.0 - math.sqrt(max(0.0, variance)) / expected_max * 100.0
        return round(max(self.min_confidence, min(self.max_confidence, raw)), 1)

    def iter_projection(
        self,
        slope: float,
        intercept: float,
        n: int,
        expected_max: int,
        origin: float,
    ) -> Iterator[PredictionPoint]:
        """
        Yield projected points one horizon step at a time.

        Stops after the first point that reaches expected_max.
        """
        for h in range(1, self.steps + 1):
            raw = slope * (n - 1 + h) + intercept
            predicted = max(0.0, min(float(expected_max), raw))
            minutes_ahead = h * self.step_minutes

            yield PredictionPoint(
                minutes_ahead=minutes_ahead,
                predicted_count=predicted,
                risk_level=risk_for_ratio(predicted / expected_max),
                time=origin + minutes_ahead * 60.0,
            )

            if predicted >= expected_max:
                break

    @staticmethod
    def _peak(points: Sequence[PredictionPoint]) -> Optional[PeakPrediction]:
        if not points:
            return None
        # max() keeps the earliest point on ties
        best = max(points, key=lambda p: p.predicted_count)
        return PeakPrediction(
            count=best.predicted_count,
            minutes_ahead=best.minutes_ahead,
            time=best.time,
        )
