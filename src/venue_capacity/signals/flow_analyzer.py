"""
Flow Analyzer
=============

Derives entering/leaving/net people-per-minute from recent samples.

This analyzer:
    - Takes the tail (up to ``window`` samples) of a SampleStore
    - Computes Δcount / Δminutes for each consecutive pair
    - Accumulates positive rates as entering, negative rates as leaving
    - Averages each accumulator over the usable pairs
    - Rounds to one decimal place

Edge Cases:
    - Fewer than 2 samples: all-zero FlowRate
    - Pairs with equal timestamps are skipped, never divided by zero
    - net is computed from the ROUNDED entering/leaving values so that
      net == entering - leaving holds exactly
"""

import logging
from typing import Sequence

from venue_capacity.models.flow import FlowRate
from venue_capacity.models.sample import Sample


logger = logging.getLogger(__name__)


class FlowAnalyzer:
    """
    Flow rate computation over a bounded sample window.

    Stateless: every call recomputes from the samples it is given.

    Attributes:
        window: Maximum number of samples considered
        high_flow_threshold: Net inflow (people/minute) flagged as high

    Example:
        analyzer = FlowAnalyzer(window=10)
        rate = analyzer.compute(store.tail(analyzer.window))
    """

    def __init__(self, window: int = 10, high_flow_threshold: float = 20.0) -> None:
        if window < 2:
            raise ValueError("window must be >= 2")
        if high_flow_threshold < 0:
            raise ValueError("high_flow_threshold must be >= 0")

        self.window = window
        self.high_flow_threshold = high_flow_threshold

    def compute(self, samples: Sequence[Sample]) -> FlowRate:
        """
        Compute flow rate for a sorted sample sequence.

        Args:
            samples: Samples ascending by timestamp; only the last
                ``window`` are used

        Returns:
            FlowRate in people per minute
        """
        recent = list(samples)[-self.window:]
        if len(recent) < 2:
            return FlowRate.zero()

        total_entering = 0.0
        total_leaving = 0.0
        pairs = 0
        skipped = 0

        for prev, curr in zip(recent, recent[1:]):
            minutes = (curr.timestamp - prev.timestamp) / 60.0
            if minutes <= 0:
                skipped += 1
                continue

            rate = (curr.count - prev.count) / minutes
            if rate > 0:
                total_entering += rate
            elif rate < 0:
                total_leaving += -rate
            pairs += 1

        if skipped:
            logger.debug(f"Skipped {skipped} sample pair(s) with zero time delta")

        if pairs == 0:
            return FlowRate.zero()

        entering = round(total_entering / pairs, 1)
        leaving = round(total_leaving / pairs, 1)
        return FlowRate(entering=entering, leaving=leaving, net=entering - leaving)

    def is_high_flow(self, rate: FlowRate) -> bool:
        """Whether net inflow exceeds the high-flow threshold."""
        return rate.net > self.high_flow_threshold
