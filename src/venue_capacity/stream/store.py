"""
Sample Store
============

Thread-safe ordered time series of attendance samples for one entity.

This module provides the SampleStore class, the single write target of
both the push subscription and the fallback poller.

Design Rules:
    - Sort-on-insert: delivery order is never trusted
    - Exact duplicate (count, timestamp) pairs are ignored
    - Fixed maximum size (drops oldest on overflow)
    - Simple mutual exclusion, no merge logic
    - Does NOT compute derived signals
"""

import bisect
import logging
import threading
from typing import List, Optional

from venue_capacity.models.sample import Sample


logger = logging.getLogger(__name__)


class SampleStore:
    """
    Ordered, bounded sample series.

    Push and poll sources race, so samples may arrive late or twice.
    ``record`` keeps the series sorted by timestamp and treats exact
    duplicates as no-ops, which makes every write idempotent.

    Attributes:
        max_samples: Maximum samples retained
        dropped_count: Samples evicted due to overflow
        duplicate_count: Writes ignored as exact duplicates

    Example:
        store = SampleStore(max_samples=500)

        store.record(Sample(timestamp=t0, count=100))
        recent = store.tail(10)
    """

    def __init__(self, max_samples: int = 1000) -> None:
        """
        Initialize sample store.

        Args:
            max_samples: Maximum samples to retain. Must be >= 1.
        """
        if max_samples < 1:
            raise ValueError("max_samples must be >= 1")

        self._max_samples = max_samples
        self._samples: List[Sample] = []
        self._lock = threading.Lock()
        self._dropped_count: int = 0
        self._duplicate_count: int = 0
        self._total_recorded: int = 0
        self._out_of_order_count: int = 0

    @property
    def max_samples(self) -> int:
        """Maximum store size."""
        return self._max_samples

    @property
    def dropped_count(self) -> int:
        """Samples evicted due to overflow."""
        return self._dropped_count

    @property
    def duplicate_count(self) -> int:
        """Writes ignored as exact duplicates."""
        return self._duplicate_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def record(self, sample: Sample) -> bool:
        """
        Insert a sample in timestamp order.

        Args:
            sample: Sample to insert

        Returns:
            True if the sample was added, False if it was an exact
            duplicate of a stored sample (or older than everything
            retained in a full store).
        """
        with self._lock:
            index = bisect.bisect_left(self._samples, sample)
            if index < len(self._samples) and self._samples[index] == sample:
                self._duplicate_count += 1
                return False

            if len(self._samples) >= self._max_samples and index == 0:
                # Older than the whole retained window; it would be evicted at once
                self._dropped_count += 1
                return False

            if index < len(self._samples):
                self._out_of_order_count += 1

            self._samples.insert(index, sample)
            self._total_recorded += 1

            if len(self._samples) > self._max_samples:
                del self._samples[0]
                self._dropped_count += 1
                logger.debug(
                    f"Store full, dropped oldest sample. "
                    f"Total dropped: {self._dropped_count}"
                )
            return True

    def tail(self, n: int) -> List[Sample]:
        """
        Most recent samples, oldest first.

        Never raises; returns an empty list when there is no data or
        n <= 0.
        """
        if n <= 0:
            return []
        with self._lock:
            return list(self._samples[-n:])

    def latest(self) -> Optional[Sample]:
        """Most recent sample, or None if empty."""
        with self._lock:
            return self._samples[-1] if self._samples else None

    def clear(self) -> int:
        """
        Remove all samples.

        Returns:
            Number of samples cleared.
        """
        with self._lock:
            cleared = len(self._samples)
            self._samples.clear()
            return cleared

    def metrics(self) -> dict:
        """
        Get store metrics for observability.

        Returns:
            Dict with size, max_samples, dropped, duplicates, out_of_order
        """
        with self._lock:
            return {
                "size": len(self._samples),
                "max_samples": self._max_samples,
                "total_recorded": self._total_recorded,
                "dropped_count": self._dropped_count,
                "duplicate_count": self._duplicate_count,
                "out_of_order_count": self._out_of_order_count,
            }
