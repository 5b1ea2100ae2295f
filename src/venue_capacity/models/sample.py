"""
Sample Model
============

A single attendance reading for a monitored entity.

This is the ONLY occupancy format passed between the ingestion layer
(push subscription, fallback poller) and the signal pipeline.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Union


@dataclass(frozen=True, slots=True, order=True)
class Sample:
    """
    Attendance count recorded at a point in time.

    Ordering compares (timestamp, count), which is what the store
    sorts on.

    Attributes:
        timestamp: UNIX timestamp (seconds) of the reading
        count: People present, never negative
    """

    timestamp: float
    count: int

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.count < 0:
            raise ValueError("count must be non-negative")

    def __repr__(self) -> str:
        return f"Sample(count={self.count}, t={self.timestamp:.3f})"

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Sample":
        """
        Build a Sample from a row-level record.

        Accepts ``{"count": ..., "timestamp": ...}`` where timestamp is
        either UNIX seconds or an ISO-8601 string.

        Raises:
            KeyError, ValueError, TypeError: On malformed records
        """
        return cls(
            timestamp=parse_timestamp(record["timestamp"]),
            count=int(record["count"]),
        )

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {"count": self.count, "timestamp": round(self.timestamp, 3)}


def parse_timestamp(value: Union[str, int, float, datetime]) -> float:
    """Convert an ISO string, datetime or number to UNIX seconds."""
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        # Python < 3.11 rejects the trailing "Z" designator
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return datetime.fromisoformat(value).timestamp()
    return float(value)
