"""
Flow Rate Model
===============

Data model for the flow analyzer output.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class FlowRate:
    """
    People per minute moving in and out of the venue.

    Derived from consecutive samples; never stored independently of
    the samples it was computed from.

    Attributes:
        entering: Mean inflow rate (people/minute), >= 0
        leaving: Mean outflow rate (people/minute), >= 0
        net: entering - leaving
    """

    entering: float
    leaving: float
    net: float

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.entering < 0:
            raise ValueError("entering must be non-negative")
        if self.leaving < 0:
            raise ValueError("leaving must be non-negative")

    @classmethod
    def zero(cls) -> "FlowRate":
        return cls(entering=0.0, leaving=0.0, net=0.0)

    def __repr__(self) -> str:
        return (
            f"FlowRate(in={self.entering:.1f}, out={self.leaving:.1f}, "
            f"net={self.net:+.1f})"
        )

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "entering": self.entering,
            "leaving": self.leaving,
            "net": self.net,
        }
