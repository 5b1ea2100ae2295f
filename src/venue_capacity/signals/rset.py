"""
RSET Estimation
===============

Required Safe Egress Time estimators.

The density classifier only supplies inputs and passes the estimate
through; the estimator is an injected, replaceable collaborator.

Default Model (occupancy-only proxy):
    RSET = pre_movement + occupancy / (exit_count * flow_per_exit)

When the exit count is unknown it is inferred from occupancy as
ceil(occupancy / persons_per_exit), with at least one exit.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Protocol


class RsetEstimator(Protocol):
    """Contract of an evacuation-time estimator."""

    def estimate(
        self,
        occupancy: int,
        preset: str,
        exit_count: Optional[int],
    ) -> float:
        """Return the estimated evacuation time in minutes."""
        ...


@dataclass(frozen=True, slots=True)
class RsetPreset:
    """
    Parameters for one venue profile.

    Attributes:
        pre_movement_minutes: Detection, alarm and response time
        flow_per_exit: Persons per minute one exit discharges
        persons_per_exit: Occupancy served per exit when exits are unknown
    """

    pre_movement_minutes: float
    flow_per_exit: float
    persons_per_exit: int


DEFAULT_PRESETS: Dict[str, RsetPreset] = {
    "standard": RsetPreset(pre_movement_minutes=3.0, flow_per_exit=60.0, persons_per_exit=1000),
    "stadium": RsetPreset(pre_movement_minutes=4.0, flow_per_exit=80.0, persons_per_exit=2500),
    "conservative": RsetPreset(pre_movement_minutes=5.0, flow_per_exit=40.0, persons_per_exit=1000),
}


class PresetRsetEstimator:
    """
    Occupancy-only RSET proxy with named presets.

    Example:
        estimator = PresetRsetEstimator()
        minutes = estimator.estimate(occupancy=5000, preset="standard", exit_count=None)
    """

    def __init__(self, presets: Optional[Dict[str, RsetPreset]] = None) -> None:
        self.presets = dict(presets or DEFAULT_PRESETS)

    def estimate(
        self,
        occupancy: int,
        preset: str,
        exit_count: Optional[int],
    ) -> float:
        """
        Estimate evacuation minutes.

        Raises:
            KeyError: If preset is not known
            ValueError: If exit_count is given and not positive
        """
        params = self.presets[preset]
        occupancy = max(0, occupancy)

        if exit_count is None:
            exits = max(1, math.ceil(occupancy / params.persons_per_exit))
        elif exit_count <= 0:
            raise ValueError("exit_count must be positive")
        else:
            exits = exit_count

        travel = occupancy / (exits * params.flow_per_exit)
        return round(params.pre_movement_minutes + travel, 1)
