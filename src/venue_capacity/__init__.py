"""
venue-capacity
==============

Real-time venue occupancy monitoring and capacity alerting.

This package turns a stream of attendance samples into derived occupancy
signals (flow rate, density tier, evacuation estimate, short-horizon
forecast) and a debounced capacity alert per monitored entity.

Components:
    - stream: Sample store, live subscription and fallback polling
    - signals: Flow, density and prediction computations
    - alerts: Capacity alert state machine and alert sinks
    - monitor: Per-entity pipeline and the engine registry

Example:
    from venue_capacity.config import settings
    from venue_capacity.monitor import OccupancyEngine

    # The HTTP service is started via main.py
"""

__version__ = "0.1.0"
__author__ = "Venue Capacity Project"

__all__ = [
    "__version__",
]
