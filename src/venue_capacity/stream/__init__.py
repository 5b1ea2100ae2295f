"""
Stream Module
=============

Sample ingestion: storage, live subscription and fallback polling.

This module provides the ingestion layer of the occupancy engine:
    - SampleStore: Thread-safe, sorted, bounded sample series
    - ConnectionManager: Push subscription state machine with backoff
    - FallbackPoller: Timer-driven pull of the latest sample
    - Source contracts and WebSocket/HTTP adapters

Example:
    from venue_capacity.stream import SampleStore, FallbackPoller, ConnectionManager

    store = SampleStore()
    poller = FallbackPoller("event-42", pull_source, on_sample)
    manager = ConnectionManager("event-42", live_source, on_sample, poller=poller)

    poller.start()
    await manager.start()
"""

from venue_capacity.stream.store import SampleStore
from venue_capacity.stream.poller import FallbackPoller, PollerMetrics
from venue_capacity.stream.connection import ConnectionManager, compute_backoff
from venue_capacity.stream.sources import (
    CapacitySource,
    HttpCapacitySource,
    HttpPullSource,
    LiveSource,
    PullSource,
    WebSocketLiveSource,
    sample_from_payload,
)


__all__ = [
    "SampleStore",
    "FallbackPoller",
    "PollerMetrics",
    "ConnectionManager",
    "compute_backoff",
    "CapacitySource",
    "LiveSource",
    "PullSource",
    "HttpCapacitySource",
    "HttpPullSource",
    "WebSocketLiveSource",
    "sample_from_payload",
]
