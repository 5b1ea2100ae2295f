"""
Connection State Models
=======================

State machine value owned by the ConnectionManager.

Transitions:
    CONNECTING   → LIVE          subscribe succeeded
    CONNECTING   → DEGRADED      subscribe failed
    LIVE         → DEGRADED      transport error or staleness timeout
    DEGRADED     → RECONNECTING  backoff scheduled
    RECONNECTING → LIVE          resubscribe succeeded
    RECONNECTING → RECONNECTING  resubscribe failed, attempts remain
    RECONNECTING → DEGRADED      attempts exhausted (terminal until reset)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionPhase(str, Enum):
    """Phase of the live-update subscription."""

    CONNECTING = "connecting"
    LIVE = "live"
    DEGRADED = "degraded"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """
    Snapshot of the connection state machine.

    Attributes:
        phase: Current phase
        attempt: Reconnect attempts made since the last LIVE phase
        next_retry_at: UNIX timestamp of the scheduled retry, if any
        exhausted: True once max retries were used up
    """

    phase: ConnectionPhase = ConnectionPhase.CONNECTING
    attempt: int = 0
    next_retry_at: Optional[float] = None
    exhausted: bool = False

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.attempt < 0:
            raise ValueError("attempt must be non-negative")

    @property
    def is_live(self) -> bool:
        return self.phase is ConnectionPhase.LIVE

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "phase": self.phase.value,
            "attempt": self.attempt,
            "next_retry_at": self.next_retry_at,
            "exhausted": self.exhausted,
        }
