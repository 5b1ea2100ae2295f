"""
Error Taxonomy
==============

Exceptions raised and handled inside the occupancy engine.

Handling Policy:
    - TransientFetchError: retried silently (backoff or next poll tick)
    - CapacityUnavailable: engine falls back to the default capacity
    - ReconnectExhausted: surfaced once as a persistent failure alert
    - InvalidCapacity: configuration error, rejected at input validation
"""


class VenueCapacityError(Exception):
    """Base class for all engine errors."""
    pass


class TransientFetchError(VenueCapacityError):
    """A push or pull source failed once. Safe to retry."""
    pass


class CapacityUnavailable(VenueCapacityError):
    """Expected maximum attendance could not be obtained for an entity."""
    pass


class ReconnectExhausted(VenueCapacityError):
    """Maximum reconnect attempts reached; no further automatic retries."""

    def __init__(self, entity_id: str, attempts: int) -> None:
        super().__init__(
            f"Live updates for {entity_id} unavailable after {attempts} attempts"
        )
        self.entity_id = entity_id
        self.attempts = attempts


class InvalidCapacity(VenueCapacityError, ValueError):
    """expected_max must be a positive integer."""

    def __init__(self, expected_max: object) -> None:
        super().__init__(f"expected_max must be > 0, got {expected_max!r}")
        self.expected_max = expected_max


def validate_capacity(expected_max: int) -> int:
    """Return expected_max unchanged, or raise InvalidCapacity."""
    if isinstance(expected_max, bool) or not isinstance(expected_max, (int, float)):
        raise InvalidCapacity(expected_max)
    if expected_max <= 0:
        raise InvalidCapacity(expected_max)
    return int(expected_max)
