"""
Test Configuration
==================

Pytest fixtures and fake collaborators for the venue-capacity engine.
"""

import asyncio
import itertools
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
import requests

from venue_capacity.alerts.sink import InMemoryAlertSink
from venue_capacity.config import Settings
from venue_capacity.errors import CapacityUnavailable, TransientFetchError
from venue_capacity.models.sample import Sample


T0 = 1_770_000_000.0


def make_samples(
    counts: Sequence[int],
    start: float = T0,
    step_seconds: float = 60.0,
) -> List[Sample]:
    """Evenly spaced samples, oldest first."""
    return [
        Sample(timestamp=start + i * step_seconds, count=count)
        for i, count in enumerate(counts)
    ]


# =============================================================================
# Fakes
# =============================================================================

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLiveSource:
    """
    In-process live source.

    ``fail_next`` makes that many subscribe calls fail; ``always_fail``
    makes every call fail until cleared.
    """

    def __init__(self, fail_next: int = 0, always_fail: bool = False) -> None:
        self.fail_next = fail_next
        self.always_fail = always_fail
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0
        self.subscriptions: Dict[int, Tuple[str, Callable, Callable]] = {}
        self._ids = itertools.count(1)

    async def subscribe(self, entity_id, on_sample, on_error) -> int:
        self.subscribe_calls += 1
        if self.always_fail or self.fail_next > 0:
            self.fail_next = max(0, self.fail_next - 1)
            raise TransientFetchError("connection refused")
        handle = next(self._ids)
        self.subscriptions[handle] = (entity_id, on_sample, on_error)
        return handle

    async def unsubscribe(self, handle: int) -> None:
        self.unsubscribe_calls += 1
        self.subscriptions.pop(handle, None)

    def push(self, sample: Sample) -> None:
        for _, on_sample, _ in list(self.subscriptions.values()):
            on_sample(sample)

    def break_connection(self) -> None:
        for _, _, on_error in list(self.subscriptions.values()):
            on_error(TransientFetchError("socket closed"))


class FakePullSource:
    """Pull source returning queued results (Sample, None or an exception)."""

    def __init__(self, results: Optional[List[Any]] = None) -> None:
        self.results = list(results or [])
        self.calls = 0

    async def fetch_latest(self, entity_id: str) -> Optional[Sample]:
        self.calls += 1
        if not self.results:
            return None
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeCapacitySource:
    """Capacity source returning a fixed value, or raising when None."""

    def __init__(self, expected_max: Optional[int] = 1000) -> None:
        self.expected_max = expected_max
        self.calls = 0

    async def fetch_expected_max(self, entity_id: str) -> int:
        self.calls += 1
        if self.expected_max is None:
            raise CapacityUnavailable(f"No expected capacity for {entity_id}")
        return self.expected_max


class RecordingPoller:
    """Stands in for FallbackPoller where only mode switches matter."""

    def __init__(self) -> None:
        self.calls: List[str] = []

    def activate(self, immediate: bool = True) -> None:
        self.calls.append("activate")

    def relax(self) -> None:
        self.calls.append("relax")


class FakeWebSocket:
    """
    Async-iterable websocket yielding canned messages.

    After the messages it raises ``end`` (if given), or stays open until
    cancelled when ``hold_open`` is set.
    """

    def __init__(
        self,
        messages: Sequence[str] = (),
        end: Optional[BaseException] = None,
        hold_open: bool = False,
    ) -> None:
        self.messages = list(messages)
        self.end = end
        self.hold_open = hold_open
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.hold_open:
            await asyncio.Event().wait()
        if self.end is not None:
            raise self.end

    async def close(self) -> None:
        self.closed = True


class FakeRequestsResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeRequestsSession:
    """requests.Session replacement returning canned responses."""

    def __init__(self, response: Any) -> None:
        self.response = response
        self.urls: List[str] = []
        self.closed = False

    def get(self, url: str, timeout: float = None) -> FakeRequestsResponse:
        self.urls.append(url)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def sink():
    """Provide an in-memory alert sink."""
    return InMemoryAlertSink()


@pytest.fixture
def fast_settings():
    """Settings with short delays so reconnect and poll tests run quickly."""
    return Settings.model_validate({
        "connection": {
            "base_delay_seconds": 0.01,
            "max_delay_seconds": 0.05,
            "max_jitter_seconds": 0.0,
            "max_retries": 3,
        },
        "poller": {
            "fallback_interval_seconds": 10.0,
            "safety_interval_seconds": None,
        },
    })


@pytest.fixture
def live_source():
    """Provide a fake live source."""
    return FakeLiveSource()


@pytest.fixture
def pull_source():
    """Provide a fake pull source."""
    return FakePullSource()


@pytest.fixture
def capacity_source():
    """Provide a capacity source reporting 1000."""
    return FakeCapacitySource(1000)
