"""
Data Sources
============

Contracts and adapters for the occupancy data collaborators.

Contracts:
    - LiveSource: push subscription (at-most-once, unordered, may go
      silent without an explicit error)
    - PullSource: request/response fetch of the latest sample
    - CapacitySource: expected maximum attendance per entity

Adapters:
    - WebSocketLiveSource: JSON row messages over a WebSocket
    - HttpPullSource: latest sample from an HTTP endpoint
    - HttpCapacitySource: expected capacity from an HTTP endpoint

Every transport failure is re-raised as TransientFetchError (or
CapacityUnavailable for the capacity source); raw library exceptions do
not leak into the engine.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import requests
import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from venue_capacity.errors import CapacityUnavailable, TransientFetchError
from venue_capacity.models.sample import Sample


logger = logging.getLogger(__name__)


SampleCallback = Callable[[Sample], None]
ErrorCallback = Callable[[Exception], None]


# =============================================================================
# Contracts
# =============================================================================

class LiveSource(Protocol):
    """Push-style subscription to row inserts/updates."""

    async def subscribe(
        self,
        entity_id: str,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> Any:
        """
        Start delivering samples for entity_id.

        Returns:
            Opaque subscription handle

        Raises:
            TransientFetchError: If the subscription cannot be opened
        """
        ...

    async def unsubscribe(self, handle: Any) -> None:
        ...


class PullSource(Protocol):
    """Request/response access to the latest sample."""

    async def fetch_latest(self, entity_id: str) -> Optional[Sample]:
        """
        Raises:
            TransientFetchError: On a failed request
        """
        ...


class CapacitySource(Protocol):
    """Expected capacity lookup."""

    async def fetch_expected_max(self, entity_id: str) -> int:
        """
        Raises:
            CapacityUnavailable: If no capacity is known for the entity
        """
        ...


def sample_from_payload(data: Any) -> Optional[Sample]:
    """
    Extract a Sample from a decoded row payload.

    Accepts a bare record, a change envelope (``{"new": {...}}`` or
    ``{"record": {...}}``), a list of records (last one wins) or null.

    Raises:
        KeyError, ValueError, TypeError: On malformed records
    """
    if data is None:
        return None
    if isinstance(data, list):
        return sample_from_payload(data[-1]) if data else None
    if isinstance(data, dict):
        record = data.get("new") or data.get("record") or data
        return Sample.from_record(record)
    raise TypeError(f"Unsupported payload type: {type(data).__name__}")


# =============================================================================
# WebSocket live source
# =============================================================================

@dataclass
class LiveSourceMetrics:
    """Metrics for WebSocketLiveSource observability."""

    samples_received: int = 0
    parse_errors: int = 0
    callback_errors: int = 0
    disconnects: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "samples_received": self.samples_received,
            "parse_errors": self.parse_errors,
            "callback_errors": self.callback_errors,
            "disconnects": self.disconnects,
        }


@dataclass
class WebSocketSubscription:
    """Handle returned by WebSocketLiveSource.subscribe."""

    entity_id: str
    websocket: Any
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class WebSocketLiveSource:
    """
    Live source reading JSON attendance rows from a WebSocket.

    Each message is one row (or change envelope) for the entity. The
    connection ending for any reason is reported through ``on_error``,
    since the engine must fall back to polling either way.

    Example:
        source = WebSocketLiveSource("ws://localhost:8000/ws/attendance/{entity_id}")
        handle = await source.subscribe("event-42", on_sample, on_error)
        ...
        await source.unsubscribe(handle)
    """

    def __init__(self, url_template: str, open_timeout: float = 10.0) -> None:
        self.url_template = url_template
        self.open_timeout = open_timeout
        self.metrics = LiveSourceMetrics()

    async def subscribe(
        self,
        entity_id: str,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> WebSocketSubscription:
        url = self.url_template.format(entity_id=entity_id)
        try:
            ws = await websockets.connect(
                url,
                open_timeout=self.open_timeout,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransientFetchError(f"Cannot subscribe to {url}: {e}") from e

        logger.info(f"Subscribed to live updates: {url}")
        handle = WebSocketSubscription(entity_id=entity_id, websocket=ws)
        handle.task = asyncio.create_task(
            self._consume(handle, on_sample, on_error),
            name=f"live_source:{entity_id}",
        )
        return handle

    async def unsubscribe(self, handle: WebSocketSubscription) -> None:
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
            try:
                await handle.task
            except asyncio.CancelledError:
                pass
        try:
            await handle.websocket.close()
        except (OSError, WebSocketException) as e:
            logger.debug(f"Error closing live subscription for {handle.entity_id}: {e}")

    async def _consume(
        self,
        handle: WebSocketSubscription,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> None:
        try:
            async for message in handle.websocket:
                sample = self._parse(message)
                if sample is None:
                    continue
                self.metrics.samples_received += 1
                try:
                    on_sample(sample)
                except Exception as e:
                    self.metrics.callback_errors += 1
                    logger.error(f"Live sample handler failed for {handle.entity_id}: {e}")
                    continue  # Drop this sample, keep the stream open
        except ConnectionClosedOK:
            logger.info(f"Live stream for {handle.entity_id} closed normally")
        except ConnectionClosed as e:
            logger.warning(f"Live stream for {handle.entity_id} closed with error: {e}")
        except OSError as e:
            logger.warning(f"Live stream for {handle.entity_id} failed: {e}")

        self.metrics.disconnects += 1
        on_error(TransientFetchError(f"Live stream for {handle.entity_id} ended"))

    def _parse(self, raw: Any) -> Optional[Sample]:
        try:
            return sample_from_payload(json.loads(raw))
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid live message: {e}")
            return None


# =============================================================================
# HTTP pull sources
# =============================================================================

class HttpPullSource:
    """
    Pull source fetching the latest sample over HTTP.

    requests is blocking, so each fetch runs in a worker thread.
    A 404 or a null body means "no data yet".
    """

    def __init__(
        self,
        url_template: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self._session = session or requests.Session()

    async def fetch_latest(self, entity_id: str) -> Optional[Sample]:
        return await asyncio.to_thread(self._fetch, entity_id)

    def _fetch(self, entity_id: str) -> Optional[Sample]:
        url = self.url_template.format(entity_id=entity_id)
        try:
            response = self._session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return sample_from_payload(response.json())
        except requests.RequestException as e:
            raise TransientFetchError(f"Fetch failed for {url}: {e}") from e
        except (KeyError, ValueError, TypeError) as e:
            raise TransientFetchError(f"Malformed sample from {url}: {e}") from e

    def close(self) -> None:
        self._session.close()


class HttpCapacitySource:
    """
    Capacity source reading ``expected_max`` (or ``expected_attendance``)
    from an HTTP endpoint.
    """

    def __init__(
        self,
        url_template: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self._session = session or requests.Session()

    async def fetch_expected_max(self, entity_id: str) -> int:
        return await asyncio.to_thread(self._fetch, entity_id)

    def _fetch(self, entity_id: str) -> int:
        url = self.url_template.format(entity_id=entity_id)
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json() or {}
        except (requests.RequestException, ValueError) as e:
            raise CapacityUnavailable(f"Capacity lookup failed for {entity_id}: {e}") from e

        if not isinstance(data, dict):
            raise CapacityUnavailable(f"Unexpected capacity payload for {entity_id}")

        value = data.get("expected_max") or data.get("expected_attendance")
        if value is None:
            raise CapacityUnavailable(f"No expected capacity for {entity_id}")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise CapacityUnavailable(f"Invalid capacity for {entity_id}: {value!r}") from e

    def close(self) -> None:
        self._session.close()
