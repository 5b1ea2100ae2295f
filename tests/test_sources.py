"""
Data Source Adapter Tests
=========================

Payload parsing, the WebSocket live source (websockets.connect patched)
and HTTP adapters (requests session faked).
"""

import asyncio
import json

import pytest
import requests
import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from venue_capacity.errors import CapacityUnavailable, TransientFetchError
from venue_capacity.stream.sources import (
    HttpCapacitySource,
    HttpPullSource,
    WebSocketLiveSource,
    sample_from_payload,
)

from conftest import T0, FakeRequestsResponse, FakeRequestsSession, FakeWebSocket


class TestSampleFromPayload:

    def test_bare_record(self):
        sample = sample_from_payload({"count": 12, "timestamp": 1000.0})
        assert (sample.timestamp, sample.count) == (1000.0, 12)

    def test_change_envelope(self):
        sample = sample_from_payload({"new": {"count": 5, "timestamp": 10}})
        assert sample.count == 5

    def test_list_takes_last(self):
        sample = sample_from_payload([
            {"count": 1, "timestamp": 1},
            {"count": 2, "timestamp": 2},
        ])
        assert sample.count == 2

    def test_null_and_empty(self):
        assert sample_from_payload(None) is None
        assert sample_from_payload([]) is None

    def test_malformed(self):
        with pytest.raises(KeyError):
            sample_from_payload({"timestamp": 1})
        with pytest.raises(TypeError):
            sample_from_payload("not a record")


class TestHttpPullSource:

    async def test_latest_sample(self):
        session = FakeRequestsSession(FakeRequestsResponse(200, {"count": 40, "timestamp": 100}))
        source = HttpPullSource("http://api/{entity_id}/latest", session=session)

        sample = await source.fetch_latest("event-42")

        assert sample.count == 40
        assert session.urls == ["http://api/event-42/latest"]

    async def test_not_found_is_no_data(self):
        source = HttpPullSource("http://api/{entity_id}", session=FakeRequestsSession(FakeRequestsResponse(404)))
        assert await source.fetch_latest("event-42") is None

    async def test_request_error_is_transient(self):
        session = FakeRequestsSession(requests.ConnectionError("refused"))
        source = HttpPullSource("http://api/{entity_id}", session=session)
        with pytest.raises(TransientFetchError):
            await source.fetch_latest("event-42")

    async def test_server_error_is_transient(self):
        source = HttpPullSource("http://api/{entity_id}", session=FakeRequestsSession(FakeRequestsResponse(503)))
        with pytest.raises(TransientFetchError):
            await source.fetch_latest("event-42")

    async def test_malformed_payload_is_transient(self):
        session = FakeRequestsSession(FakeRequestsResponse(200, {"count": "many", "timestamp": 1}))
        source = HttpPullSource("http://api/{entity_id}", session=session)
        with pytest.raises(TransientFetchError):
            await source.fetch_latest("event-42")

    def test_close(self):
        session = FakeRequestsSession(FakeRequestsResponse(200))
        HttpPullSource("http://api/{entity_id}", session=session).close()
        assert session.closed


class TestHttpCapacitySource:

    async def test_expected_max(self):
        session = FakeRequestsSession(FakeRequestsResponse(200, {"expected_max": 1500}))
        source = HttpCapacitySource("http://api/{entity_id}", session=session)
        assert await source.fetch_expected_max("event-42") == 1500

    async def test_expected_attendance_alias(self):
        session = FakeRequestsSession(FakeRequestsResponse(200, {"expected_attendance": "800"}))
        source = HttpCapacitySource("http://api/{entity_id}", session=session)
        assert await source.fetch_expected_max("event-42") == 800

    @pytest.mark.parametrize(
        "response",
        [
            FakeRequestsResponse(200, {}),
            FakeRequestsResponse(200, ["not", "a", "dict"]),
            FakeRequestsResponse(200, {"expected_max": "lots"}),
            FakeRequestsResponse(404),
            FakeRequestsResponse(200, ValueError("invalid json")),
            requests.Timeout("slow"),
        ],
    )
    async def test_unavailable(self, response):
        source = HttpCapacitySource("http://api/{entity_id}", session=FakeRequestsSession(response))
        with pytest.raises(CapacityUnavailable):
            await source.fetch_expected_max("event-42")


def row(count: int, offset: float = 0.0) -> str:
    return json.dumps({"timestamp": T0 + offset, "count": count})


@pytest.fixture
def connect(monkeypatch):
    """Install a fake websockets.connect; returns the list of opened URLs."""
    opened = []

    def install(websocket=None, error=None):
        async def fake_connect(url, **kwargs):
            opened.append(url)
            if error is not None:
                raise error
            return websocket

        monkeypatch.setattr(websockets, "connect", fake_connect)
        return opened

    return install


class TestWebSocketLiveSource:

    async def test_connect_failure_is_transient(self, connect):
        connect(error=OSError("connection refused"))
        source = WebSocketLiveSource("ws://stream/{entity_id}")

        with pytest.raises(TransientFetchError):
            await source.subscribe("event-42", lambda s: None, lambda e: None)

    async def test_connect_timeout_is_transient(self, connect):
        connect(error=asyncio.TimeoutError())
        source = WebSocketLiveSource("ws://stream/{entity_id}")

        with pytest.raises(TransientFetchError):
            await source.subscribe("event-42", lambda s: None, lambda e: None)

    async def test_normal_close_reports_error(self, connect):
        ws = FakeWebSocket([row(10)], end=ConnectionClosedOK(Close(1000, "bye"), Close(1000, "bye")))
        opened = connect(ws)
        source = WebSocketLiveSource("ws://stream/{entity_id}")
        received, errors = [], []

        handle = await source.subscribe("event-42", received.append, errors.append)
        await handle.task

        assert opened == ["ws://stream/event-42"]
        assert [s.count for s in received] == [10]
        assert len(errors) == 1
        assert isinstance(errors[0], TransientFetchError)
        assert source.metrics.disconnects == 1

    @pytest.mark.parametrize(
        "end",
        [
            ConnectionClosedError(Close(1011, "internal error"), None),
            OSError("connection reset"),
        ],
    )
    async def test_error_close_reports_error(self, connect, end):
        connect(FakeWebSocket([], end=end))
        source = WebSocketLiveSource("ws://stream/{entity_id}")
        errors = []

        handle = await source.subscribe("event-42", lambda s: None, errors.append)
        await handle.task

        assert len(errors) == 1
        assert source.metrics.disconnects == 1

    async def test_malformed_messages_skipped(self, connect):
        messages = ["not json", json.dumps({"timestamp": T0}), row(7, offset=60)]
        connect(FakeWebSocket(messages, hold_open=True))
        source = WebSocketLiveSource("ws://stream/{entity_id}")
        received, errors = [], []

        handle = await source.subscribe("event-42", received.append, errors.append)
        await asyncio.sleep(0.01)

        assert source.metrics.parse_errors == 2
        assert [s.count for s in received] == [7]
        assert not handle.task.done()
        assert errors == []
        await source.unsubscribe(handle)

    async def test_unsubscribe_does_not_report_error(self, connect):
        ws = FakeWebSocket([], hold_open=True)
        connect(ws)
        source = WebSocketLiveSource("ws://stream/{entity_id}")
        errors = []

        handle = await source.subscribe("event-42", lambda s: None, errors.append)
        await asyncio.sleep(0)
        await source.unsubscribe(handle)

        assert handle.task.cancelled()
        assert ws.closed
        assert errors == []
        assert source.metrics.disconnects == 0

    async def test_failing_handler_keeps_stream_open(self, connect):
        connect(FakeWebSocket([row(1), row(2, offset=60)], hold_open=True))
        source = WebSocketLiveSource("ws://stream/{entity_id}")
        received, errors = [], []

        def on_sample(sample):
            if sample.count == 1:
                raise KeyError("count")
            received.append(sample)

        handle = await source.subscribe("event-42", on_sample, errors.append)
        await asyncio.sleep(0.01)

        assert not handle.task.done()
        assert [s.count for s in received] == [2]
        assert source.metrics.callback_errors == 1
        assert source.metrics.to_dict()["samples_received"] == 2
        assert errors == []
        await source.unsubscribe(handle)
