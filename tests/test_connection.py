"""Unit tests for ConnectionManager.

Tests the transport state machine:
- Open / message / error / close handling
- Single reconnect timer per disconnection
- Malformed frame isolation
- Degraded sensor signalling
"""

import asyncio
import contextlib
import json
from types import SimpleNamespace

import aiohttp
import pytest

from dgx_dashboard_client.connection import (
    Closed,
    ConnectionManager,
    ConnectionState,
    Errored,
    Opened,
    SnapshotReceived,
    SourceDegraded,
    TransportError,
    build_ws_url,
)
from dgx_dashboard_client.protocol import DockerCommand, ProtocolError


class FakeWebSocket:
    """Scripted websocket fed by the test."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.sent: list[dict] = []
        self.fail_send = False
        self.close_calls = 0

    def feed(self, data: str) -> None:
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data))

    def feed_error(self) -> None:
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=None))

    def finish(self) -> None:
        self._queue.put_nowait(None)

    async def send_json(self, data) -> None:
        if self.fail_send:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent.append(data)

    def exception(self):
        return None

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is None:
            self.closed = True
            raise StopAsyncIteration
        return item


class FakeTransport:
    """Transport factory handing out FakeWebSockets."""

    def __init__(self, *, failures: int = 0) -> None:
        self.failures = failures
        self.urls: list[str] = []
        self.sockets: list[FakeWebSocket] = []

    @contextlib.asynccontextmanager
    async def __call__(self, url: str):
        self.urls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise aiohttp.ClientConnectionError("Connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        try:
            yield ws
        finally:
            ws.closed = True


class Recorder:
    def __init__(self) -> None:
        self.events: list = []

    async def __call__(self, event) -> None:
        self.events.append(event)

    def of_type(self, kind):
        return [event for event in self.events if isinstance(event, kind)]


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


@pytest.fixture
def manager_setup():
    def _create(*, failures: int = 0, delay: float = 0.05, subscriber=None):
        transport = FakeTransport(failures=failures)
        recorder = Recorder()
        manager = ConnectionManager(
            "ws://dashboard.local/ws",
            subscriber or recorder,
            reconnect_delay=delay,
            transport_factory=transport,
        )
        return manager, transport, recorder

    return _create


@pytest.mark.parametrize(
    ("origin", "expected"),
    [
        ("http://dgx.local:8080", "ws://dgx.local:8080/ws"),
        ("https://dgx.example.com", "wss://dgx.example.com/ws"),
        ("https://dgx.example.com/dashboard/", "wss://dgx.example.com/dashboard/ws"),
    ],
)
def test_build_ws_url_mirrors_page_security(origin, expected):
    assert build_ws_url(origin) == expected


def test_connection_state_enum_values():
    assert ConnectionState.DISCONNECTED.value == "disconnected"
    assert ConnectionState.CONNECTING.value == "connecting"
    assert ConnectionState.CONNECTED.value == "connected"
    assert ConnectionState.RECONNECTING.value == "reconnecting"


@pytest.mark.asyncio
async def test_initial_state_is_disconnected(manager_setup):
    manager, _, _ = manager_setup()

    assert manager.state == ConnectionState.DISCONNECTED
    assert manager.is_connected is False
    assert manager.degraded is False


@pytest.mark.asyncio
async def test_connect_opens_transport(manager_setup):
    manager, transport, recorder = manager_setup()

    assert manager.connect() is True
    assert manager.state == ConnectionState.CONNECTING

    await _wait_for(lambda: manager.is_connected)

    assert transport.urls == ["ws://dashboard.local/ws"]
    assert len(recorder.of_type(Opened)) == 1
    assert recorder.events[0].status == "Connected"
    await manager.close()


@pytest.mark.asyncio
async def test_connect_is_noop_while_connecting_or_connected(manager_setup):
    manager, transport, _ = manager_setup()

    manager.connect()
    assert manager.connect() is False

    await _wait_for(lambda: manager.is_connected)
    assert manager.connect() is False
    assert len(transport.urls) == 1
    await manager.close()


@pytest.mark.asyncio
async def test_snapshots_are_forwarded_in_order(manager_setup, payload_factory):
    manager, transport, recorder = manager_setup()
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    ws = transport.sockets[0]
    for usage in (1.0, 2.0, 3.0):
        ws.feed(json.dumps(payload_factory(cpu={"usagePercent": usage})))

    await _wait_for(lambda: len(recorder.of_type(SnapshotReceived)) == 3)

    usages = [event.snapshot.cpu.usage_percent for event in recorder.of_type(SnapshotReceived)]
    assert usages == [1.0, 2.0, 3.0]
    await manager.close()


@pytest.mark.asyncio
async def test_malformed_frame_is_discarded_and_connection_stays_open(
    manager_setup, payload_factory
):
    manager, transport, recorder = manager_setup()
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    ws = transport.sockets[0]
    ws.feed("{not json")
    ws.feed(json.dumps({"cpu": {}}))
    ws.feed(json.dumps(payload_factory()))

    await _wait_for(lambda: len(recorder.of_type(SnapshotReceived)) == 1)

    assert manager.state == ConnectionState.CONNECTED
    assert recorder.of_type(Closed) == []
    assert recorder.of_type(Errored) == []
    await manager.close()


@pytest.mark.asyncio
async def test_on_message_propagates_protocol_error(manager_setup):
    manager, _, recorder = manager_setup()

    with pytest.raises(ProtocolError):
        await manager.on_message("[]")

    assert recorder.events == []


@pytest.mark.asyncio
async def test_missing_gpu_raises_degraded_signal(manager_setup, payload_factory):
    manager, _, recorder = manager_setup()

    await manager.on_message(json.dumps(payload_factory(gpu=False)))

    assert manager.degraded is True
    assert [type(event) for event in recorder.events] == [SourceDegraded, SnapshotReceived]
    assert manager.state == ConnectionState.DISCONNECTED

    await manager.on_message(json.dumps(payload_factory()))

    assert manager.degraded is False
    assert len(recorder.of_type(SourceDegraded)) == 1


@pytest.mark.asyncio
async def test_error_does_not_change_state(manager_setup):
    manager, _, recorder = manager_setup()
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    await manager.on_error(RuntimeError("boom"))

    assert manager.state == ConnectionState.CONNECTED
    errored = recorder.of_type(Errored)
    assert len(errored) == 1
    assert isinstance(errored[0].error, TransportError)
    assert errored[0].status == "Error"
    await manager.close()


@pytest.mark.asyncio
async def test_close_schedules_reconnect(manager_setup):
    manager, transport, recorder = manager_setup(delay=0.05)
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    transport.sockets[0].finish()
    await _wait_for(lambda: manager.state == ConnectionState.RECONNECTING)

    assert manager.reconnect_pending is True
    closed = recorder.of_type(Closed)
    assert len(closed) == 1
    assert closed[0].status == "Disconnected - Reconnecting..."

    await _wait_for(lambda: len(transport.sockets) == 2 and manager.is_connected)
    assert manager.reconnect_pending is False
    await manager.close()


@pytest.mark.asyncio
async def test_exactly_one_reconnect_per_close_window(manager_setup, monkeypatch):
    manager, _, recorder = manager_setup(delay=0.05)
    calls: list[int] = []
    monkeypatch.setattr(manager, "connect", lambda: calls.append(1) or True)

    await manager.on_close()
    await manager.on_error(RuntimeError("late error"))
    await manager.on_close()
    await manager.on_close()

    assert calls == []
    await asyncio.sleep(0.15)

    assert calls == [1]
    assert len(recorder.of_type(Closed)) == 1


@pytest.mark.asyncio
async def test_failed_connect_reports_error_and_retries(manager_setup):
    manager, transport, recorder = manager_setup(failures=2, delay=0.02)

    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    assert len(transport.urls) == 3
    assert len(recorder.of_type(Errored)) == 2
    assert len(recorder.of_type(Closed)) == 2
    assert isinstance(recorder.events[-1], Opened)
    await manager.close()


@pytest.mark.asyncio
async def test_websocket_error_frame_closes_and_retries(manager_setup):
    manager, transport, recorder = manager_setup(delay=0.02)
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    transport.sockets[0].feed_error()

    await _wait_for(lambda: len(transport.sockets) == 2 and manager.is_connected)
    kinds = [type(event) for event in recorder.events]
    assert kinds[:3] == [Opened, Errored, Closed]
    await manager.close()


@pytest.mark.asyncio
async def test_send_is_dropped_while_disconnected(manager_setup):
    manager, transport, _ = manager_setup()

    assert await manager.send(DockerCommand.STOP, "abc") is False
    assert transport.sockets == []


@pytest.mark.asyncio
async def test_send_writes_command_frame(manager_setup):
    manager, transport, _ = manager_setup()
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    assert await manager.send("docker-restart", "abc") is True
    assert transport.sockets[0].sent == [{"command": "docker-restart", "id": "abc"}]
    await manager.close()


@pytest.mark.asyncio
async def test_send_failure_is_reported_not_raised(manager_setup):
    manager, transport, recorder = manager_setup()
    manager.connect()
    await _wait_for(lambda: manager.is_connected)
    transport.sockets[0].fail_send = True

    assert await manager.send(DockerCommand.START, "abc") is False
    assert len(recorder.of_type(Errored)) == 1
    await manager.close()


@pytest.mark.asyncio
async def test_close_stops_reconnecting(manager_setup):
    manager, transport, _ = manager_setup(delay=0.02)
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    await manager.close()
    await asyncio.sleep(0.1)

    assert manager.state == ConnectionState.DISCONNECTED
    assert manager.reconnect_pending is False
    assert len(transport.urls) == 1


@pytest.mark.asyncio
async def test_subscriber_failure_does_not_break_stream(manager_setup, payload_factory):
    received: list = []

    def flaky(event) -> None:
        received.append(event)
        if isinstance(event, Opened):
            raise RuntimeError("presenter exploded")

    manager, transport, _ = manager_setup(subscriber=flaky)
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    transport.sockets[0].feed(json.dumps(payload_factory()))
    await _wait_for(lambda: any(isinstance(event, SnapshotReceived) for event in received))

    assert manager.is_connected
    await manager.close()


@pytest.mark.asyncio
async def test_non_finite_reading_is_discarded(manager_setup, payload_factory):
    manager, transport, recorder = manager_setup()
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    poisoned = payload_factory(memory={"usedKB": float("inf"), "totalKB": 128_400_000})
    ws = transport.sockets[0]
    ws.feed(json.dumps(poisoned))
    ws.feed(json.dumps(payload_factory()))

    await _wait_for(lambda: len(recorder.of_type(SnapshotReceived)) == 1)

    assert manager.is_connected
    assert recorder.of_type(Closed) == []
    assert await manager.send(DockerCommand.START, "abc") is True
    await manager.close()


@pytest.mark.asyncio
async def test_unexpected_reader_failure_still_reconnects(manager_setup, monkeypatch):
    manager, transport, recorder = manager_setup(delay=0.02)
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    async def explode(raw):
        raise LookupError("subscriber bookkeeping broke")

    monkeypatch.setattr(manager, "on_message", explode)
    transport.sockets[0].feed("{}")

    await _wait_for(lambda: len(transport.sockets) == 2 and manager.is_connected)

    kinds = [type(event) for event in recorder.events]
    assert kinds[:3] == [Opened, Errored, Closed]
    await manager.close()


@pytest.mark.asyncio
async def test_close_shuts_an_open_websocket():
    ws = FakeWebSocket()

    @contextlib.asynccontextmanager
    async def leaky_transport(url: str):
        yield ws

    manager = ConnectionManager(
        "ws://dashboard.local/ws", Recorder(), transport_factory=leaky_transport
    )
    manager.connect()
    await _wait_for(lambda: manager.is_connected)

    await manager.close()

    assert ws.close_calls == 1
    assert manager.state == ConnectionState.DISCONNECTED
