"""Websocket lifecycle and reconnection management.

The manager owns the single transport to the dashboard server. Transport
callbacks (open, message, error, close) are turned into typed events and
delivered, in order, to one subscriber. A closed transport is always
retried after a fixed delay; the manager never gives up on its own.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Awaitable,
    Callable,
    ClassVar,
    Optional,
    Protocol,
    Union,
)
from urllib.parse import urlparse, urlunparse

import aiohttp

from . import constants
from .protocol import (
    DockerCommand,
    ProtocolError,
    TelemetrySnapshot,
    decode_snapshot,
    encode_command,
)

LOGGER = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when the websocket cannot be opened, read or written."""


class ConnectionState(str, Enum):
    """Current state of the websocket connection."""

    DISCONNECTED = "disconnected"
    """No transport and no reconnect scheduled."""

    CONNECTING = "connecting"
    """Transport is being opened."""

    CONNECTED = "connected"
    """Transport is open and frames are flowing."""

    RECONNECTING = "reconnecting"
    """Transport closed; a reconnect is scheduled."""


@dataclass(frozen=True, slots=True)
class Opened:
    status: ClassVar[str] = "Connected"


@dataclass(frozen=True, slots=True)
class SnapshotReceived:
    snapshot: TelemetrySnapshot


@dataclass(frozen=True, slots=True)
class SourceDegraded:
    """The snapshot carried no GPU section: the sensor reader is failing."""

    snapshot: TelemetrySnapshot


@dataclass(frozen=True, slots=True)
class Errored:
    error: TransportError
    status: ClassVar[str] = "Error"


@dataclass(frozen=True, slots=True)
class Closed:
    status: ClassVar[str] = "Disconnected - Reconnecting..."


ConnectionEvent = Union[Opened, SnapshotReceived, SourceDegraded, Errored, Closed]
EventSubscriber = Callable[[ConnectionEvent], Union[Awaitable[None], None]]


class WebSocketLike(Protocol):
    """The subset of ``aiohttp.ClientWebSocketResponse`` the manager uses."""

    @property
    def closed(self) -> bool: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self) -> Any: ...

    def exception(self) -> Optional[BaseException]: ...

    def __aiter__(self) -> AsyncIterator[aiohttp.WSMessage]: ...


TransportFactory = Callable[[str], AsyncContextManager[WebSocketLike]]


def build_ws_url(origin: str) -> str:
    """Derive the telemetry websocket URL from the dashboard's origin."""

    parsed = urlparse(origin)
    scheme = "wss" if parsed.scheme in ("https", "wss") else "ws"
    path = parsed.path.rstrip("/") + constants.WEBSOCKET_PATH
    return urlunparse((scheme, parsed.netloc, path, "", "", ""))


class ConnectionManager:
    """Owns ``ConnectionState`` and the live transport handle.

    Key behaviours:
    - ``connect()`` only acts from DISCONNECTED or RECONNECTING
    - a close schedules exactly one reconnect; further closes while it is
      pending are ignored
    - errors are reported but never change state
    - ``send()`` drops frames unless CONNECTED
    """

    def __init__(
        self,
        url: str,
        subscriber: EventSubscriber,
        *,
        reconnect_delay: float = constants.DEFAULT_RECONNECT_DELAY_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self._url = url
        self._subscriber = subscriber
        self._reconnect_delay = reconnect_delay
        self._session = session
        self._owns_session = session is None
        self._transport_factory = transport_factory

        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[WebSocketLike] = None
        self._transport_task: Optional[asyncio.Task[None]] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._degraded = False
        self._stopping = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def degraded(self) -> bool:
        """Whether the most recent snapshot lacked GPU data."""
        return self._degraded

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> bool:
        """Start opening the transport.

        Returns False without side effects when a transport is already
        being opened or is open.
        """

        if self._state not in (ConnectionState.DISCONNECTED, ConnectionState.RECONNECTING):
            LOGGER.debug("connect() ignored in state %s", self._state.value)
            return False

        self._stopping = False
        self._cancel_reconnect()
        self._state = ConnectionState.CONNECTING
        LOGGER.info("Connecting to %s", self._url)
        self._transport_task = asyncio.get_running_loop().create_task(
            self._run_transport()
        )
        return True

    async def close(self) -> None:
        """Tear the manager down for shutdown; no reconnect follows."""

        self._stopping = True
        self._cancel_reconnect()
        ws = self._ws

        task = self._transport_task
        self._transport_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._ws = None
        if ws is not None and not ws.closed:
            with contextlib.suppress(aiohttp.ClientError, OSError, RuntimeError):
                await ws.close()

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

        self._state = ConnectionState.DISCONNECTED
        LOGGER.info("Connection manager closed")

    async def send(self, command: DockerCommand | str, container_id: str) -> bool:
        """Send a command frame; returns False when the frame was dropped."""

        frame = encode_command(command, container_id)
        ws = self._ws
        if self._state != ConnectionState.CONNECTED or ws is None or ws.closed:
            LOGGER.debug(
                "Dropping %s for %s: not connected (state=%s)",
                frame["command"],
                container_id,
                self._state.value,
            )
            return False

        try:
            await ws.send_json(frame)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, OSError, RuntimeError) as exc:
            await self.on_error(TransportError(f"Failed to send {frame['command']}: {exc}"))
            return False

        LOGGER.info("Sent %s for container %s", frame["command"], container_id)
        return True

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------
    async def on_open(self, ws: WebSocketLike) -> None:
        self._ws = ws
        self._state = ConnectionState.CONNECTED
        LOGGER.info("Connected to %s", self._url)
        await self._emit(Opened())

    async def on_message(self, raw: Union[str, bytes]) -> TelemetrySnapshot:
        """Decode and forward one frame.

        Raises:
            ProtocolError: If the frame is not a valid snapshot. The
                connection is unaffected.
        """

        snapshot = decode_snapshot(raw)
        if snapshot.gpu is None:
            if not self._degraded:
                LOGGER.error("Snapshot without GPU data; sensor reader has failed repeatedly")
            self._degraded = True
            await self._emit(SourceDegraded(snapshot))
        elif self._degraded:
            LOGGER.info("GPU data is back")
            self._degraded = False

        await self._emit(SnapshotReceived(snapshot))
        return snapshot

    async def on_error(self, error: BaseException) -> None:
        if not isinstance(error, TransportError):
            error = TransportError(str(error) or type(error).__name__)
        LOGGER.warning("Websocket error: %s", error)
        await self._emit(Errored(error))

    async def on_close(self) -> None:
        self._ws = None

        if self._stopping:
            self._state = ConnectionState.DISCONNECTED
            return

        if self._state == ConnectionState.RECONNECTING and self._reconnect_handle is not None:
            LOGGER.debug("Close ignored; reconnect already scheduled")
            return

        self._state = ConnectionState.RECONNECTING
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._reconnect_delay, self._fire_reconnect)
        LOGGER.warning(
            "Disconnected from %s; reconnecting in %.1fs", self._url, self._reconnect_delay
        )
        await self._emit(Closed())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    def _open_transport(self) -> AsyncContextManager[WebSocketLike]:
        if self._transport_factory is not None:
            return self._transport_factory(self._url)
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session.ws_connect(self._url)

    async def _run_transport(self) -> None:
        try:
            async with self._open_transport() as ws:
                await self.on_open(ws)
                async for message in ws:
                    if message.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                        await self._receive_frame(message.data)
                    elif message.type == aiohttp.WSMsgType.ERROR:
                        raise TransportError(str(ws.exception() or "websocket error"))
        except asyncio.CancelledError:
            raise
        except (TransportError, aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            await self.on_error(exc)
        except Exception as exc:
            LOGGER.exception("Websocket reader failed unexpectedly")
            await self.on_error(exc)
        finally:
            # close() sets _stopping before cancelling, so shutdown schedules nothing
            await self.on_close()

    async def _receive_frame(self, raw: Union[str, bytes]) -> None:
        try:
            await self.on_message(raw)
        except ProtocolError as exc:
            LOGGER.warning("Discarding malformed frame: %s", exc)

    async def _emit(self, event: ConnectionEvent) -> None:
        try:
            result = self._subscriber(event)
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Connection subscriber failed on %s", type(event).__name__)
