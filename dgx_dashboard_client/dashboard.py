"""Dashboard session: wires the transport, the store, the tracker and the presenter."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Callable, Optional

import aiohttp

from .actions import confirmation_prompt, requires_confirmation
from .config import DashboardConfig, load_config
from .connection import (
    Closed,
    ConnectionEvent,
    ConnectionManager,
    Errored,
    Opened,
    SnapshotReceived,
    SourceDegraded,
    TransportFactory,
    build_ws_url,
)
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .presenter import LoggingPresenter, Presenter
from .protocol import DockerCommand
from .store import TelemetryStore
from .thresholds import GaugeStyle, Thresholds
from .tracker import CommandTracker
from .view import DashboardView, PresenterOptions, build_view

LOGGER = logging.getLogger(__name__)

INITIAL_STATUS = "Connecting..."


def presenter_options(config: DashboardConfig) -> PresenterOptions:
    presenter = config.presenter
    return PresenterOptions(
        gauge_style=GaugeStyle(presenter.gauge_style),
        thresholds=Thresholds(warn=presenter.warn_ratio, danger=presenter.danger_ratio),
        show_progress_bar=presenter.show_progress_bar,
        confirm_destructive=config.commands.confirm_destructive,
        degraded_message=presenter.degraded_message,
        protected_marker=presenter.protected_marker,
    )


class DashboardSession:
    """One running dashboard.

    Every snapshot is applied to the store, then reconciled against the
    pending commands, then rendered, in that order. Outbound commands go
    the other way: confirmation, optimistic registration, then send.
    """

    def __init__(
        self,
        config: Optional[DashboardConfig] = None,
        *,
        presenter: Optional[Presenter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        transport_factory: Optional[TransportFactory] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._config = config or load_config()
        self._options = presenter_options(self._config)
        self._presenter: Presenter = presenter or LoggingPresenter()
        self._store = TelemetryStore(history_size=self._config.history.size)
        self._tracker = CommandTracker(
            timeout_seconds=self._config.commands.pending_timeout_seconds,
            clock=clock,
        )
        self._connection = ConnectionManager(
            build_ws_url(self._config.server.url),
            self._handle_event,
            reconnect_delay=self._config.connection.reconnect_delay_seconds,
            session=session,
            transport_factory=transport_factory,
        )
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._status_text = INITIAL_STATUS
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def store(self) -> TelemetryStore:
        return self._store

    @property
    def tracker(self) -> CommandTracker:
        return self._tracker

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def health(self) -> HealthReporter:
        return self._health

    @property
    def health_server(self) -> Optional[HealthServer]:
        return self._health_server

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def options(self) -> PresenterOptions:
        return self._options

    def view(self) -> DashboardView:
        return build_view(
            self._store,
            self._tracker,
            self._options,
            status_text=self._status_text,
            degraded=self._connection.degraded,
        )

    async def render(self) -> None:
        result = self._presenter.render(self.view())
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        health = self._config.health
        if health.enabled:
            self._health_server = HealthServer(self._health, health.host, health.port)
            await self._health_server.start()

        self._connection.connect()
        self._health.record_connection(self._connection.state, INITIAL_STATUS)
        await self.render()

    async def stop(self) -> None:
        await self._connection.close()
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> None:
        """Run until ``stop()`` is called or the task is cancelled."""

        self._stop_event = asyncio.Event()
        LOGGER.info("Dashboard client starting against %s", self._connection.url)
        await self.start()
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("Dashboard client received shutdown signal")
            raise
        finally:
            await self.stop()

    @classmethod
    def start_blocking(cls, config: Optional[DashboardConfig] = None) -> None:
        config = config or load_config()
        configure_logging(
            config.logging.level,
            log_path=config.logging.path,
            log_network=config.logging.log_network,
        )
        instance = cls(config)
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("Dashboard client received shutdown signal")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def request_command(self, container_id: str, command: DockerCommand | str) -> bool:
        """Ask the server to run ``command`` against ``container_id``.

        Returns True when the command was sent. Commands are dropped while
        disconnected and when the operator declines confirmation.
        """

        resolved = DockerCommand(command)
        if not self._connection.is_connected:
            LOGGER.info("Not connected; dropping %s for %s", resolved.value, container_id)
            return False

        snapshot = self._store.latest
        container = snapshot.container(container_id) if snapshot is not None else None
        was_running = container.is_running if container is not None else False

        if self._options.confirm_destructive and requires_confirmation(resolved, was_running):
            answer = self._presenter.confirm(confirmation_prompt(resolved))
            if inspect.isawaitable(answer):
                answer = await answer
            if not answer:
                LOGGER.info("Operator declined %s for %s", resolved.value, container_id)
                return False
            # the connection may have dropped while the prompt was open
            if not self._connection.is_connected:
                return False

        self._tracker.register(container_id, resolved, was_running)
        sent = await self._connection.send(resolved, container_id)
        if not sent:
            self._tracker.discard(container_id)
        await self.render()
        return sent

    # ------------------------------------------------------------------
    # Connection events
    # ------------------------------------------------------------------
    async def _handle_event(self, event: ConnectionEvent) -> None:
        if isinstance(event, SourceDegraded):
            # shown with the snapshot that follows
            return

        if isinstance(event, SnapshotReceived):
            snapshot = event.snapshot
            self._store.apply(snapshot)
            self._tracker.reconcile(snapshot.docker)
            self._health.record_snapshot(
                snapshot, degraded_message=self._options.degraded_message
            )
        elif isinstance(event, Errored):
            self._status_text = event.status
            self._health.record_connection(
                self._connection.state, f"{event.status}: {event.error}"
            )
        elif isinstance(event, (Opened, Closed)):
            self._status_text = event.status
            self._health.record_connection(self._connection.state, event.status)

        await self.render()
