"""Health reporting for the dashboard client.

The websocket link and the server's GPU sensor reader fail independently:
a live connection carrying GPU-less snapshots is still degraded, and a
dropped connection says nothing about the sensors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from aiohttp import web

from .connection import ConnectionState
from .protocol import TelemetrySnapshot

LOGGER = logging.getLogger(__name__)


class HealthComponent(str, Enum):
    CONNECTION = "connection"
    SENSORS = "sensors"


@dataclass(frozen=True, slots=True)
class ComponentHealth:
    healthy: bool
    detail: Optional[str]
    since: datetime

    def as_dict(self) -> Dict[str, object]:
        return {
            "healthy": self.healthy,
            "detail": self.detail,
            "since": self.since.isoformat(timespec="seconds"),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthReporter:
    """Folds connection state and snapshot contents into a health payload."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        now = self._clock()
        self._components: Dict[HealthComponent, ComponentHealth] = {
            HealthComponent.CONNECTION: ComponentHealth(False, None, now),
            HealthComponent.SENSORS: ComponentHealth(True, None, now),
        }
        self._connection_state = ConnectionState.DISCONNECTED
        self._samples = 0
        self._last_snapshot_at: Optional[datetime] = None

    @property
    def healthy(self) -> bool:
        return all(status.healthy for status in self._components.values())

    def component(self, component: HealthComponent) -> ComponentHealth:
        return self._components[component]

    def record_connection(self, state: ConnectionState, status_text: str) -> None:
        self._connection_state = state
        self._set(HealthComponent.CONNECTION, state is ConnectionState.CONNECTED, status_text)

    def record_snapshot(self, snapshot: TelemetrySnapshot, *, degraded_message: str) -> None:
        self._samples += 1
        self._last_snapshot_at = self._clock()
        if snapshot.gpu is None:
            self._set(HealthComponent.SENSORS, False, degraded_message)
        else:
            self._set(HealthComponent.SENSORS, True, None)

    def snapshot(self) -> Dict[str, object]:
        last = self._last_snapshot_at
        return {
            "status": "ok" if self.healthy else "degraded",
            "connection": {
                "state": self._connection_state.value,
                **self._components[HealthComponent.CONNECTION].as_dict(),
            },
            "sensors": self._components[HealthComponent.SENSORS].as_dict(),
            "samples": self._samples,
            "lastSnapshotAt": last.isoformat(timespec="seconds") if last else None,
        }

    def _set(self, component: HealthComponent, healthy: bool, detail: Optional[str]) -> None:
        previous = self._components[component]
        # an unchanged report keeps its original "since"
        if previous.healthy == healthy and previous.detail == detail:
            return
        self._components[component] = ComponentHealth(healthy, detail, self._clock())
        LOGGER.debug(
            "%s is now %s (%s)",
            component.value,
            "healthy" if healthy else "unhealthy",
            detail or "no detail",
        )


class HealthServer:
    """Serves ``GET /healthz``: 200 while every component is healthy, else 503."""

    def __init__(self, reporter: HealthReporter, host: str = "127.0.0.1", port: int = 0) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    @property
    def port(self) -> Optional[int]:
        """Bound port; differs from the configured one when that was 0."""

        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, self._host, self._port).start()
        self._runner = runner
        LOGGER.info("Health endpoint listening on http://%s:%s/healthz", self._host, self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        payload = self._reporter.snapshot()
        status = 200 if payload["status"] == "ok" else 503
        return web.json_response(payload, status=status)
