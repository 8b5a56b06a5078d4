"""Real-time client for the DGX telemetry dashboard."""

from .connection import ConnectionManager, ConnectionState, TransportError, build_ws_url
from .dashboard import DashboardSession
from .history import HistoryBuffer
from .protocol import (
    ContainerState,
    DockerCommand,
    ProtocolError,
    TelemetrySnapshot,
    decode_snapshot,
)
from .store import TelemetryStore
from .thresholds import GaugeStyle, Severity, Thresholds, clamp_for_display, classify
from .tracker import CommandTracker, PendingCommand

__all__ = [
    "CommandTracker",
    "ConnectionManager",
    "ConnectionState",
    "ContainerState",
    "DashboardSession",
    "DockerCommand",
    "GaugeStyle",
    "HistoryBuffer",
    "PendingCommand",
    "ProtocolError",
    "Severity",
    "TelemetrySnapshot",
    "TelemetryStore",
    "Thresholds",
    "TransportError",
    "build_ws_url",
    "clamp_for_display",
    "classify",
    "decode_snapshot",
]
