"""Constants used across the dgx-dashboard-client package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "dgx-dashboard-client"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME
DEFAULT_THEME_PATH = Path.home() / ".config" / APP_NAME / "theme.json"

DEFAULT_SERVER_URL = "http://localhost:8080"
WEBSOCKET_PATH = "/ws"

DEFAULT_HISTORY_SIZE = 10
DEFAULT_RECONNECT_DELAY_SECONDS = 1.0
DEFAULT_PENDING_TIMEOUT_SECONDS = 10.0

DEFAULT_WARN_RATIO = 0.6
DEFAULT_DANGER_RATIO = 0.8

KB_PER_GB = 1_000_000

# Matched against container names and images to find the dashboard's own container.
PROTECTED_CONTAINER_MARKER = "dgx_dashboard"

THEME_KEY = "dgx-dashboard-theme"

DEFAULT_DEGRADED_MESSAGE = (
    "nvidia-smi has crashed too many times, click Restart on the dashboard container"
)
