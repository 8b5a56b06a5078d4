"""Logging setup for the dashboard client."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# aiohttp logs every frame and handshake at DEBUG; the health server adds access lines.
NETWORK_LOGGERS = (
    "aiohttp.access",
    "aiohttp.client",
    "aiohttp.internal",
    "aiohttp.server",
    "aiohttp.web",
    "aiohttp.websocket",
)


def resolve_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> int:
    """Install console and optional file handlers on the root logger.

    ``level`` is the ``[logging] level`` name; unknown names fall back to
    INFO. Unless ``log_network`` is set, aiohttp's loggers are held at
    WARNING so websocket traffic does not drown the dashboard's own
    messages. Returns the numeric level applied.
    """

    resolved = resolve_level(level)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(resolved)
    logging.captureWarnings(True)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)

    if resolved == logging.INFO and level.strip().upper() != "INFO":
        logging.getLogger(__name__).warning("Unknown log level %r; using INFO", level)
    return resolved
