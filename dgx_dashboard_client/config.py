"""Configuration loader for dgx-dashboard-client."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants

GAUGE_STYLES = ("per_value", "gradient")


@dataclass(slots=True)
class ServerConfig:
    url: str = constants.DEFAULT_SERVER_URL


@dataclass(slots=True)
class ConnectionConfig:
    reconnect_delay_seconds: float = constants.DEFAULT_RECONNECT_DELAY_SECONDS


@dataclass(slots=True)
class HistoryConfig:
    size: int = constants.DEFAULT_HISTORY_SIZE


@dataclass(slots=True)
class CommandConfig:
    pending_timeout_seconds: float = constants.DEFAULT_PENDING_TIMEOUT_SECONDS
    confirm_destructive: bool = True


@dataclass(slots=True)
class PresenterConfig:
    gauge_style: str = "gradient"
    warn_ratio: float = constants.DEFAULT_WARN_RATIO
    danger_ratio: float = constants.DEFAULT_DANGER_RATIO
    show_progress_bar: bool = False
    degraded_message: str = constants.DEFAULT_DEGRADED_MESSAGE
    protected_marker: str = constants.PROTECTED_CONTAINER_MARKER


@dataclass(slots=True)
class ThemeConfig:
    path: Path = constants.DEFAULT_THEME_PATH


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class DashboardConfig:
    server: ServerConfig
    connection: ConnectionConfig
    history: HistoryConfig
    commands: CommandConfig
    presenter: PresenterConfig
    theme: ThemeConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def _get_float(parser: ConfigParser, section: str, option: str, default: float) -> float:
    try:
        return parser.getfloat(section, option, fallback=default)
    except ValueError:
        return default


def _get_int(parser: ConfigParser, section: str, option: str, default: int) -> int:
    try:
        return parser.getint(section, option, fallback=default)
    except ValueError:
        return default


def _clamp_ratio(value: float) -> float:
    return max(0.0, min(1.0, value))


def load_config(path: Optional[Path] = None) -> DashboardConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "server": {
                "url": constants.DEFAULT_SERVER_URL,
            },
            "connection": {
                "reconnect_delay_seconds": str(constants.DEFAULT_RECONNECT_DELAY_SECONDS),
            },
            "history": {
                "size": str(constants.DEFAULT_HISTORY_SIZE),
            },
            "commands": {
                "pending_timeout_seconds": str(constants.DEFAULT_PENDING_TIMEOUT_SECONDS),
                "confirm_destructive": "true",
            },
            "presenter": {
                "gauge_style": "gradient",
                "warn_ratio": str(constants.DEFAULT_WARN_RATIO),
                "danger_ratio": str(constants.DEFAULT_DANGER_RATIO),
                "show_progress_bar": "false",
                "protected_marker": constants.PROTECTED_CONTAINER_MARKER,
            },
            "theme": {
                "path": str(constants.DEFAULT_THEME_PATH),
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    server = ServerConfig(url=parser.get("server", "url").strip().rstrip("/"))

    connection = ConnectionConfig(
        reconnect_delay_seconds=max(
            0.0,
            _get_float(
                parser,
                "connection",
                "reconnect_delay_seconds",
                constants.DEFAULT_RECONNECT_DELAY_SECONDS,
            ),
        ),
    )

    history = HistoryConfig(
        size=max(1, _get_int(parser, "history", "size", constants.DEFAULT_HISTORY_SIZE)),
    )

    commands = CommandConfig(
        pending_timeout_seconds=max(
            0.0,
            _get_float(
                parser,
                "commands",
                "pending_timeout_seconds",
                constants.DEFAULT_PENDING_TIMEOUT_SECONDS,
            ),
        ),
        confirm_destructive=parser.getboolean(
            "commands", "confirm_destructive", fallback=True
        ),
    )

    gauge_style = parser.get("presenter", "gauge_style").strip().lower()
    if gauge_style not in GAUGE_STYLES:
        gauge_style = PresenterConfig().gauge_style

    warn_ratio = _clamp_ratio(
        _get_float(parser, "presenter", "warn_ratio", constants.DEFAULT_WARN_RATIO)
    )
    danger_ratio = _clamp_ratio(
        _get_float(parser, "presenter", "danger_ratio", constants.DEFAULT_DANGER_RATIO)
    )
    if warn_ratio > danger_ratio:
        warn_ratio, danger_ratio = constants.DEFAULT_WARN_RATIO, constants.DEFAULT_DANGER_RATIO

    presenter = PresenterConfig(
        gauge_style=gauge_style,
        warn_ratio=warn_ratio,
        danger_ratio=danger_ratio,
        show_progress_bar=parser.getboolean(
            "presenter", "show_progress_bar", fallback=False
        ),
        degraded_message=parser.get(
            "presenter", "degraded_message", fallback=constants.DEFAULT_DEGRADED_MESSAGE
        ),
        protected_marker=parser.get("presenter", "protected_marker"),
    )

    theme = ThemeConfig(path=Path(parser.get("theme", "path")).expanduser())

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=_get_int(parser, "health", "port", 0),
    )

    return DashboardConfig(
        server=server,
        connection=connection,
        history=history,
        commands=commands,
        presenter=presenter,
        theme=theme,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: DashboardConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
