"""Command-line interface for dgx-dashboard-client."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .config import load_config, save_config
from .connection import build_ws_url
from .dashboard import DashboardSession
from .theme import THEMES, ThemeController, ThemePreferences

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dgx-dashboard-client", description="Live DGX telemetry and container control"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="Connect and stream telemetry")
    start_parser.add_argument(
        "--url", help="Dashboard server origin, overriding [server] url"
    )
    start_parser.add_argument(
        "--save",
        action="store_true",
        help="Write the --url override back to the configuration file",
    )

    theme_parser = subparsers.add_parser(
        "theme", help="Show or change the saved light/dark preference"
    )
    theme_parser.add_argument(
        "choice",
        nargs="?",
        choices=("show", "dark", "light", "toggle", "system"),
        default="show",
        help="\"system\" clears the saved preference",
    )
    theme_parser.add_argument(
        "--system-theme",
        choices=THEMES,
        default="light",
        help="Theme reported by the desktop when no preference is saved",
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        if args.url:
            config.server.url = args.url.rstrip("/")
            config.raw.set("server", "url", config.server.url)
            if args.save:
                save_config(config)
                LOGGER.info("Saved server url to %s", config.path)
        DashboardSession.start_blocking(config)
        return 0

    if args.command == "theme":
        preferences = ThemePreferences(config.theme.path)
        if args.choice in THEMES:
            preferences.save(args.choice)
        elif args.choice == "system":
            preferences.clear()
        controller = ThemeController(preferences, system_theme=args.system_theme)
        if args.choice == "toggle":
            controller.toggle()
        source = "system" if controller.follows_system else "saved"
        print(f"{controller.current} ({source})")
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}")
        print(f"Websocket endpoint: {build_ws_url(config.server.url)}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
