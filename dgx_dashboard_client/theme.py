"""Persisted light/dark preference.

No saved preference means "follow the system", and system changes keep
being applied until the operator picks a theme explicitly.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from . import constants

LOGGER = logging.getLogger(__name__)

THEMES = ("dark", "light")


class ThemePreferences:
    """Single key/value preference stored as JSON on disk."""

    def __init__(self, path: Path, *, key: str = constants.THEME_KEY) -> None:
        self._path = path
        self._key = key

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[str]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            # ValueError covers JSONDecodeError and UnicodeDecodeError
            LOGGER.warning("Ignoring unreadable theme preference %s: %s", self._path, exc)
            return None

        value = payload.get(self._key) if isinstance(payload, dict) else None
        return value if value in THEMES else None

    def save(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme!r}")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({self._key: theme}), encoding="utf-8")

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class ThemeController:
    def __init__(
        self,
        preferences: ThemePreferences,
        *,
        system_theme: str = "light",
        on_apply: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._preferences = preferences
        self._system_theme = system_theme if system_theme in THEMES else "light"
        self._on_apply = on_apply
        self._current = preferences.load() or self._system_theme
        self._apply(self._current)

    @property
    def current(self) -> str:
        return self._current

    @property
    def follows_system(self) -> bool:
        return self._preferences.load() is None

    def on_system_change(self, theme: str) -> None:
        if theme not in THEMES:
            return
        self._system_theme = theme
        if self.follows_system:
            self._apply(theme)

    def toggle(self) -> str:
        next_theme = "light" if self._current == "dark" else "dark"
        self._preferences.save(next_theme)
        self._apply(next_theme)
        return next_theme

    def _apply(self, theme: str) -> None:
        self._current = theme
        LOGGER.debug("Applying %s theme", theme)
        if self._on_apply is not None:
            self._on_apply(theme)
