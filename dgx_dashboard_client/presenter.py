"""Presenter contract and a headless implementation."""

from __future__ import annotations

import logging
from typing import Awaitable, Protocol, Union

from .view import DashboardView

LOGGER = logging.getLogger(__name__)


class Presenter(Protocol):
    """Renders dashboard views and asks the operator for confirmation."""

    def render(self, view: DashboardView) -> Union[Awaitable[None], None]:
        """Draw ``view``. Called once per snapshot and on status changes."""
        ...

    def confirm(self, prompt: str) -> Union[Awaitable[bool], bool]:
        """Ask the operator to confirm a destructive command."""
        ...


class LoggingPresenter:
    """Writes a one-line summary of every render to the log.

    There is nobody to ask in headless mode, so ``confirm`` answers with
    ``auto_confirm``.
    """

    def __init__(self, *, auto_confirm: bool = False) -> None:
        self._auto_confirm = auto_confirm
        self._last_status: str | None = None
        self._last_degraded: str | None = None

    def render(self, view: DashboardView) -> None:
        if view.status_text != self._last_status:
            LOGGER.info("Status: %s", view.status_text)
            self._last_status = view.status_text

        if view.degraded_message != self._last_degraded:
            if view.degraded_message:
                LOGGER.error("%s", view.degraded_message)
            self._last_degraded = view.degraded_message

        if view.memory_gauge is None:
            return

        in_flight = ", ".join(
            f"{row.container.names}={row.pending.value}"
            for row in view.containers
            if row.pending is not None
        )
        LOGGER.info(
            "%s | power %sW | containers %d%s",
            view.title,
            view.gpu_power_text,
            len(view.containers),
            f" | in flight: {in_flight}" if in_flight else "",
        )

    def confirm(self, prompt: str) -> bool:
        LOGGER.info("%s -> %s", prompt, "yes" if self._auto_confirm else "no")
        return self._auto_confirm
