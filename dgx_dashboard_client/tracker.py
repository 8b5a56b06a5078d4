"""Optimistic tracking of container commands awaiting confirmation.

Commands are fire-and-forget: the server never acknowledges them, and the
container's new state only shows up in a later snapshot. The tracker keeps
one pending entry per container so the UI can show the command as in
flight until the snapshot catches up or the entry times out.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional

from . import constants
from .protocol import ContainerState, DockerCommand

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingCommand:
    entity_id: str
    command: DockerCommand
    issued_at: float
    observed_running_at_issue: bool

    def elapsed(self, now: float) -> float:
        return now - self.issued_at


class CommandTracker:
    """Holds at most one pending command per container."""

    def __init__(
        self,
        *,
        timeout_seconds: float = constants.DEFAULT_PENDING_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._clock = clock or time.monotonic
        self._pending: Dict[str, PendingCommand] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending(self) -> Mapping[str, PendingCommand]:
        return MappingProxyType(dict(self._pending))

    def register(
        self, entity_id: str, command: DockerCommand | str, was_running: bool
    ) -> PendingCommand:
        """Record ``command`` as in flight, replacing any earlier entry."""

        entry = PendingCommand(
            entity_id=entity_id,
            command=DockerCommand(command),
            issued_at=self._clock(),
            observed_running_at_issue=was_running,
        )
        previous = self._pending.get(entity_id)
        if previous is not None:
            LOGGER.debug(
                "Replacing pending %s for %s with %s",
                previous.command.value,
                entity_id,
                entry.command.value,
            )
        self._pending[entity_id] = entry
        return entry

    def reconcile(self, containers: Iterable[ContainerState]) -> list[str]:
        """Drop entries the latest snapshot has made obsolete.

        An entry clears once the timeout elapses or the container's running
        state differs from the state seen when the command was issued. A
        container missing from the snapshot counts as not running.

        Returns the ids whose entries were cleared.
        """

        if not self._pending:
            return []

        now = self._clock()
        running = {container.id: container.is_running for container in containers}
        cleared: list[str] = []

        for entity_id, entry in list(self._pending.items()):
            is_running_now = running.get(entity_id, False)
            if entry.elapsed(now) >= self._timeout:
                reason = "timeout"
            elif is_running_now != entry.observed_running_at_issue:
                reason = "state_changed"
            else:
                continue

            del self._pending[entity_id]
            cleared.append(entity_id)
            LOGGER.debug(
                "Cleared pending %s for %s (reason=%s, elapsed=%.1fs)",
                entry.command.value,
                entity_id,
                reason,
                entry.elapsed(now),
            )

        return cleared

    def pending_for(self, entity_id: str) -> Optional[PendingCommand]:
        return self._pending.get(entity_id)

    def active_command_for(self, entity_id: str) -> Optional[DockerCommand]:
        entry = self._pending.get(entity_id)
        return entry.command if entry is not None else None

    def discard(self, entity_id: str) -> bool:
        return self._pending.pop(entity_id, None) is not None
