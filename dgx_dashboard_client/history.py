"""Fixed-capacity rolling series feeding the time-series charts."""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterator, Optional, TypeVar

from . import constants

T = TypeVar("T")


class HistoryBuffer(Generic[T]):
    """Insertion-ordered series holding at most ``capacity`` samples.

    Pushing into a full buffer evicts the oldest sample. ``None`` is a valid
    sample and marks a reading that was missing for that tick, so series fed
    from the same snapshots stay index-aligned.
    """

    def __init__(self, capacity: int = constants.DEFAULT_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._values: Deque[Optional[T]] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen or 0

    @property
    def latest(self) -> Optional[T]:
        if not self._values:
            return None
        return self._values[-1]

    def push(self, value: Optional[T]) -> None:
        self._values.append(value)

    def values(self) -> tuple[Optional[T], ...]:
        """Return a copy of the samples, oldest first."""
        return tuple(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Optional[T]]:
        return iter(tuple(self._values))

    def __repr__(self) -> str:
        return f"HistoryBuffer(capacity={self.capacity}, values={list(self._values)!r})"
