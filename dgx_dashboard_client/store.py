"""Telemetry store owning the rolling histories and the latest snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from . import constants
from .history import HistoryBuffer
from .protocol import TelemetrySnapshot, memory_kb_to_gb, round_half_away_from_zero

LOGGER = logging.getLogger(__name__)

SERIES_NAMES = (
    "cpu_usage",
    "gpu_usage",
    "gpu_temperature",
    "system_temperature",
    "memory_used_gb",
)


@dataclass(frozen=True, slots=True)
class MemoryUsage:
    """Memory in decimal GB; ``used_gb`` is rounded to one decimal place."""

    used_gb: float
    total_gb: float


@dataclass(frozen=True, slots=True)
class HistoryView:
    """Read-only copy of every series, oldest sample first."""

    cpu_usage: tuple[Optional[float], ...]
    gpu_usage: tuple[Optional[float], ...]
    gpu_temperature: tuple[Optional[float], ...]
    system_temperature: tuple[Optional[float], ...]
    memory_used_gb: tuple[Optional[float], ...]

    def __len__(self) -> int:
        return len(self.cpu_usage)


class TelemetryStore:
    """Ingests decoded snapshots and keeps the series the charts draw from.

    Every ``apply`` pushes exactly one sample into every series. A snapshot
    without GPU data pushes ``None`` into the GPU series instead of skipping
    them.
    """

    def __init__(self, *, history_size: int = constants.DEFAULT_HISTORY_SIZE) -> None:
        self._buffers: Dict[str, HistoryBuffer[float]] = {
            name: HistoryBuffer(history_size) for name in SERIES_NAMES
        }
        self._latest: Optional[TelemetrySnapshot] = None
        self._memory: Optional[MemoryUsage] = None
        self._applied = 0

    @property
    def latest(self) -> Optional[TelemetrySnapshot]:
        return self._latest

    @property
    def memory(self) -> Optional[MemoryUsage]:
        return self._memory

    @property
    def history_size(self) -> int:
        return self._buffers["cpu_usage"].capacity

    @property
    def sample_count(self) -> int:
        """Total number of snapshots applied since construction."""
        return self._applied

    def apply(self, snapshot: TelemetrySnapshot) -> None:
        used_gb = round_half_away_from_zero(memory_kb_to_gb(snapshot.memory.used_kb), 1)
        total_gb = memory_kb_to_gb(snapshot.memory.total_kb)

        gpu = snapshot.gpu
        if gpu is None:
            gpu_usage: Optional[float] = None
            gpu_temperature: Optional[float] = None
        else:
            gpu_usage = gpu.usage_percent
            gpu_temperature = gpu.temperature_c

        self._buffers["cpu_usage"].push(snapshot.cpu.usage_percent)
        self._buffers["gpu_usage"].push(gpu_usage)
        self._buffers["gpu_temperature"].push(gpu_temperature)
        self._buffers["system_temperature"].push(
            snapshot.temperature.system_temperature_c
        )
        self._buffers["memory_used_gb"].push(used_gb)

        self._latest = snapshot
        self._memory = MemoryUsage(used_gb=used_gb, total_gb=total_gb)
        self._applied += 1

        LOGGER.debug(
            "Applied snapshot #%d (cpu=%.1f%%, mem=%.1fGB, gpu=%s)",
            self._applied,
            snapshot.cpu.usage_percent,
            used_gb,
            "absent" if gpu is None else f"{gpu.usage_percent:.0f}%",
        )

    def series(self, name: str) -> tuple[Optional[float], ...]:
        try:
            buffer = self._buffers[name]
        except KeyError:
            raise KeyError(f"Unknown series: {name!r}") from None
        return buffer.values()

    def history(self) -> HistoryView:
        return HistoryView(**{name: self._buffers[name].values() for name in SERIES_NAMES})

