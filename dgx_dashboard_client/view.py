"""Immutable view model handed to the presenter on every render.

``build_view`` is a pure function of the store, the tracker and the
presenter options; the presenter never reads the store directly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from . import constants
from .actions import ButtonState, resolve_buttons
from .protocol import (
    ContainerState,
    DockerCommand,
    GpuReading,
    round_half_away_from_zero,
)
from .store import TelemetryStore
from .thresholds import (
    DEFAULT_THRESHOLDS,
    GRADIENT_LEGEND,
    GaugeStyle,
    LegendSegment,
    Severity,
    Thresholds,
    clamp_for_display,
    classify,
    fill_color,
    fill_severity,
)
from .tracker import CommandTracker

GPU_GAUGE_MAX = 100.0


@dataclass(frozen=True, slots=True)
class PresenterOptions:
    gauge_style: GaugeStyle = GaugeStyle.GRADIENT
    thresholds: Thresholds = DEFAULT_THRESHOLDS
    show_progress_bar: bool = False
    confirm_destructive: bool = True
    degraded_message: str = constants.DEFAULT_DEGRADED_MESSAGE
    protected_marker: str = constants.PROTECTED_CONTAINER_MARKER


@dataclass(frozen=True, slots=True)
class GaugeView:
    value: float
    maximum: int
    remainder: float
    severity: Severity
    fill_color: str
    used_label: str
    total_label: str
    legend: tuple[LegendSegment, ...] = ()


@dataclass(frozen=True, slots=True)
class ProgressView:
    percent: float
    severity: Severity


@dataclass(frozen=True, slots=True)
class SeriesView:
    values: tuple[Optional[float], ...]
    severities: tuple[Optional[Severity], ...] = ()

    @property
    def labels(self) -> tuple[int, ...]:
        return tuple(range(1, len(self.values) + 1))


@dataclass(frozen=True, slots=True)
class ContainerRow:
    container: ContainerState
    is_running: bool
    is_protected: bool
    pending: Optional[DockerCommand]
    buttons: tuple[ButtonState, ...]

    @property
    def status_label(self) -> str:
        return "Running" if self.is_running else "Stopped"

    @property
    def visible_buttons(self) -> tuple[ButtonState, ...]:
        return tuple(button for button in self.buttons if button.visible)


@dataclass(frozen=True, slots=True)
class DashboardView:
    status_text: str
    degraded_message: Optional[str]
    title: str
    gpu_power_text: str
    memory_gauge: Optional[GaugeView]
    gpu_gauge: Optional[GaugeView]
    memory_progress: Optional[ProgressView]
    gpu_temperature: SeriesView
    system_temperature: SeriesView
    memory: SeriesView
    containers: tuple[ContainerRow, ...] = field(default_factory=tuple)

    @property
    def show_docker_section(self) -> bool:
        return bool(self.containers)


def build_view(
    store: TelemetryStore,
    tracker: CommandTracker,
    options: PresenterOptions,
    *,
    status_text: str,
    degraded: bool = False,
) -> DashboardView:
    history = store.history()
    snapshot = store.latest
    memory = store.memory
    style = GaugeStyle(options.gauge_style)

    degraded_message = options.degraded_message if degraded else None

    if snapshot is None or memory is None:
        return DashboardView(
            status_text=status_text,
            degraded_message=degraded_message,
            title="DGX",
            gpu_power_text="?",
            memory_gauge=None,
            gpu_gauge=None,
            memory_progress=None,
            gpu_temperature=SeriesView(history.gpu_temperature),
            system_temperature=SeriesView(history.system_temperature),
            memory=SeriesView(history.memory_used_gb),
        )

    gpu = snapshot.gpu
    gpu_usage = gpu.usage_percent if gpu is not None else 0.0

    memory_gauge = _gauge(
        memory.used_gb,
        memory.total_gb,
        style,
        options.thresholds,
        used_label=lambda value: f"{value:.1f} GB",
        total_label=lambda maximum: f"{maximum} GB available",
    )
    gpu_gauge = _gauge(
        gpu_usage,
        GPU_GAUGE_MAX,
        style,
        options.thresholds,
        used_label=lambda value: f"{_whole(value)} %",
        total_label=lambda maximum: "GPU Utilization",
    )

    memory_progress: Optional[ProgressView] = None
    if options.show_progress_bar and memory.total_gb > 0:
        percent = min(100.0, memory.used_gb / memory.total_gb * 100.0)
        memory_progress = ProgressView(
            percent=round_half_away_from_zero(percent, 1),
            severity=classify(percent, 100.0, options.thresholds),
        )

    chart_max = float(memory_gauge.maximum)
    memory_series = SeriesView(
        values=history.memory_used_gb,
        severities=tuple(
            None if value is None else classify(value, chart_max, options.thresholds)
            for value in history.memory_used_gb
        ),
    )

    rows = tuple(
        _container_row(container, tracker, options.protected_marker)
        for container in snapshot.docker
    )

    return DashboardView(
        status_text=status_text,
        degraded_message=degraded_message,
        title=_title(
            snapshot.memory.used_gb,
            snapshot.cpu.usage_percent,
            gpu,
            snapshot.temperature.system_temperature_c,
        ),
        gpu_power_text=str(_whole(gpu.power_w)) if gpu is not None else "?",
        memory_gauge=memory_gauge,
        gpu_gauge=gpu_gauge,
        memory_progress=memory_progress,
        gpu_temperature=SeriesView(history.gpu_temperature),
        system_temperature=SeriesView(history.system_temperature),
        memory=memory_series,
        containers=rows,
    )


def _whole(value: float) -> int:
    return int(round_half_away_from_zero(value, 0))


def _title(
    used_gb: float,
    cpu_usage: float,
    gpu: Optional[GpuReading],
    system_temperature: float,
) -> str:
    gpu_usage = gpu.usage_percent if gpu is not None else 0.0
    gpu_temperature = gpu.temperature_c if gpu is not None else 0.0
    max_usage = max(gpu_usage, cpu_usage)
    max_temperature = max(gpu_temperature, system_temperature)
    return f"DGX {math.trunc(used_gb)}GB {_whole(max_usage)}% {_whole(max_temperature)}°"


def _gauge(value, maximum, style, thresholds, *, used_label, total_label) -> GaugeView:
    reading = clamp_for_display(value, maximum)
    severity = fill_severity(reading.value, reading.maximum, style, thresholds)
    return GaugeView(
        value=reading.value,
        maximum=reading.maximum,
        remainder=reading.remainder,
        severity=severity,
        fill_color=fill_color(severity, style),
        used_label=used_label(reading.value),
        total_label=total_label(reading.maximum),
        legend=GRADIENT_LEGEND if style is GaugeStyle.GRADIENT else (),
    )


def _container_row(
    container: ContainerState, tracker: CommandTracker, marker: str
) -> ContainerRow:
    pending = tracker.active_command_for(container.id)
    return ContainerRow(
        container=container,
        is_running=container.is_running,
        is_protected=container.is_protected_by(marker),
        pending=pending,
        buttons=resolve_buttons(container, pending, protected_marker=marker),
    )
