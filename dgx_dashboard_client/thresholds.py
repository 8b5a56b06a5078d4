"""Severity bands shared by every gauge and chart."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from . import constants


class Severity(str, Enum):
    OK = "ok"
    WARN = "warn"
    DANGER = "danger"


class GaugeStyle(str, Enum):
    """How a gauge's fill is coloured.

    ``PER_VALUE`` colours the fill by the value's severity. ``GRADIENT``
    keeps a constant fill and relies on the fixed legend track around the
    gauge to show the bands.
    """

    PER_VALUE = "per_value"
    GRADIENT = "gradient"


@dataclass(frozen=True, slots=True)
class Thresholds:
    warn: float = constants.DEFAULT_WARN_RATIO
    danger: float = constants.DEFAULT_DANGER_RATIO

    def __post_init__(self) -> None:
        if not 0.0 <= self.warn <= self.danger:
            raise ValueError(
                f"Thresholds must satisfy 0 <= warn <= danger (warn={self.warn}, danger={self.danger})"
            )


DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True, slots=True)
class GaugeReading:
    value: float
    maximum: int
    remainder: float


@dataclass(frozen=True, slots=True)
class LegendSegment:
    start: float
    end: float
    color: str


SEVERITY_COLORS: Mapping[Severity, str] = {
    Severity.OK: "rgb(75, 192, 192)",
    Severity.WARN: "rgb(255, 205, 86)",
    Severity.DANGER: "rgb(255, 99, 132)",
}

GAUGE_FILL_COLOR = "rgb(118, 184, 82)"

# Fractions of the half-circle track, left to right.
GRADIENT_LEGEND: tuple[LegendSegment, ...] = (
    LegendSegment(0.0, 0.30, "rgb(118, 184, 82)"),
    LegendSegment(0.30, 0.60, "rgb(118, 184, 82)"),
    LegendSegment(0.60, 0.75, "rgb(234, 179, 8)"),
    LegendSegment(0.75, 0.88, "rgb(249, 115, 22)"),
    LegendSegment(0.88, 1.0, "rgb(239, 68, 68)"),
)


def classify(
    value: float, maximum: float, thresholds: Thresholds = DEFAULT_THRESHOLDS
) -> Severity:
    """Map ``value`` on a ``0..maximum`` scale to a severity band.

    Each band includes its lower edge: ``classify(80, 100)`` is ``DANGER``.
    """

    if value >= maximum * thresholds.danger:
        return Severity.DANGER
    if value >= maximum * thresholds.warn:
        return Severity.WARN
    return Severity.OK


def fill_severity(
    value: float,
    maximum: float,
    style: GaugeStyle | str,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Severity:
    if GaugeStyle(style) is GaugeStyle.GRADIENT:
        return Severity.OK
    return classify(value, maximum, thresholds)


def fill_color(severity: Severity, style: GaugeStyle | str) -> str:
    if GaugeStyle(style) is GaugeStyle.GRADIENT:
        return GAUGE_FILL_COLOR
    return SEVERITY_COLORS[severity]


def clamp_for_display(value: float, maximum: float) -> GaugeReading:
    """Fit ``value`` under the truncated ``maximum`` shown on the gauge.

    A capacity of 128.4 GB displays as 128, so a reading of 128.4 is shown
    as 128 rather than overflowing the arc.
    """

    display_max = max(0, math.trunc(maximum))
    shown = min(max(value, 0.0), float(display_max))
    return GaugeReading(value=shown, maximum=display_max, remainder=display_max - shown)
