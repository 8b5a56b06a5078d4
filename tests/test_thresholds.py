"""Tests for severity classification and gauge clamping."""

import pytest

from dgx_dashboard_client.thresholds import (
    GRADIENT_LEGEND,
    GAUGE_FILL_COLOR,
    SEVERITY_COLORS,
    GaugeStyle,
    Severity,
    Thresholds,
    clamp_for_display,
    classify,
    fill_color,
    fill_severity,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, Severity.OK),
        (59.999, Severity.OK),
        (60, Severity.WARN),
        (79.9, Severity.WARN),
        (80, Severity.DANGER),
        (100, Severity.DANGER),
        (120, Severity.DANGER),
    ],
)
def test_classify_bands_include_lower_edge(value, expected):
    assert classify(value, 100) is expected


def test_classify_scales_with_maximum():
    assert classify(76.8, 128) is Severity.WARN
    assert classify(102.4, 128) is Severity.DANGER
    assert classify(76.7, 128) is Severity.OK


def test_classify_custom_thresholds():
    thresholds = Thresholds(warn=0.5, danger=0.9)

    assert classify(50, 100, thresholds) is Severity.WARN
    assert classify(89, 100, thresholds) is Severity.WARN
    assert classify(90, 100, thresholds) is Severity.DANGER


def test_thresholds_reject_inverted_bands():
    with pytest.raises(ValueError):
        Thresholds(warn=0.9, danger=0.5)


def test_gradient_style_keeps_constant_fill():
    assert fill_severity(95, 100, GaugeStyle.GRADIENT) is Severity.OK
    assert fill_color(Severity.OK, GaugeStyle.GRADIENT) == GAUGE_FILL_COLOR
    assert GRADIENT_LEGEND[0].start == 0.0
    assert GRADIENT_LEGEND[-1].end == 1.0


def test_per_value_style_colours_by_severity():
    severity = fill_severity(95, 100, "per_value")

    assert severity is Severity.DANGER
    assert fill_color(severity, GaugeStyle.PER_VALUE) == SEVERITY_COLORS[Severity.DANGER]


def test_clamp_truncates_maximum_and_caps_value():
    reading = clamp_for_display(128.4, 128.4)

    assert reading.maximum == 128
    assert reading.value == 128
    assert reading.remainder == 0


def test_clamp_leaves_values_under_maximum_alone():
    reading = clamp_for_display(64.2, 128.4)

    assert reading.value == pytest.approx(64.2)
    assert reading.remainder == pytest.approx(63.8)


def test_clamp_never_goes_negative():
    reading = clamp_for_display(-5.0, 100)

    assert reading.value == 0
    assert reading.remainder == 100
