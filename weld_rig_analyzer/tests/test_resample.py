"""Tests for window selection and fixed-stride decimation."""

from __future__ import annotations

import math

import numpy as np
import pytest

from weld_rig_analyzer.analysis.resample import decimation_step, resample, window_indices
from weld_rig_analyzer.models.frames import XY_RELATIONSHIP, Channel


def _ramp(n: int) -> Channel:
    t = np.arange(n, dtype=float)
    return Channel("c", "C", "V", t, t * 2.0)


def test_small_series_returned_unchanged() -> None:
    ch = _ramp(50)
    out = resample(ch, max_points=50)
    assert not out.resampled
    assert out.ratio == 1
    assert out.time.tobytes() == ch.time.tobytes()
    assert out.values.tobytes() == ch.values.tobytes()
    assert out.original_points == out.actual_points == 50


@pytest.mark.parametrize("count", [1, 2, 7, 100, 1001])
@pytest.mark.parametrize("max_points", [1, 3, 10, 1000])
def test_output_bounded_by_max_points(count, max_points) -> None:
    out = resample(_ramp(count), max_points=max_points)
    assert out.actual_points <= max_points
    assert out.ratio == decimation_step(count, max_points)
    if count > max_points:
        assert out.ratio == math.ceil(count / max_points)


def test_decimation_starts_at_first_in_window_sample() -> None:
    out = resample(_ramp(100), start=10.0, end=59.0, max_points=10)
    assert out.original_points == 50
    assert out.ratio == 5
    np.testing.assert_array_equal(out.time, [10, 15, 20, 25, 30, 35, 40, 45, 50, 55])
    np.testing.assert_array_equal(out.values, out.time * 2.0)
    assert out.window == (10.0, 59.0)


def test_window_bounds_inclusive() -> None:
    t = np.array([0.0, 1.0, 1.0, 2.0, 3.0])
    assert window_indices(t, 1.0, 2.0) == (1, 4)
    assert window_indices(t, None, None) == (0, 5)
    assert window_indices(t, 5.0, 6.0) == (5, 5)


def test_open_end_uses_last_sample() -> None:
    out = resample(_ramp(10), start=3.0)
    assert out.window == (3.0, 9.0)
    assert out.actual_points == 7


def test_empty_window() -> None:
    out = resample(_ramp(10), start=20.0, end=30.0)
    assert out.actual_points == 0
    assert out.time.size == 0


def test_xy_ignores_window_and_keeps_pairs() -> None:
    x = np.array([0.0, 0.5, 0.4, 0.9, 1.2, 1.1])
    y = np.array([0.0, 10.0, 9.0, 20.0, 30.0, 25.0])
    ch = Channel("fd", "Force", "kN", x, y, kind=XY_RELATIONSHIP)
    out = resample(ch, start=100.0, end=200.0, max_points=3)
    assert out.original_points == 6
    np.testing.assert_array_equal(out.time, [0.0, 0.4, 1.2])
    np.testing.assert_array_equal(out.values, [0.0, 9.0, 30.0])
    d = out.to_dict()
    assert d["x"] == [0.0, 0.4, 1.2]
    assert "time" not in d


def test_resolution_floor_reported() -> None:
    out = resample(_ramp(10), resolution_floor=1.28e-5)
    assert out.to_dict()["resolution_floor"] == 1.28e-5


def test_invalid_arguments() -> None:
    with pytest.raises(ValueError):
        resample(_ramp(10), max_points=0)
    with pytest.raises(ValueError):
        resample(_ramp(10), start=5.0, end=1.0)
