"""Tests for channel statistics."""

from __future__ import annotations

import numpy as np
import pytest

from weld_rig_analyzer.analysis.stats import channel_statistics, population_std
from weld_rig_analyzer.models.frames import XY_RELATIONSHIP, Channel


def test_population_std() -> None:
    assert population_std(np.array([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0])) == pytest.approx(2.0)
    assert population_std(np.array([])) == 0.0
    # large offset, small spread
    assert population_std(1e9 + np.array([1.0, 2.0, 3.0, 4.0])) == pytest.approx(np.sqrt(1.25), rel=1e-6)
    assert population_std(np.full(1000, 1e8 + 0.1)) == pytest.approx(0.0, abs=1e-6)


def test_time_series_statistics() -> None:
    ch = Channel("t", "Temp", "°C", [0, 1, 2, 3], [1.0, 3.0, 5.0, 7.0], sampling_rate=1.0)
    d = channel_statistics(ch).to_dict()
    assert d["count"] == 4
    assert (d["min"], d["max"], d["mean"], d["range"]) == (1.0, 7.0, 4.0, 6.0)
    assert d["std_dev"] == pytest.approx(np.std([1.0, 3.0, 5.0, 7.0]))
    assert d["peak_value"] == 7.0
    assert d["unit"] == "°C"
    assert d["sampling_rate"] == 1.0


def test_xy_statistics() -> None:
    ch = Channel(
        "fd", "Force", "kN", [0.0, 0.5, 0.4], [0.0, 100.0, 80.0],
        kind=XY_RELATIONSHIP, x_label="Displacement", x_unit="mm",
    )
    d = channel_statistics(ch).to_dict()
    assert d["ultimate_strength"] == 100.0
    assert d["max_displacement"] == 0.5
    assert d["x"]["unit"] == "mm"
    assert d["y"]["mean"] == pytest.approx(60.0)
    assert "std_dev" not in d


def test_empty_channel_rejected() -> None:
    with pytest.raises(ValueError):
        channel_statistics(Channel("e", "E", "V", [], []))
