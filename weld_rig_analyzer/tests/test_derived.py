"""Tests for the derived-channel catalogue and engine."""

from __future__ import annotations

import numpy as np
import pytest

from weld_rig_analyzer.analysis.derived import (
    DERIVED_CHANNELS,
    DerivedChannelDef,
    DerivedChannelEngine,
    dc_current,
    dc_voltage,
    evaluation_order,
    normalize_binary_channel_id,
    signed_differential,
)
from weld_rig_analyzer.models.frames import Channel


def _raw(**values: float) -> dict:
    return {
        cid: Channel(cid, cid, "V", [0.0, 1.0], [v, v], sampling_rate=2.0)
        for cid, v in values.items()
    }


# -----------------------------------------------------------------------
# Formula literals
# -----------------------------------------------------------------------


def test_differential_and_current_literals() -> None:
    diff = signed_differential(np.array([3.0]), np.array([4.0]))
    assert diff[0] == -7.0
    assert dc_current(np.array([3.0]), np.array([4.0]), diff)[0] == pytest.approx(490.0)
    assert dc_voltage(np.array([3.0]), np.array([4.0]), diff)[0] == pytest.approx(0.4)


# -----------------------------------------------------------------------
# Ordering
# -----------------------------------------------------------------------


def test_catalogue_order_puts_dependencies_first() -> None:
    order = [d.channel_id for d in evaluation_order(DERIVED_CHANNELS)]
    assert sorted(order) == [f"calc_{i}" for i in range(7)]
    assert order.index("calc_1") < order.index("calc_3")
    assert order.index("calc_2") < order.index("calc_4")
    assert order.index("calc_0") < order.index("calc_5")


def _def(cid: str, depends_on=()) -> DerivedChannelDef:
    return DerivedChannelDef(cid, cid, "V", ("channel_0",), lambda v: v["channel_0"], tuple(depends_on))


def test_cycle_rejected() -> None:
    with pytest.raises(ValueError, match="Cycle"):
        evaluation_order([_def("a", ["b"]), _def("b", ["a"])])


def test_unknown_dependency_rejected() -> None:
    with pytest.raises(ValueError, match="unknown"):
        evaluation_order([_def("a", ["zzz"])])


def test_duplicate_id_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate"):
        DerivedChannelEngine([_def("a"), _def("a")])


# -----------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------


def test_compute_full_set() -> None:
    raw = _raw(channel_0=3, channel_1=4, channel_2=3, channel_3=4, channel_4=-3, channel_5=-4)
    res = DerivedChannelEngine().compute(raw, extra={"downsampling": 128})
    assert set(res.channels) == {f"calc_{i}" for i in range(6)}
    assert res.unavailable.keys() == {"calc_6"}
    np.testing.assert_allclose(res.channels["calc_2"].values, 7.0)
    np.testing.assert_allclose(res.channels["calc_4"].values, 490.0)
    c3 = res.channels["calc_3"]
    assert c3.unit == "A"
    assert c3.extra["depends_on"] == ["calc_1"]
    assert c3.extra["downsampling"] == 128
    np.testing.assert_array_equal(c3.time, raw["channel_2"].time)


def test_missing_source_cascades_to_dependents() -> None:
    raw = _raw(channel_0=1, channel_1=1, channel_2=1)
    res = DerivedChannelEngine().compute(raw)
    assert set(res.channels) == {"calc_0", "calc_5"}
    assert "channel_3" in res.unavailable["calc_1"]
    assert "calc_1" in res.unavailable["calc_3"]


def test_slide_force_when_sources_present() -> None:
    raw = _raw(channel_6=1.0, channel_7=1.0)
    res = DerivedChannelEngine().compute(raw)
    np.testing.assert_allclose(res.channels["calc_6"].values, 6.2832 - 5.0108)
    assert res.channels["calc_6"].unit == "kN"


@pytest.mark.parametrize(
    "given, expected",
    [
        ("channel_3", "channel_3"),
        ("calc_6", "calc_6"),
        ("2", "channel_2"),
        (" 5 ", "channel_5"),
        ("6", None),
        ("channel_6", None),
        ("calc_7", None),
        ("pos_x", None),
    ],
)
def test_normalize_binary_channel_id(given, expected) -> None:
    assert normalize_binary_channel_id(given) == expected


def test_sources_on_different_time_axes_are_not_combined() -> None:
    raw = _raw(channel_0=3, channel_1=4)
    raw["channel_1"] = Channel("channel_1", "channel_1", "V", [0.0, 2.0], [4.0, 4.0], sampling_rate=1.0)
    res = DerivedChannelEngine().compute(raw)
    assert "calc_0" not in res.channels
    assert res.unavailable["calc_0"] == "source time axes differ"
    assert "calc_0" in res.unavailable["calc_5"]
