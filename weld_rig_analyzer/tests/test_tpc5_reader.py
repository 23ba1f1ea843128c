"""Tests for the TPC5 (HDF5) reader: calibration, min/max interleaving, derived channels."""

from __future__ import annotations

import h5py
import numpy as np
import pytest

from conftest import constant_pairs
from weld_rig_analyzer.exceptions import ValidationError
from weld_rig_analyzer.ingest.readers_binary import (
    BASE_SAMPLING_RATE_HZ,
    Tpc5Reader,
    choose_stride,
    common_stride,
    interleave_min_max,
)


# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


def test_choose_stride() -> None:
    assert choose_stride([32, 128, 512], 128) == 128
    assert choose_stride([32, 256, 512], 128) == 256
    assert choose_stride([16, 32], 128) == 32
    assert choose_stride([], 128) is None


def test_common_stride() -> None:
    assert common_stride({"a": [128, 256], "b": [128]}, 128) == 128
    assert common_stride({"a": [128, 256], "b": [256]}, 128) == 256
    # no stride shared by all: the most widely stored wins
    assert common_stride({"a": [128], "b": [128], "c": [256]}, 256) == 128
    # tie between 128 and 256: requested preference decides
    assert common_stride({"a": [128], "b": [256]}, 128) == 128
    assert common_stride({"a": [128], "b": [256]}, 256) == 256
    assert common_stride({}, 128) is None


def test_interleave_min_max() -> None:
    t, v = interleave_min_max(np.array([[-1, 1], [-2, 2]]), dt=2.0)
    np.testing.assert_array_equal(t, [0.0, 1.0, 2.0, 3.0])
    np.testing.assert_array_equal(v, [-1.0, 1.0, -2.0, 2.0])


def test_interleave_rejects_bad_shape() -> None:
    with pytest.raises(ValueError):
        interleave_min_max(np.zeros((2, 3)), dt=1.0)
    with pytest.raises(ValueError):
        interleave_min_max(np.zeros(3), dt=1.0)


# -----------------------------------------------------------------------
# Reader
# -----------------------------------------------------------------------


def test_load_raw_and_derived(tpc5_file) -> None:
    r = Tpc5Reader(tpc5_file)
    cs = r.load()

    raw = [f"channel_{i}" for i in range(6)]
    derived = [f"calc_{i}" for i in range(6)]
    assert cs.channel_ids == raw + derived

    ch0 = cs.get("channel_0")
    assert ch0.label == "CH1"
    dt = 128 / BASE_SAMPLING_RATE_HZ
    np.testing.assert_allclose(ch0.time, [0.0, dt / 2, dt, 1.5 * dt])
    assert ch0.sampling_rate == pytest.approx(BASE_SAMPLING_RATE_HZ / 128)

    np.testing.assert_allclose(cs.get("calc_0").values, -7.0)
    np.testing.assert_allclose(cs.get("calc_3").values, 490.0)
    np.testing.assert_allclose(cs.get("calc_5").values, 0.4)

    md = r.metadata()
    assert md["downsampling"] == 128
    assert md["resolution_floor_s"] == pytest.approx(1.28e-5)
    assert md["trigger_sample"] == 64
    assert md["start_time"] == "2025-07-15T10:00:00"
    # calc_6 needs channel_6/channel_7, which this format never has
    assert list(md["unavailable_channels"]) == ["calc_6"]
    assert "calc_6" not in cs.channel_ids
    assert r.default_display_channels() == raw + derived


def test_two_stage_calibration(tmp_path, tpc5_writer) -> None:
    attrs = {
        "ChannelName": "UL3",
        "physicalUnit": "kV",
        "binToVoltFactor": 0.001,
        "binToVoltConstant": 0.0,
        "voltToPhysicalFactor": 10.0,
        "voltToPhysicalConstant": 0.0,
    }
    path = tpc5_writer(tmp_path / "x.tpc5", {"00000001": (np.array([[1000, 1000]]), attrs)})
    r = Tpc5Reader(path)
    cs = r.load()
    ch = cs.get("channel_0")
    assert ch.unit == "kV"
    np.testing.assert_allclose(ch.values, [10.0, 10.0])
    assert cs.channel_ids == ["channel_0"]
    assert len(r.metadata()["unavailable_channels"]) == 7
    assert any("00000002" in w for w in cs.warnings)


def test_missing_stride_uses_next_stored(tmp_path, tpc5_writer, welding_tpc5_channels) -> None:
    path = tpc5_writer(tmp_path / "x.tpc5", welding_tpc5_channels, strides=(256, 1024))
    r = Tpc5Reader(path, stride=128)
    cs = r.load()
    assert r.metadata()["downsampling"] == 256
    assert r.metadata()["available_strides"] == [256, 1024]
    assert cs.get("channel_0").extra["downsampling"] == 256
    assert any("data@128 not stored" in w for w in cs.warnings)


def test_structure_validation(tmp_path) -> None:
    path = tmp_path / "bad.tpc5"
    with h5py.File(path, "w") as f:
        f.create_group("something_else")
    with pytest.raises(ValidationError, match="measurements"):
        Tpc5Reader(path).load()


def test_not_hdf5(tmp_path) -> None:
    path = tmp_path / "bad.tpc5"
    path.write_bytes(b"not an hdf5 container")
    report = Tpc5Reader(path).validate()
    assert not report.ok
    assert report.errors[0].startswith("Cannot open HDF5 file")


def test_invalid_stride_argument(tpc5_file) -> None:
    with pytest.raises(ValueError):
        Tpc5Reader(tpc5_file, stride=0)


def test_channel_at_other_stride_is_skipped(tmp_path, tpc5_writer, welding_tpc5_channels) -> None:
    channels = dict(welding_tpc5_channels)
    channels["00000002"] = (constant_pairs(4, n=8), channels["00000002"][1])
    path = tpc5_writer(tmp_path / "x.tpc5", channels, channel_strides={"00000002": (256,)})
    r = Tpc5Reader(path)
    cs = r.load()

    assert "channel_1" not in cs.channel_ids
    assert any("Channel 00000002: data@128 not stored" in w for w in cs.warnings)
    md = r.metadata()
    assert md["downsampling"] == 128
    assert md["available_strides"] == [128, 256]
    assert set(md["unavailable_channels"]) == {"calc_0", "calc_5", "calc_6"}
    np.testing.assert_allclose(cs.get("calc_3").values, 490.0)
    assert all(ch.extra["downsampling"] == 128 for ch in cs.channels.values())


def test_differential_never_mixes_strides(tmp_path, tpc5_writer) -> None:
    path = tpc5_writer(
        tmp_path / "x.tpc5",
        {
            "00000001": (constant_pairs(3, n=4), {"ChannelName": "A1"}),
            "00000002": (constant_pairs(4, n=8), {"ChannelName": "A2"}),
        },
        channel_strides={"00000001": (128,), "00000002": (256,)},
    )
    cs = Tpc5Reader(path).load()
    assert cs.channel_ids == ["channel_0"]
    assert "calc_0" not in cs.channel_ids
