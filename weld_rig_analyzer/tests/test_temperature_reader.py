"""Tests for temperature header detection and the temperature reader."""

from __future__ import annotations

import numpy as np
import pytest

from weld_rig_analyzer.exceptions import ParseFailure, ValidationError
from weld_rig_analyzer.ingest.channel_detect import (
    FORMAT_CHANNELS_ONLY,
    FORMAT_WELDING_ONLY,
    FORMAT_WELDING_PLUS_MULTIPLE,
    FORMAT_WELDING_PLUS_ONE,
    classify_header,
    default_display_order,
    detect_temperature_columns,
)
from weld_rig_analyzer.ingest.readers_temperature import TemperatureCsvReader, sniff_delimiter


# -----------------------------------------------------------------------
# Header detection
# -----------------------------------------------------------------------


def test_classify_header() -> None:
    assert classify_header('"Schweissen Durchschn. [°C]"', 1).channel_id == "temp_welding"
    col = classify_header("Kanal 12 Durchschn. [°C]", 3)
    assert (col.channel_id, col.channel_number, col.label) == ("temp_channel_12", 12, "Kanal 12 Durchschn.")
    assert classify_header("Kanal 2 Max [°C]", 2) is None
    assert classify_header("Durchschn.", 2) is None


def test_detect_skips_time_column_and_duplicates() -> None:
    layout = detect_temperature_columns(
        ["Schweissen Durchschn.", "Kanal 1 Durchschn.", "Kanal 1 Durchschn. (2)", "Status"]
    )
    # column 0 is always the timestamp
    assert layout.channel_ids == ["temp_channel_1"]
    assert layout.format_type == FORMAT_CHANNELS_ONLY
    assert len(layout.warnings) == 1
    assert layout.ignored_headers == ("Status",)


@pytest.mark.parametrize(
    "headers, expected",
    [
        (["t", "Schweissen Durchschn."], FORMAT_WELDING_ONLY),
        (["t", "Schweissen Durchschn.", "Kanal 1 Durchschn."], FORMAT_WELDING_PLUS_ONE),
        (["t", "Schweissen Durchschn.", "Kanal 1 Durchschn.", "Kanal 2 Durchschn."], FORMAT_WELDING_PLUS_MULTIPLE),
        (["t", "Other"], "unknown"),
    ],
)
def test_format_type(headers, expected) -> None:
    assert detect_temperature_columns(headers).format_type == expected


def test_default_display_order() -> None:
    ids = ["temp_channel_10", "temp_channel_2", "temp_welding"]
    assert default_display_order(ids) == ["temp_welding", "temp_channel_2", "temp_channel_10"]


def test_sniff_delimiter() -> None:
    assert sniff_delimiter("a;b;c") == ";"
    assert sniff_delimiter("a,b;c") == ","


# -----------------------------------------------------------------------
# Reader
# -----------------------------------------------------------------------


def test_load_aligns_time_per_channel(temperature_file) -> None:
    r = TemperatureCsvReader(temperature_file)
    cs = r.load()
    assert set(cs.channel_ids) == {"temp_welding", "temp_channel_1"}

    welding = cs.get("temp_welding")
    np.testing.assert_allclose(welding.time, [0.0, 1.0, 2.0])
    np.testing.assert_allclose(welding.values, [25.5, 26.5, 27.5])

    # row 2 has no Kanal 1 value: its sample is dropped together with its timestamp
    k1 = cs.get("temp_channel_1")
    np.testing.assert_allclose(k1.time, [0.0, 2.0])
    np.testing.assert_allclose(k1.values, [20.1, 22.1])

    md = r.metadata()
    assert md["detected_format"] == FORMAT_WELDING_PLUS_ONE
    assert md["skip_reasons"] == {"bad_timestamp": 1}
    assert md["ignored_headers"] == ["Kanal 2 Max [°C]"]
    assert r.default_display_channels() == ["temp_welding", "temp_channel_1"]
    assert md["sampling_rate"] == pytest.approx(1.0)


def test_comma_delimited_with_quoted_decimal_commas(write_file) -> None:
    text = (
        "Zeit,Schweissen Durchschn. [°C]\n"
        '"1752573600,5","30,25"\n'
        '"1752573601,5","31,75"\n'
    )
    cs = TemperatureCsvReader(write_file("temperature.csv", text)).load()
    ch = cs.get("temp_welding")
    np.testing.assert_allclose(ch.time, [0.0, 1.0])
    np.testing.assert_allclose(ch.values, [30.25, 31.75])


def test_backwards_timestamp_dropped(write_file) -> None:
    text = (
        "Zeit;Schweissen Durchschn.\n"
        "100,0;1\n"
        "102,0;2\n"
        "101,0;3\n"
        "103,0;4\n"
    )
    r = TemperatureCsvReader(write_file("temperature.csv", text))
    ch = r.load().get("temp_welding")
    np.testing.assert_allclose(ch.time, [0.0, 2.0, 3.0])
    np.testing.assert_allclose(ch.values, [1.0, 2.0, 4.0])
    assert r.metadata()["skip_reasons"] == {"non_monotonic_time": 1}


def test_overlong_row_reported_without_line_number(write_file) -> None:
    text = (
        "Zeit;Schweissen Durchschn.\n"
        "100,0;1\n"
        "101,0;2;7;8\n"
        "102,0;3\n"
    )
    r = TemperatureCsvReader(write_file("temperature.csv", text))
    cs = r.load()
    np.testing.assert_allclose(cs.get("temp_welding").values, [1.0, 3.0])
    assert r.metadata()["skip_reasons"] == {"malformed_row": 1}
    assert "unknown line: malformed_row (4 fields)" in cs.warnings


def test_no_channels_detected(write_file) -> None:
    text = "Zeit;Temperature Max\n100,0;1\n"
    with pytest.raises(ParseFailure, match="No temperature channels detected"):
        TemperatureCsvReader(write_file("temperature.csv", text)).load()


def test_no_valid_timestamps(write_file) -> None:
    text = "Zeit;Schweissen Durchschn.\nx;1\ny;2\n"
    with pytest.raises(ParseFailure, match="No valid timestamps"):
        TemperatureCsvReader(write_file("temperature.csv", text)).load()


def test_validation_needs_known_headers(write_file) -> None:
    with pytest.raises(ValidationError):
        TemperatureCsvReader(write_file("temperature.csv", "a,b\n1,2\n")).load()
