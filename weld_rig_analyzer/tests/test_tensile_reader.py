"""Tests for the tensile (semicolon, coordinate-pair) reader."""

from __future__ import annotations

import numpy as np
import pytest

from conftest import TENSILE_TEXT
from weld_rig_analyzer.exceptions import ParseFailure
from weld_rig_analyzer.ingest.readers_tensile import (
    CoordinatePair,
    TensileCsvReader,
    parse_coordinate_pair,
    parse_german_datetime,
    parse_header_metadata,
)


# -----------------------------------------------------------------------
# Token parsers
# -----------------------------------------------------------------------


def test_coordinate_pair_literal() -> None:
    assert parse_coordinate_pair("{X=0.013733, Y=2.268685}") == CoordinatePair(0.013733, 2.268685)


@pytest.mark.parametrize("token", ["{X=1, Ybroken}", "X=1, Y=2", "", "{X=a, Y=2}"])
def test_coordinate_pair_malformed(token) -> None:
    assert parse_coordinate_pair(token) is None


def test_german_datetime() -> None:
    dt = parse_german_datetime("15.07.2025 10:30:05")
    assert (dt.year, dt.month, dt.day, dt.second) == (2025, 7, 15, 5)
    assert parse_german_datetime("31.02.2025 10:30:05") is None
    assert parse_german_datetime("2025-07-15 10:30:05") is None


def test_header_metadata_mapping() -> None:
    md = parse_header_metadata(
        ["Test-Nr.", "Nominale Testkraft [kN]", "Datum", "Custom"],
        ["T-9", "1200,5", "01.08.2025 07:00:00", "x"],
    )
    assert md["test_number"] == "T-9"
    assert md["nominal_force"] == pytest.approx(1200.5)
    assert md["test_date"] == "2025-08-01T07:00:00"
    assert md["test_date_string"] == "01.08.2025 07:00:00"
    assert md["Custom"] == "x"


# -----------------------------------------------------------------------
# Reader
# -----------------------------------------------------------------------


def test_load_channels(tensile_file) -> None:
    r = TensileCsvReader(tensile_file)
    cs = r.load()
    assert cs.channel_ids == ["force_kN", "displacement_mm", "force_vs_displacement"]

    force = cs.get("force_kN")
    np.testing.assert_allclose(force.time, [0.0, 0.1, 0.2, 0.3])
    np.testing.assert_allclose(force.values, [0.0, 2.268685, 100.0, 80.0])

    xy = cs.get("force_vs_displacement")
    assert xy.is_xy
    assert (xy.x_label, xy.x_unit) == ("Displacement", "mm")
    np.testing.assert_allclose(xy.x, [0.0, 0.013733, 0.5, 0.4])

    md = r.metadata()
    assert md["header_metadata"]["test_number"] == "T-001"
    assert md["header_metadata"]["deformation_distance"] == pytest.approx(25.5)
    assert md["header_metadata"]["Sonderfeld"] == "abc"
    assert md["cross_check_mismatches"] == 0
    assert r.default_display_channels() == ["force_vs_displacement", "force_kN", "displacement_mm"]
    assert r.time_range() == (0.0, pytest.approx(0.3))


def test_cross_check_mismatch_is_warning(write_file) -> None:
    text = TENSILE_TEXT + "{X=0.6, Y=90.0};{X=0.4, Y=95.0};{X=0.4, Y=0.6}\n"
    r = TensileCsvReader(write_file("t_redalsa.csv", text))
    cs = r.load()
    assert cs.get("force_kN").n_points == 5
    assert r.metadata()["cross_check_mismatches"] == 1
    assert any("mismatch" in w for w in cs.warnings)


def test_malformed_pair_row_skipped(write_file) -> None:
    text = TENSILE_TEXT + "{X=1, Ybroken};{X=0.5, Y=1.0};{X=0.5, Y=1.0}\n"
    r = TensileCsvReader(write_file("t_redalsa.csv", text))
    cs = r.load()
    assert cs.get("force_kN").n_points == 4
    assert r.metadata()["skip_reasons"] == {"bad_coordinate_pair": 1}


def test_label_mismatch_and_separator_warnings(write_file) -> None:
    lines = TENSILE_TEXT.splitlines()
    lines[2] = "unexpected"
    lines[3] = "FORCE/WAY DATA;FORCE/TIME;WAY/TIME DATA"
    cs = TensileCsvReader(write_file("t_redalsa.csv", "\n".join(lines) + "\n")).load()
    assert any("separator" in w for w in cs.warnings)
    assert any("column 1" in w for w in cs.warnings)


def test_missing_section_labels_fail(write_file) -> None:
    lines = TENSILE_TEXT.splitlines()
    lines[3] = "FORCE/WAY DATA;FORCE/TIME DATA"
    with pytest.raises(ParseFailure, match="section headers"):
        TensileCsvReader(write_file("t_redalsa.csv", "\n".join(lines) + "\n")).load()


def test_no_valid_rows_fail(write_file) -> None:
    lines = TENSILE_TEXT.splitlines()[:4] + ["{X=1, Ybroken};{X=1, Y=2};{X=1, Y=2}"]
    with pytest.raises(ParseFailure, match="No valid coordinate data"):
        TensileCsvReader(write_file("t_redalsa.csv", "\n".join(lines) + "\n")).load()
