from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from weld_rig_analyzer.exceptions import ParseFailure
from weld_rig_analyzer.ingest.base import (
    MB,
    ChannelReader,
    RowSkip,
    RowSkipLog,
    SkipReason,
    ValidationReport,
    parse_number,
    read_sample,
    read_text_lenient,
)
from weld_rig_analyzer.ingest.cancellation import CancellationToken, check_cancelled
from weld_rig_analyzer.ingest.units import sampling_rate_from_interval
from weld_rig_analyzer.models.frames import XY_RELATIONSHIP, Channel, ChannelSet

logger = logging.getLogger(__name__)

TENSILE_FORMAT = "tensile_semicolon_delimited"
SECTION_LABELS = ("FORCE/WAY DATA", "FORCE/TIME DATA", "WAY/TIME DATA")
CROSS_CHECK_EPS = 0.001
CROSS_CHECK_LOG_CAP = 3
DEFAULT_SAMPLING_RATE_HZ = 1.0

_PAIR = re.compile(r"\{X=([0-9.-]+),\s*Y=([0-9.-]+)\}")
_GERMAN_DATETIME = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{1,2}):(\d{1,2})$")

# header name -> (metadata key, numeric?)
HEADER_FIELDS: Dict[str, Tuple[str, bool]] = {
    "Test-Nr.": ("test_number", False),
    "Schienentyp": ("rail_type", False),
    "Bemerkung Schienentyp": ("rail_type_comment", False),
    "Bemerkung Test": ("test_comment", False),
    "Deformations Weg [mm]": ("deformation_distance", True),
    "Min. Deformation [mm]": ("min_deformation", True),
    "Nominale Testkraft [kN]": ("nominal_force", True),
    "Min. Kraft-Limite [kN]": ("min_force_limit", True),
    "gew. Schienenmark.": ("rail_mark", False),
    "Konvaven Schienenmark.": ("convex_rail_mark", False),
    "Nr. Schweissmaschine": ("welding_machine_number", False),
    "Name/Nr. Schweisser": ("welder_name", False),
    "Materialgüte": ("material_grade", False),
    "Geprueft von": ("tested_by", False),
}


@dataclass(frozen=True)
class CoordinatePair:
    x: float
    y: float


def parse_coordinate_pair(token: str) -> Optional[CoordinatePair]:
    """``"{X=0.013733, Y=2.268685}"`` -> CoordinatePair(0.013733, 2.268685); None if malformed."""
    m = _PAIR.search(token.strip())
    if not m:
        return None
    try:
        return CoordinatePair(float(m.group(1)), float(m.group(2)))
    except ValueError:
        return None


def parse_german_datetime(text: str) -> Optional[datetime]:
    """``DD.MM.YYYY HH:mm:ss`` -> datetime; None if malformed or not a real date."""
    m = _GERMAN_DATETIME.match(text.strip())
    if not m:
        return None
    d, mo, y, h, mi, s = (int(g) for g in m.groups())
    try:
        return datetime(y, mo, d, h, mi, s)
    except ValueError:
        return None


def parse_header_metadata(names: List[str], values: List[str]) -> Dict[str, Any]:
    """Map the two metadata rows (German field names / values) to a dict.

    Known fields are renamed (see HEADER_FIELDS) and numeric ones converted;
    ``Datum`` yields ``test_date`` (ISO string or None) plus the raw
    ``test_date_string``. Unknown fields are kept under their original name.
    """
    out: Dict[str, Any] = {}
    for name, value in zip(names, values):
        name = name.strip()
        value = value.strip()
        if not name:
            continue
        if name == "Datum":
            dt = parse_german_datetime(value)
            out["test_date"] = dt.isoformat() if dt is not None else None
            out["test_date_string"] = value
            continue
        key, numeric = HEADER_FIELDS.get(name, (name, False))
        out[key] = parse_number(value) if numeric else value
    return out


class TensileCsvReader(ChannelReader):
    """
    Reader for tensile test exports (``*redalsa.csv``).

    Layout (semicolon separated):

      row 0      metadata field names (German)
      row 1      metadata values
      row 2      empty separator
      row 3      section labels: FORCE/WAY DATA; FORCE/TIME DATA; WAY/TIME DATA
      rows 4..   {X=disp, Y=force}; {X=time, Y=force}; {X=time, Y=disp}

    Each data row becomes one (force [kN], displacement [mm], time [s]) sample.
    Disagreement between the three pairs beyond CROSS_CHECK_EPS is a warning only.
    """

    format_name = TENSILE_FORMAT
    max_file_size = 10 * MB
    time_range_fallback = (0.0, 10.0)

    def _check_content(self, report: ValidationReport) -> None:
        sample = read_sample(self.path)
        if ";" not in sample:
            report.errors.append("File does not appear to be semicolon-separated")
        if "Test-Nr." not in sample:
            report.errors.append("File does not contain expected tensile CSV headers")
        if "{X=" not in sample or "Y=" not in sample:
            report.errors.append("File does not contain expected coordinate pair format {X=value, Y=value}")

    def _parse(self, cancel: Optional[CancellationToken], report: ValidationReport) -> ChannelSet:
        rows = [line.split(";") for line in read_text_lenient(self.path).splitlines()]
        if len(rows) < 5:
            raise ParseFailure(
                f"Tensile CSV file too short: {len(rows)} rows (expected at least 5)"
            )

        warnings: List[str] = []
        header_metadata = parse_header_metadata(rows[0], rows[1])

        if any(c.strip() for c in rows[2]):
            msg = "Expected empty separator row at line 3, found content"
            logger.warning("%s: %s", self.path.name, msg)
            warnings.append(msg)

        labels = [c.strip() for c in rows[3]]
        if len(labels) < 3:
            raise ParseFailure("Missing or incomplete data section headers")
        for i, expected in enumerate(SECTION_LABELS):
            if labels[i] != expected:
                msg = f"Data header mismatch at column {i}: expected '{expected}', got '{labels[i]}'"
                logger.warning("%s: %s", self.path.name, msg)
                warnings.append(msg)

        skips = RowSkipLog(source=self.path.name, cap=self.log_cap)
        force: List[float] = []
        disp: List[float] = []
        time: List[float] = []
        mismatches = 0
        last_t = -np.inf

        for i, row in enumerate(rows[4:], start=5):
            check_cancelled(cancel)
            if len(row) < 3:
                if any(c.strip() for c in row):
                    skips.add(RowSkip(i, SkipReason.TOO_FEW_FIELDS, f"{len(row)} fields"))
                continue
            fw = parse_coordinate_pair(row[0])
            ft = parse_coordinate_pair(row[1])
            wt = parse_coordinate_pair(row[2])
            if fw is None or ft is None or wt is None:
                skips.add(RowSkip(i, SkipReason.BAD_COORDINATE_PAIR, ";".join(row[:3])[:80]))
                continue
            if ft.x < last_t:
                skips.add(RowSkip(i, SkipReason.NON_MONOTONIC_TIME, f"{ft.x} < {last_t}"))
                continue

            consistent = (
                abs(fw.y - ft.y) < CROSS_CHECK_EPS
                and abs(ft.x - wt.x) < CROSS_CHECK_EPS
                and abs(fw.x - wt.y) < CROSS_CHECK_EPS
            )
            if not consistent:
                mismatches += 1
                if mismatches <= CROSS_CHECK_LOG_CAP:
                    msg = f"line {i}: force/time/displacement mismatch between coordinate pairs"
                    logger.warning("%s: %s", self.path.name, msg)
                    warnings.append(msg)

            force.append(fw.y)
            disp.append(fw.x)
            time.append(ft.x)
            last_t = ft.x

        if not force:
            raise ParseFailure(f"No valid coordinate data found in {self.path.name}")

        t = np.asarray(time, dtype=np.float64)
        f = np.asarray(force, dtype=np.float64)
        d = np.asarray(disp, dtype=np.float64)
        fs = sampling_rate_from_interval(t, 1.0, DEFAULT_SAMPLING_RATE_HZ)
        warnings.extend(skips.messages())

        channels = {
            "force_kN": Channel(
                "force_kN", "Force", "kN", t, f, sampling_rate=fs,
                extra={"original_header": "FORCE/TIME DATA", "column_index": 1},
            ),
            "displacement_mm": Channel(
                "displacement_mm", "Displacement", "mm", t, d, sampling_rate=fs,
                extra={"original_header": "WAY/TIME DATA", "column_index": 2},
            ),
            "force_vs_displacement": Channel(
                "force_vs_displacement", "Force", "kN", d, f,
                kind=XY_RELATIONSHIP,
                x_label="Displacement",
                x_unit="mm",
                extra={"original_header": "FORCE/WAY DATA", "column_index": 0},
            ),
        }
        logger.info(
            "%s: %d valid rows, %d skipped, %d cross-check mismatches",
            self.path.name, len(force), skips.total, mismatches,
        )
        metadata = {
            "format_type": TENSILE_FORMAT,
            "delimiter": ";",
            "total_lines": len(rows),
            "valid_data_lines": len(force),
            "skipped_lines": skips.total,
            "skip_reasons": skips.summary(),
            "cross_check_mismatches": mismatches,
            "sampling_rate": fs,
            "header_metadata": header_metadata,
        }
        return self._build_set(
            channels,
            metadata,
            warnings,
            default_channels=("force_vs_displacement", "force_kN", "displacement_mm"),
            file_size=report.file_size,
        )
