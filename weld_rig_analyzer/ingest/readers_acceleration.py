from __future__ import annotations

import io
import logging
import re
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from weld_rig_analyzer.exceptions import ParseFailure
from weld_rig_analyzer.ingest.base import (
    MB,
    ChannelReader,
    RowSkip,
    RowSkipLog,
    SkipReason,
    ValidationReport,
    decimal_comma_to_float,
    parse_number,
    read_sample,
    read_text_lenient,
)
from weld_rig_analyzer.ingest.cancellation import CancellationToken, check_cancelled
from weld_rig_analyzer.ingest.units import relative_time_us, sampling_rate_from_interval
from weld_rig_analyzer.models.frames import Channel, ChannelSet

logger = logging.getLogger(__name__)

ACCELERATION_FORMAT = "acceleration_csv"
DEFAULT_SAMPLING_RATE_HZ = 10_000.0
SYNTHETIC_INTERVAL_US = 100.0
TIME_COLUMN_MAX_S = 10.0
AXES = ("x", "y", "z")

_NUMERIC_HINT = re.compile(r"-?\d+[.,]\d+|-?\d+[eE][+-]?\d+")
_SNIFF_LINES = 20


def sniff_delimiter(lines: List[str]) -> str:
    """Pick tab or ';' only when strictly more lines contain it than ','."""
    tab = sum(1 for ln in lines if "\t" in ln)
    comma = sum(1 for ln in lines if "," in ln)
    semi = sum(1 for ln in lines if ";" in ln)
    if tab > comma and tab > semi:
        return "\t"
    if semi > comma and semi > tab:
        return ";"
    return ","


def find_data_start(lines: List[str], sep: str) -> Optional[int]:
    """
    Index of the first data line, skipping device/info rows.

    A row whose first cell mentions 'time' is the column header (data starts
    after it); otherwise the first row with a non-negative numeric first cell
    and two further non-empty cells starts the data.
    """
    for i, line in enumerate(lines):
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        cells = [c.strip() for c in s.split(sep)]
        if "time" in cells[0].lower():
            return i + 1
        first = parse_number(cells[0])
        if first is not None and first >= 0 and len(cells) >= 3 and cells[1] and cells[2]:
            return i
    return None


class AccelerationCsvReader(ChannelReader):
    """
    Reader for 3-axis accelerometer exports (``<id>_beschleuinigung.csv``).

    Two layouts are accepted, optionally preceded by device/info rows:

      4 columns: time [s], X, Y, Z  [m*s^-2]
      3 columns: X, Y, Z            [m*s^-2]

    Without a time column the logger's fixed 10 kHz rate is assumed
    (100 us spacing) and the metadata flags ``synthetic_time``.
    Time is reported in microseconds relative to the first sample.
    """

    format_name = ACCELERATION_FORMAT
    max_file_size = 200 * MB
    time_range_fallback = (0.0, 1000.0)

    def _check_content(self, report: ValidationReport) -> None:
        sample = read_sample(self.path)
        if not any(d in sample for d in (",", ";", "\t")):
            report.errors.append("File does not appear to be delimiter-separated CSV format")
        low = sample.lower()
        if "m*s^-2" not in low and "acceleration" not in low and not _NUMERIC_HINT.search(sample):
            report.errors.append("File does not contain expected acceleration data patterns")

    def _detect_layout(self, df: pd.DataFrame) -> Tuple[bool, int]:
        """Return (has_time_column, first axis column)."""
        n_cols = df.shape[1]
        if n_cols < 3:
            raise ParseFailure(f"Expected 3 or 4 columns, found {n_cols} in {self.path.name}")
        if n_cols >= 4:
            first = decimal_comma_to_float(df.iloc[:1, 0])
            if first.size and np.isfinite(first[0]) and 0 <= first[0] < TIME_COLUMN_MAX_S:
                return True, 1
        return False, 0

    def _parse(self, cancel: Optional[CancellationToken], report: ValidationReport) -> ChannelSet:
        lines = read_text_lenient(self.path).splitlines()
        sep = sniff_delimiter(lines[:_SNIFF_LINES])
        start = find_data_start(lines, sep)
        if start is None:
            raise ParseFailure(f"No acceleration data rows found in {self.path.name}")
        check_cancelled(cancel)

        skips = RowSkipLog(source=self.path.name, cap=self.log_cap)

        def _bad_line(fields: List[str]) -> None:
            skips.add(RowSkip(None, SkipReason.MALFORMED_ROW, f"{len(fields)} fields"))
            return None

        try:
            df = pd.read_csv(
                io.StringIO("\n".join(lines[start:])),
                sep=sep,
                header=None,
                dtype=str,
                keep_default_na=False,
                comment="#",
                skip_blank_lines=True,
                engine="python",
                on_bad_lines=_bad_line,
            )
        except pd.errors.EmptyDataError:
            raise ParseFailure(f"No acceleration data rows found in {self.path.name}") from None
        except pd.errors.ParserError as e:
            raise ParseFailure(f"Cannot parse acceleration CSV {self.path.name}: {e}") from e
        df = df.fillna("")
        check_cancelled(cancel)

        has_time, off = self._detect_layout(df)
        cols = [decimal_comma_to_float(df.iloc[:, off + k]) for k in range(3)]
        t_s = decimal_comma_to_float(df.iloc[:, 0]) if has_time else None

        ok = np.isfinite(cols[0]) & np.isfinite(cols[1]) & np.isfinite(cols[2])
        if t_s is not None:
            ok &= np.isfinite(t_s)
        for idx in np.flatnonzero(~ok):
            skips.add(RowSkip(start + int(idx) + 1, SkipReason.BAD_NUMBER, ""))
        if t_s is not None:
            running_max = np.fmax.accumulate(np.where(ok, t_s, -np.inf))
            backwards = ok & (t_s < running_max)
            for idx in np.flatnonzero(backwards):
                skips.add(RowSkip(start + int(idx) + 1, SkipReason.NON_MONOTONIC_TIME, f"{t_s[idx]}"))
            ok &= ~backwards
        check_cancelled(cancel)

        n = int(np.count_nonzero(ok))
        if n == 0:
            raise ParseFailure(f"No valid acceleration rows found in {self.path.name}")

        warnings: List[str] = []
        if t_s is not None:
            time_us = relative_time_us(t_s[ok])
            fs = sampling_rate_from_interval(time_us, 1e-6, DEFAULT_SAMPLING_RATE_HZ)
        else:
            time_us = np.arange(n, dtype=np.float64) * SYNTHETIC_INTERVAL_US
            fs = DEFAULT_SAMPLING_RATE_HZ
            warnings.append(
                f"No time column; assuming {DEFAULT_SAMPLING_RATE_HZ:.0f} Hz sample spacing"
            )

        channels = {}
        for k, axis in enumerate(AXES):
            cid = f"acc_{axis}"
            channels[cid] = Channel(
                cid,
                f"Acceleration {axis.upper()}",
                "m/s²",
                time_us,
                cols[k][ok],
                sampling_rate=fs,
                extra={"axis": axis.upper(), "column_index": off + k},
            )

        warnings.extend(skips.messages())
        logger.info(
            "%s: %d rows (%s time column), %.1f Hz, %d skipped",
            self.path.name, n, "with" if has_time else "no", fs, skips.total,
        )
        metadata = {
            "format_type": ACCELERATION_FORMAT,
            "delimiter": sep,
            "data_start_line": start + 1,
            "has_time_column": has_time,
            "synthetic_time": not has_time,
            "column_count": int(df.shape[1]),
            "valid_rows": n,
            "skipped_rows": skips.total,
            "skip_reasons": skips.summary(),
            "sampling_rate": fs,
        }
        return self._build_set(
            channels,
            metadata,
            warnings,
            default_channels=("acc_x", "acc_y", "acc_z"),
            file_size=report.file_size,
        )
