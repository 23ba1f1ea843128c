from __future__ import annotations

from datetime import datetime
import logging
import re
from typing import List, Optional

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
from weld_rig_analyzer.ingest.units import position_mm, position_relative_time, sampling_rate_from_interval
from weld_rig_analyzer.models.frames import Channel, ChannelSet

logger = logging.getLogger(__name__)

POSITION_FORMAT = "position_tab_delimited"
POSITION_CHANNEL = "pos_x"
DEFAULT_SAMPLING_RATE_HZ = 1000.0

_DATETIME_SEARCH = re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{6}")
_DATETIME_FULL = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{6}$")

_CANCEL_CHECK_EVERY = 4096


def parse_position_datetime(token: str) -> Optional[datetime]:
    """``yyyy-MM-dd HH:mm:ss.ffffff`` -> datetime, or None if malformed / not a real date."""
    s = token.strip()
    if not _DATETIME_FULL.match(s):
        return None
    try:
        return datetime.strptime(s, "%Y-%m-%d %H:%M:%S.%f")
    except ValueError:
        return None


class PositionCsvReader(ChannelReader):
    """
    Reader for optoNCDT position snapshots (``snapshot_optoNCDT-*.csv``).

    Layout (no header, one sample per line, tab separated):

        <yyyy-MM-dd HH:mm:ss.ffffff> <TAB> <unix seconds.fraction> <TAB> <raw position>

    Lines starting with '#' are comments.

    Output: one time-series channel ``pos_x`` in mm, ``pos = -1 * raw + 49.73``,
    time = ``(unix - unix[0]) * 1000``.
    """

    format_name = POSITION_FORMAT
    max_file_size = 50 * MB
    time_range_fallback = (0.0, 1000.0)

    def _check_content(self, report: ValidationReport) -> None:
        sample = read_sample(self.path)
        if "\t" not in sample:
            report.errors.append("File does not appear to be tab-delimited")
        if not _DATETIME_SEARCH.search(sample):
            report.errors.append("File does not contain expected datetime format (yyyy-MM-dd HH:mm:ss.ffffff)")

    def _parse(self, cancel: Optional[CancellationToken], report: ValidationReport) -> ChannelSet:
        text = read_text_lenient(self.path)
        skips = RowSkipLog(source=self.path.name, cap=self.log_cap)

        datetimes: List[str] = []
        unix: List[float] = []
        raw: List[float] = []
        comment_lines = 0
        total_lines = 0
        last_t = -np.inf

        for i, raw_line in enumerate(text.splitlines(), start=1):
            if i % _CANCEL_CHECK_EVERY == 0:
                check_cancelled(cancel)
            line = raw_line.strip()
            if not line:
                continue
            total_lines += 1
            if line.startswith("#"):
                comment_lines += 1
                continue

            fields = line.split("\t")
            if len(fields) < 3:
                skips.add(RowSkip(i, SkipReason.TOO_FEW_FIELDS, f"{len(fields)} fields"))
                continue
            if parse_position_datetime(fields[0]) is None:
                skips.add(RowSkip(i, SkipReason.BAD_TIMESTAMP, fields[0].strip()[:40]))
                continue
            t = parse_number(fields[1])
            p = parse_number(fields[2])
            if t is None or p is None:
                skips.add(RowSkip(i, SkipReason.BAD_NUMBER, f"{fields[1]!r}, {fields[2]!r}"))
                continue
            if t < last_t:
                skips.add(RowSkip(i, SkipReason.NON_MONOTONIC_TIME, f"{t} < {last_t}"))
                continue

            datetimes.append(fields[0].strip())
            unix.append(t)
            raw.append(p)
            last_t = t

        check_cancelled(cancel)
        if not unix:
            raise ParseFailure(f"No valid data lines found in {self.path.name}")

        unix_arr = np.asarray(unix, dtype=np.float64)
        raw_arr = np.asarray(raw, dtype=np.float64)
        fs = sampling_rate_from_interval(unix_arr, 1.0, DEFAULT_SAMPLING_RATE_HZ)

        ch = Channel(
            channel_id=POSITION_CHANNEL,
            label="Position X",
            unit="mm",
            time=position_relative_time(unix_arr),
            values=position_mm(raw_arr),
            sampling_rate=fs,
            extra={
                "original_header": "Raw Position",
                "column_index": 2,
                "raw_time_range": {
                    "start": float(unix_arr[0]),
                    "end": float(unix_arr[-1]),
                    "duration": float(unix_arr[-1] - unix_arr[0]),
                },
                "datetime_range": {"start": datetimes[0], "end": datetimes[-1]},
            },
        )

        warnings = skips.messages()
        logger.info(
            "%s: %d valid lines, %d skipped, %d comments, %.1f Hz",
            self.path.name, len(unix), skips.total, comment_lines, fs,
        )
        metadata = {
            "format_type": POSITION_FORMAT,
            "total_lines": total_lines,
            "valid_lines": len(unix),
            "comment_lines": comment_lines,
            "skipped_lines": skips.total,
            "skip_reasons": skips.summary(),
            "sampling_rate": fs,
            "channel_mapping": {
                POSITION_CHANNEL: {"original_header": "Raw Position", "column_index": 2, "label": "Position X", "unit": "mm"},
            },
        }
        return self._build_set(
            {POSITION_CHANNEL: ch},
            metadata,
            warnings,
            default_channels=(POSITION_CHANNEL,),
            file_size=report.file_size,
        )
