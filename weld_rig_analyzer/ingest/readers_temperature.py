from __future__ import annotations

import io
import logging
from typing import Dict, List, Optional

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
    read_sample,
    read_text_lenient,
)
from weld_rig_analyzer.ingest.cancellation import CancellationToken, check_cancelled
from weld_rig_analyzer.ingest.channel_detect import default_display_order, detect_temperature_columns
from weld_rig_analyzer.ingest.units import relative_seconds, sampling_rate_from_interval
from weld_rig_analyzer.models.frames import Channel, ChannelSet

logger = logging.getLogger(__name__)

TEMPERATURE_FORMAT = "temperature_csv"
DEFAULT_SAMPLING_RATE_HZ = 10.0
_CONTENT_HINTS = ("schweissen", "kanal", "temperature")


def sniff_delimiter(header_line: str) -> str:
    return ";" if header_line.count(";") > header_line.count(",") else ","


class TemperatureCsvReader(ChannelReader):
    """
    Reader for temperature logger exports (``temperature*.csv``).

    - One header row; column 0 holds unix timestamps (seconds) in decimal-comma notation.
    - Data columns are recognised from their headers (see ``channel_detect``).
    - Time is relative seconds from the first valid timestamp.
    - A channel keeps only the rows where its own value parses; its time axis is
      taken from the same rows.
    """

    format_name = TEMPERATURE_FORMAT
    max_file_size = 100 * MB
    time_range_fallback = (0.0, 1.0)

    def _check_content(self, report: ValidationReport) -> None:
        sample = read_sample(self.path)
        if "," not in sample and ";" not in sample:
            report.errors.append("File does not appear to be CSV format")
        low = sample.lower()
        if not any(h in low for h in _CONTENT_HINTS):
            report.errors.append("File does not contain expected temperature data headers")

    def _read_table(self, text: str, skips: RowSkipLog) -> pd.DataFrame:
        header_line = text.split("\n", 1)[0]
        sep = sniff_delimiter(header_line)

        def _bad_line(fields: List[str]) -> None:
            skips.add(RowSkip(None, SkipReason.MALFORMED_ROW, f"{len(fields)} fields"))
            return None

        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=sep,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                engine="python",
                on_bad_lines=_bad_line,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ParseFailure(f"Cannot parse temperature CSV {self.path.name}: {e}") from e
        return df.fillna("")

    def _parse(self, cancel: Optional[CancellationToken], report: ValidationReport) -> ChannelSet:
        text = read_text_lenient(self.path)
        skips = RowSkipLog(source=self.path.name, cap=self.log_cap)
        check_cancelled(cancel)
        df = self._read_table(text, skips)
        check_cancelled(cancel)

        headers = [str(c) for c in df.columns]
        layout = detect_temperature_columns(headers)
        if not layout.columns:
            raise ParseFailure(f"No temperature channels detected in {self.path.name}")
        if df.empty:
            raise ParseFailure(f"No data rows found in {self.path.name}")

        ts = decimal_comma_to_float(df.iloc[:, 0])
        valid = np.isfinite(ts)
        for idx in np.flatnonzero(~valid):
            skips.add(RowSkip(int(idx) + 2, SkipReason.BAD_TIMESTAMP, str(df.iat[int(idx), 0])[:40]))
        if not np.any(valid):
            raise ParseFailure(f"No valid timestamps found in {self.path.name}")

        # drop rows whose timestamp goes backwards relative to everything before
        running_max = np.fmax.accumulate(np.where(valid, ts, -np.inf))
        backwards = valid & (ts < running_max)
        for idx in np.flatnonzero(backwards):
            skips.add(RowSkip(int(idx) + 2, SkipReason.NON_MONOTONIC_TIME, f"{ts[idx]}"))
        keep = valid & ~backwards

        ts_kept = ts[keep]
        rel = relative_seconds(ts_kept)
        fs = sampling_rate_from_interval(ts_kept, 1.0, DEFAULT_SAMPLING_RATE_HZ)

        warnings: List[str] = list(layout.warnings)
        channels: Dict[str, Channel] = {}
        for col in layout.columns:
            check_cancelled(cancel)
            vals = decimal_comma_to_float(df.iloc[:, col.column_index])[keep]
            ok = np.isfinite(vals)
            if not np.any(ok):
                msg = f"Channel {col.channel_id} ('{col.original_header}') has no valid values"
                logger.warning("%s: %s", self.path.name, msg)
                warnings.append(msg)
                continue
            if not np.all(ok):
                warnings.append(f"Channel {col.channel_id}: {int(np.count_nonzero(~ok))} empty/invalid values dropped")
            extra = {"original_header": col.original_header, "column_index": col.column_index}
            if col.channel_number is not None:
                extra["channel_number"] = col.channel_number
            channels[col.channel_id] = Channel(
                col.channel_id, col.label, col.unit, rel[ok], vals[ok], sampling_rate=fs, extra=extra,
            )

        if not channels:
            raise ParseFailure(f"No temperature channels could be processed in {self.path.name}")

        warnings.extend(skips.messages())
        logger.info(
            "%s: %d rows, %d channels (%s), %d rows skipped",
            self.path.name, int(np.count_nonzero(keep)), len(channels), layout.format_type, skips.total,
        )
        metadata = {
            "format_type": TEMPERATURE_FORMAT,
            "detected_format": layout.format_type,
            "has_welding_channel": layout.has_welding_channel,
            "row_count": int(len(df)),
            "valid_rows": int(np.count_nonzero(keep)),
            "skipped_rows": skips.total,
            "skip_reasons": skips.summary(),
            "column_count": len(headers),
            "headers": headers,
            "ignored_headers": list(layout.ignored_headers),
            "sampling_rate": fs,
            "channel_mapping": {
                c.channel_id: {"original_header": c.original_header, "column_index": c.column_index, "label": c.label, "unit": c.unit}
                for c in layout.columns
            },
        }
        return self._build_set(
            channels,
            metadata,
            warnings,
            default_channels=tuple(default_display_order(channels.keys())),
            file_size=report.file_size,
        )
