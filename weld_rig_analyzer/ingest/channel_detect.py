"""Header-based channel detection for temperature logger exports.

Temperature loggers name their columns freely; only two header shapes carry
data we plot:

- a welding-zone average, e.g. ``"Schweissen Durchschn. [°C]"``
- numbered channel averages, e.g. ``"Kanal 3 Durchschn. [°C]"``

Everything else (min/max columns, status flags, ...) is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable, List, Optional, Tuple


WELDING_CHANNEL = "temp_welding"
_KANAL_NUMBER = re.compile(r"kanal\s*(\d+)", re.IGNORECASE)

FORMAT_WELDING_ONLY = "welding_only"
FORMAT_WELDING_PLUS_ONE = "welding_plus_one"
FORMAT_WELDING_PLUS_MULTIPLE = "welding_plus_multiple"
FORMAT_CHANNELS_ONLY = "channels_only"
FORMAT_UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Detected columns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TemperatureColumn:
    """One recognised data column.

    channel_number is None for the welding-zone channel.
    """

    channel_id: str
    label: str
    column_index: int
    original_header: str
    channel_number: Optional[int] = None
    unit: str = "°C"


@dataclass(frozen=True)
class TemperatureLayout:
    columns: Tuple[TemperatureColumn, ...]
    format_type: str
    ignored_headers: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def has_welding_channel(self) -> bool:
        return any(c.channel_id == WELDING_CHANNEL for c in self.columns)

    @property
    def channel_ids(self) -> List[str]:
        return [c.channel_id for c in self.columns]


def clean_header(header: str) -> str:
    return header.replace('"', "").strip()


def classify_header(header: str, column_index: int) -> Optional[TemperatureColumn]:
    """Return the channel a header maps to, or None if the column is ignored."""
    h = clean_header(header)
    low = h.lower()
    if "durchschn" not in low:
        return None
    if "schweissen" in low:
        return TemperatureColumn(WELDING_CHANNEL, "Schweissen Durchschn.", column_index, h)
    if "kanal" in low:
        m = _KANAL_NUMBER.search(h)
        if m:
            n = int(m.group(1))
            return TemperatureColumn(f"temp_channel_{n}", f"Kanal {n} Durchschn.", column_index, h, n)
    return None


def _format_type(n_channels: int, has_welding: bool) -> str:
    if has_welding:
        if n_channels == 1:
            return FORMAT_WELDING_ONLY
        if n_channels == 2:
            return FORMAT_WELDING_PLUS_ONE
        return FORMAT_WELDING_PLUS_MULTIPLE
    if n_channels > 0:
        return FORMAT_CHANNELS_ONLY
    return FORMAT_UNKNOWN


# ---------------------------------------------------------------------------
# Layout detection
# ---------------------------------------------------------------------------


def detect_temperature_columns(headers: Iterable[str]) -> TemperatureLayout:
    """Detect temperature channels from a header row.

    Parameters
    ----------
    headers : iterable of str
        Header cells, column 0 being the timestamp column (never a channel).

    Returns
    -------
    TemperatureLayout
        Recognised columns in file order. When two columns map to the same
        channel id, the first one wins and a warning is recorded.
    """
    columns: List[TemperatureColumn] = []
    seen = set()
    ignored: List[str] = []
    warnings: List[str] = []
    for idx, header in enumerate(headers):
        if idx == 0:
            continue
        col = classify_header(header, idx)
        if col is None:
            ignored.append(clean_header(header))
            continue
        if col.channel_id in seen:
            warnings.append(f"Duplicate column for {col.channel_id} at index {idx} ignored")
            continue
        seen.add(col.channel_id)
        columns.append(col)
    has_welding = WELDING_CHANNEL in seen
    return TemperatureLayout(
        columns=tuple(columns),
        format_type=_format_type(len(columns), has_welding),
        ignored_headers=tuple(ignored),
        warnings=tuple(warnings),
    )


def default_display_order(channel_ids: Iterable[str]) -> List[str]:
    """Welding channel first, then numbered channels in numeric order."""
    ids = list(channel_ids)
    out = [WELDING_CHANNEL] if WELDING_CHANNEL in ids else []
    numbered = []
    for cid in ids:
        if cid.startswith("temp_channel_"):
            try:
                numbered.append((int(cid.rsplit("_", 1)[1]), cid))
            except ValueError:
                continue
    out.extend(cid for _, cid in sorted(numbered))
    return out
