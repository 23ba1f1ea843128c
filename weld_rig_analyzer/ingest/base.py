"""Shared reader contract, validation report and row-skip bookkeeping.

Every format reader follows the same life cycle:

1. ``validate()`` -- cheap structural/size checks, returns a :class:`ValidationReport`
2. ``load()`` -- one deterministic parse pass; either a complete
   :class:`~weld_rig_analyzer.models.frames.ChannelSet` is stored, or an
   exception is raised and nothing is exposed
3. accessors -- ``metadata()``, ``channel()``, ``all_channels()``, ``time_range()``

Per-row problems never raise. Each rejected row is recorded as a
:class:`RowSkip` in a :class:`RowSkipLog`, which keeps counts per reason and
logs only the first few.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from weld_rig_analyzer.exceptions import NotFound, ValidationError
from weld_rig_analyzer.ingest.cancellation import CancellationToken
from weld_rig_analyzer.models.frames import Channel, ChannelSet

logger = logging.getLogger(__name__)

MB = 1024 * 1024
SAMPLE_BYTES = 2048
DEFAULT_LOG_CAP = 5


# ---------------------------------------------------------------------------
# Validation report
# ---------------------------------------------------------------------------


@dataclass
class ValidationReport:
    """Accumulated diagnostics of a pre-parse check."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    file_size: Optional[int] = None

    @property
    def ok(self) -> bool:
        return len(self.errors) == 0

    def raise_if_errors(self, context: str = "File validation failed") -> None:
        if self.errors:
            raise ValidationError(context, diagnostics=self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "file_size": self.file_size,
        }


# ---------------------------------------------------------------------------
# Row outcomes
# ---------------------------------------------------------------------------


class SkipReason(str, Enum):
    TOO_FEW_FIELDS = "too_few_fields"
    MALFORMED_ROW = "malformed_row"
    BAD_TIMESTAMP = "bad_timestamp"
    BAD_NUMBER = "bad_number"
    BAD_COORDINATE_PAIR = "bad_coordinate_pair"
    NON_MONOTONIC_TIME = "non_monotonic_time"


@dataclass(frozen=True)
class RowSkip:
    line_no: Optional[int]
    reason: SkipReason
    detail: str = ""

    def describe(self) -> str:
        where = "unknown line" if self.line_no is None else f"line {self.line_no}"
        msg = f"{where}: {self.reason.value}"
        return f"{msg} ({self.detail})" if self.detail else msg


class RowSkipLog:
    """Counts skipped rows per reason and keeps the first ``cap`` of them."""

    def __init__(self, source: str = "", cap: int = DEFAULT_LOG_CAP):
        self.source = source
        self.cap = int(cap)
        self.counts: Dict[SkipReason, int] = {}
        self.first: List[RowSkip] = []

    def add(self, skip: RowSkip) -> None:
        self.counts[skip.reason] = self.counts.get(skip.reason, 0) + 1
        if len(self.first) < self.cap:
            self.first.append(skip)
            logger.warning("%s: skipped %s", self.source or "<input>", skip.describe())

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def summary(self) -> Dict[str, int]:
        return {r.value: n for r, n in self.counts.items()}

    def messages(self) -> List[str]:
        out = [s.describe() for s in self.first]
        if self.total > len(self.first):
            out.append(f"... {self.total - len(self.first)} more rows skipped")
        return out


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def read_sample(path: Path, n_bytes: int = SAMPLE_BYTES) -> str:
    """First ``n_bytes`` of a file decoded leniently (for format sniffing)."""
    with open(path, "rb") as fh:
        head = fh.read(n_bytes)
    return head.decode("utf-8", errors="replace")


def read_text_lenient(path: Path) -> str:
    """
    Read a whole text file.

    Rig exports are UTF-8 (sometimes with BOM) or Windows-1252 for the older
    German-language machines; try them in that order.
    """
    raw = Path(path).read_bytes()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("cp1252", errors="replace")


def parse_number(token: str) -> Optional[float]:
    """
    Parse a numeric cell written with either decimal point or decimal comma.

    Quotes are stripped and the first ``,`` becomes ``.``. Returns None for
    empty, non-numeric or non-finite input.
    """
    s = token.replace('"', "").strip()
    if not s:
        return None
    s = s.replace(",", ".", 1)
    try:
        v = float(s)
    except ValueError:
        return None
    if not np.isfinite(v):
        return None
    return v


def decimal_comma_to_float(col: pd.Series) -> np.ndarray:
    """Vectorised ``parse_number`` over a column of strings; NaN where invalid."""
    s = col.astype(str).str.replace('"', "", regex=False).str.strip()
    s = s.str.replace(",", ".", n=1, regex=False)
    out = np.array(pd.to_numeric(s, errors="coerce"), dtype=np.float64)
    out[~np.isfinite(out)] = np.nan
    return out


# ---------------------------------------------------------------------------
# Reader base class
# ---------------------------------------------------------------------------


class ChannelReader(ABC):
    """
    Common surface of all format readers.

    Subclasses set the class attributes and implement ``_check_content`` and
    ``_parse``. The base class handles size checks, all-or-nothing storage of
    the parsed ChannelSet and every accessor.
    """

    format_name: str = ""
    max_file_size: Optional[int] = None
    time_range_fallback: Tuple[float, float] = (0.0, 0.0)

    def __init__(self, path: str | Path, *, log_cap: int = DEFAULT_LOG_CAP):
        self.path = Path(path).expanduser()
        self.log_cap = int(log_cap)
        self._data: Optional[ChannelSet] = None

    # -- validation --------------------------------------------------------

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        if not self.path.is_file():
            report.errors.append(f"File not found: {self.path}")
            return report
        size = self.path.stat().st_size
        report.file_size = size
        if size == 0:
            report.errors.append("File is empty")
            return report
        if self.max_file_size is not None and size > self.max_file_size:
            report.errors.append(
                f"File too large: {size / MB:.1f}MB (max {self.max_file_size / MB:.0f}MB)"
            )
            return report
        self._check_content(report)
        return report

    def _check_content(self, report: ValidationReport) -> None:
        """Format-specific sniffing; append to ``report.errors`` on mismatch."""

    # -- loading -----------------------------------------------------------

    def load(self, cancel: Optional[CancellationToken] = None) -> ChannelSet:
        """
        Validate and parse the file.

        Raises
        ------
        NotFound
            The file does not exist.
        ValidationError
            A structural check failed (diagnostics attached).
        ParseFailure
            No valid rows survived parsing.
        LoadCancelled
            ``cancel`` was set during the parse.
        """
        if self._data is not None:
            return self._data
        if not self.path.is_file():
            raise NotFound(f"File not found: {self.path}")
        report = self.validate()
        report.raise_if_errors(f"{self.format_name} validation failed for {self.path.name}")
        data = self._parse(cancel, report)
        self._data = data
        logger.info(
            "Loaded %s (%s): %d channels, %d warnings",
            self.path.name,
            self.format_name,
            len(data.channels),
            len(data.warnings),
        )
        return data

    @abstractmethod
    def _parse(self, cancel: Optional[CancellationToken], report: ValidationReport) -> ChannelSet:
        raise NotImplementedError

    def _build_set(
        self,
        channels: Dict[str, Channel],
        metadata: Dict[str, Any],
        warnings: List[str],
        default_channels: Tuple[str, ...],
        file_size: Optional[int],
    ) -> ChannelSet:
        return ChannelSet(
            source_path=self.path.resolve(),
            format_type=str(metadata.get("format_type", self.format_name)),
            channels=channels,
            metadata=metadata,
            file_size=int(file_size or 0),
            warnings=tuple(warnings),
            default_channels=default_channels,
            time_range_fallback=self.time_range_fallback,
        )

    # -- accessors ---------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._data is not None

    @property
    def data(self) -> ChannelSet:
        if self._data is None:
            raise RuntimeError(f"{type(self).__name__}: call load() first")
        return self._data

    def metadata(self) -> Dict[str, Any]:
        d = self.data
        out: Dict[str, Any] = {
            "file_path": str(d.source_path),
            "file_name": d.source_path.name,
            "file_size": d.file_size,
            "processed_at": d.processed_at.isoformat(),
            "format_type": d.format_type,
            "channel_count": len(d.channels),
            "warnings": list(d.warnings),
        }
        out.update(d.metadata)
        return out

    def channel(self, channel_id: str) -> Channel:
        return self.data.get(channel_id)

    def all_channels(self) -> Dict[str, Channel]:
        return dict(self.data.channels)

    def available_channel_ids(self) -> List[str]:
        return self.data.channel_ids

    def has_channel(self, channel_id: str) -> bool:
        return self.data.has(channel_id)

    def time_range(self) -> Tuple[float, float]:
        return self.data.time_range()

    def default_display_channels(self) -> List[str]:
        d = self.data
        return [c for c in d.default_channels if d.has(c)]
