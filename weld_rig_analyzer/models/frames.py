from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from weld_rig_analyzer.exceptions import InvalidChannel

TIME_SERIES = "time_series"
XY_RELATIONSHIP = "xy_relationship"
CHANNEL_KINDS = (TIME_SERIES, XY_RELATIONSHIP)


def _frozen_array(a: Any) -> np.ndarray:
    arr = np.asarray(a, dtype=np.float64).reshape(-1).view()
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class Channel:
    """
    One named, unit-tagged sample sequence.

    Notes
    - For ``time_series`` channels, ``time`` is the time axis and ``values`` the samples;
      time must be non-decreasing.
    - For ``xy_relationship`` channels, ``time`` holds x and ``values`` holds y
      (use the ``x``/``y`` aliases). x carries no ordering constraint.
    - Arrays are stored as read-only float64 views.
    """
    channel_id: str
    label: str
    unit: str
    time: np.ndarray
    values: np.ndarray
    kind: str = TIME_SERIES
    sampling_rate: Optional[float] = None
    x_label: Optional[str] = None
    x_unit: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in CHANNEL_KINDS:
            raise ValueError(f"Unknown channel kind '{self.kind}' for {self.channel_id}")
        t = _frozen_array(self.time)
        v = _frozen_array(self.values)
        if t.size != v.size:
            raise ValueError(
                f"Channel {self.channel_id}: axis length mismatch ({t.size} vs {v.size})"
            )
        if self.kind == TIME_SERIES and t.size > 1 and np.any(np.diff(t) < 0):
            raise ValueError(f"Channel {self.channel_id}: time axis is not non-decreasing")
        object.__setattr__(self, "time", t)
        object.__setattr__(self, "values", v)

    @property
    def n_points(self) -> int:
        return int(self.values.size)

    @property
    def is_xy(self) -> bool:
        return self.kind == XY_RELATIONSHIP

    @property
    def x(self) -> np.ndarray:
        return self.time

    @property
    def y(self) -> np.ndarray:
        return self.values

    def describe(self) -> Dict[str, Any]:
        """Array-free summary used in metadata listings."""
        d: Dict[str, Any] = {
            "id": self.channel_id,
            "label": self.label,
            "unit": self.unit,
            "type": self.kind,
            "points": self.n_points,
            "sampling_rate": self.sampling_rate,
        }
        if self.is_xy:
            d.update(x_label=self.x_label, x_unit=self.x_unit, y_label=self.label, y_unit=self.unit)
        d.update(self.extra)
        return d


@dataclass(frozen=True)
class ChannelSet:
    """
    Output of one loaded reader: raw and derived channels plus reader metadata.

    ChannelSets are never mutated after construction; ``with_channels`` returns a new one.
    """
    source_path: Path
    format_type: str
    channels: Mapping[str, Channel]
    metadata: Dict[str, Any] = field(default_factory=dict)
    file_size: int = 0
    processed_at: datetime = field(default_factory=datetime.now)
    warnings: Tuple[str, ...] = ()
    default_channels: Tuple[str, ...] = ()
    time_range_fallback: Tuple[float, float] = (0.0, 0.0)

    @property
    def channel_ids(self) -> List[str]:
        return list(self.channels.keys())

    def has(self, channel_id: str) -> bool:
        return channel_id in self.channels

    def get(self, channel_id: str) -> Channel:
        try:
            return self.channels[channel_id]
        except KeyError:
            raise InvalidChannel(channel_id, self.channels.keys()) from None

    def time_range(self) -> Tuple[float, float]:
        """Min/max over the time axes of all time-series channels."""
        lo = np.inf
        hi = -np.inf
        for ch in self.channels.values():
            if ch.is_xy or ch.n_points == 0:
                continue
            lo = min(lo, float(ch.time[0]))
            hi = max(hi, float(ch.time[-1]))
        if not np.isfinite(lo) or not np.isfinite(hi):
            return self.time_range_fallback
        return (lo, hi)

    def with_channels(self, extra: Mapping[str, Channel], **changes: Any) -> "ChannelSet":
        merged = dict(self.channels)
        for cid, ch in extra.items():
            if cid in merged:
                raise ValueError(f"Duplicate channel id '{cid}'")
            merged[cid] = ch
        return replace(self, channels=merged, **changes)
