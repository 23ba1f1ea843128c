from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class ServiceResult:
    """Uniform envelope returned by every public service operation.

    Attributes
    ----------
    success:
        True when ``data`` is meaningful.
    data:
        Operation payload (JSON-friendly).
    error:
        Human-readable failure description when ``success`` is False.
    error_type:
        Exception class name that caused the failure, e.g. ``InvalidChannel``.
    message:
        Optional informational message on either outcome.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, data: Any, message: Optional[str] = None) -> ServiceResult:
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, exc: BaseException, message: Optional[str] = None) -> ServiceResult:
        return cls(success=False, error=str(exc), error_type=type(exc).__name__, message=message)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"success": self.success}
        if self.success:
            d["data"] = self.data
        else:
            d["error"] = self.error
            d["error_type"] = self.error_type
        if self.message is not None:
            d["message"] = self.message
        return d


@dataclass(frozen=True)
class ResampledSeries:
    """Output of the resampler for one channel.

    Attributes
    ----------
    time, values:
        Selected samples (x and y for xy channels).
    original_points:
        Number of samples inside the requested window before decimation.
    actual_points:
        Number of samples returned.
    resampled:
        True when decimation was applied.
    ratio:
        Decimation stride (1 when the exact slice is returned).
    window:
        Effective ``(start, end)`` window in channel time units.
    resolution_floor:
        Finest time step the stored data can represent, when the source
        format stores pre-aggregated samples; None otherwise.
    """

    channel_id: str
    kind: str
    time: np.ndarray
    values: np.ndarray
    original_points: int
    actual_points: int
    resampled: bool
    ratio: int
    window: Tuple[float, float]
    resolution_floor: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "channel_id": self.channel_id,
            "type": self.kind,
            "original_points": self.original_points,
            "actual_points": self.actual_points,
            "resampled": self.resampled,
            "ratio": self.ratio,
            "window": {"start": self.window[0], "end": self.window[1]},
        }
        if self.kind == "xy_relationship":
            d["x"] = self.time.tolist()
            d["y"] = self.values.tolist()
        else:
            d["time"] = self.time.tolist()
            d["values"] = self.values.tolist()
        if self.resolution_floor is not None:
            d["resolution_floor"] = self.resolution_floor
        return d


@dataclass(frozen=True)
class AxisStatistics:
    min: float
    max: float
    mean: float
    range: float
    unit: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "range": self.range,
            "unit": self.unit,
            "label": self.label,
        }


@dataclass(frozen=True)
class ChannelStatistics:
    """Summary statistics of one channel.

    Time-series channels fill ``values`` (plus ``std_dev``, ``peak_value``,
    ``sampling_rate``); xy channels fill ``x``/``y`` plus the tensile peaks
    ``ultimate_strength`` (max y) and ``max_displacement`` (max x).
    """

    channel_id: str
    kind: str
    count: int
    values: Optional[AxisStatistics] = None
    std_dev: Optional[float] = None
    peak_value: Optional[float] = None
    sampling_rate: Optional[float] = None
    x: Optional[AxisStatistics] = None
    y: Optional[AxisStatistics] = None
    ultimate_strength: Optional[float] = None
    max_displacement: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"channel_id": self.channel_id, "type": self.kind, "count": self.count}
        if self.kind == "xy_relationship":
            d["x"] = self.x.to_dict() if self.x is not None else None
            d["y"] = self.y.to_dict() if self.y is not None else None
            d["ultimate_strength"] = self.ultimate_strength
            d["max_displacement"] = self.max_displacement
        else:
            if self.values is not None:
                d.update(self.values.to_dict())
            d["std_dev"] = self.std_dev
            d["peak_value"] = self.peak_value
            d["sampling_rate"] = self.sampling_rate
        return d
