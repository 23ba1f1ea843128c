"""Physical-unit and calibration transforms shared by the readers.

All functions are pure and accept scalars or numpy arrays.
"""

from __future__ import annotations

from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]

# Position sensor mounting: sensor axis points against the weld axis.
POSITION_SIGN = -1.0
POSITION_OFFSET_MM = 49.73

POSITION_TIME_SCALE = 1000.0
US_PER_S = 1_000_000.0


def position_mm(raw: ArrayLike) -> ArrayLike:
    """Raw position sensor reading -> position in mm (``-1 * raw + 49.73``)."""
    return POSITION_SIGN * raw + POSITION_OFFSET_MM


def bin_to_volt(raw: ArrayLike, factor: float, constant: float) -> ArrayLike:
    return raw * factor + constant


def volt_to_physical(volt: ArrayLike, factor: float, constant: float) -> ArrayLike:
    return volt * factor + constant


def bin_to_physical(
    raw: ArrayLike,
    bin_to_volt_factor: float = 1.0,
    bin_to_volt_constant: float = 0.0,
    volt_to_physical_factor: float = 1.0,
    volt_to_physical_constant: float = 0.0,
) -> ArrayLike:
    """Two-stage affine conversion: ADC bins -> volts -> physical unit."""
    v = bin_to_volt(raw, bin_to_volt_factor, bin_to_volt_constant)
    return volt_to_physical(v, volt_to_physical_factor, volt_to_physical_constant)


def position_relative_time(unix_s: np.ndarray) -> np.ndarray:
    """Relative time axis of the position sensor: ``(t - t[0]) * 1000``."""
    t = np.asarray(unix_s, dtype=np.float64)
    if t.size == 0:
        return t.copy()
    return (t - t[0]) * POSITION_TIME_SCALE


def relative_time_us(seconds: np.ndarray) -> np.ndarray:
    """Seconds -> microseconds relative to the first sample."""
    t = np.asarray(seconds, dtype=np.float64)
    if t.size == 0:
        return t.copy()
    return (t - t[0]) * US_PER_S


def relative_seconds(seconds: np.ndarray) -> np.ndarray:
    t = np.asarray(seconds, dtype=np.float64)
    if t.size == 0:
        return t.copy()
    return t - t[0]


def sampling_rate_from_interval(t: np.ndarray, time_unit_s: float, default: float) -> float:
    """
    Mean sampling rate in Hz from a time vector.

    time_unit_s: duration of one time unit in seconds (1.0 for seconds, 1e-6 for microseconds).
    Falls back to ``default`` for fewer than two samples or a zero span.
    """
    t = np.asarray(t, dtype=np.float64)
    if t.size < 2:
        return float(default)
    avg = (t[-1] - t[0]) / (t.size - 1) * time_unit_s
    if not np.isfinite(avg) or avg <= 0:
        return float(default)
    return float(1.0 / avg)
