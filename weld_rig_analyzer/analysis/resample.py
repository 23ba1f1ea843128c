"""Window selection and fixed-stride decimation for plotting payloads.

No interpolation is ever performed: the output is either the exact slice of
the requested window or every ``step``-th sample of it, starting at the
first in-range sample, with ``step = ceil(count / max_points)``.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np

from weld_rig_analyzer.models.frames import Channel
from weld_rig_analyzer.models.results import ResampledSeries

logger = logging.getLogger(__name__)


def decimation_step(count: int, max_points: int) -> int:
    """Smallest stride that keeps ``count`` samples within ``max_points``."""
    if max_points < 1:
        raise ValueError(f"max_points must be >= 1, got {max_points}")
    if count <= max_points:
        return 1
    return int(math.ceil(count / max_points))


def window_indices(time: np.ndarray, start: Optional[float], end: Optional[float]) -> Tuple[int, int]:
    """
    Half-open index range ``[i0, i1)`` of samples with ``start <= t <= end``.

    ``time`` must be non-decreasing. None means unbounded on that side.
    """
    i0 = 0 if start is None else int(np.searchsorted(time, start, side="left"))
    i1 = time.size if end is None else int(np.searchsorted(time, end, side="right"))
    return i0, max(i0, i1)


def decimate(a: np.ndarray, b: np.ndarray, max_points: int) -> Tuple[np.ndarray, np.ndarray, int]:
    """Decimate two equal-length arrays with the same stride. Returns (a', b', step)."""
    if a.size != b.size:
        raise ValueError(f"length mismatch: {a.size} vs {b.size}")
    step = decimation_step(a.size, max_points)
    if step == 1:
        return a, b, 1
    return a[::step], b[::step], step


def resample(
    channel: Channel,
    start: Optional[float] = None,
    end: Optional[float] = None,
    max_points: int = 2000,
    resolution_floor: Optional[float] = None,
) -> ResampledSeries:
    """Select a time window of ``channel`` and bound its size.

    Parameters
    ----------
    channel : Channel
        Source channel.
    start, end : float, optional
        Inclusive window bounds in channel time units. ``end=None`` means the
        last sample. Ignored for ``xy_relationship`` channels, which are
        decimated over their full extent.
    max_points : int
        Upper bound on returned samples (>= 1).
    resolution_floor : float, optional
        Finest time step the source can represent; reported unchanged.

    Returns
    -------
    ResampledSeries
        ``ratio`` is the stride used (1 for the exact slice).
    """
    if max_points < 1:
        raise ValueError(f"max_points must be >= 1, got {max_points}")
    if start is not None and end is not None and end < start:
        raise ValueError(f"window end ({end}) is before start ({start})")

    if channel.is_xy:
        i0, i1 = 0, channel.n_points
    else:
        i0, i1 = window_indices(channel.time, start, end)

    t = channel.time[i0:i1]
    v = channel.values[i0:i1]
    count = int(t.size)
    t_out, v_out, step = decimate(t, v, max_points)

    win = (
        float(start) if start is not None else (float(t[0]) if count else 0.0),
        float(end) if end is not None else (float(t[-1]) if count else 0.0),
    )

    if step > 1:
        logger.debug(
            "resample %s: %d -> %d points (step %d)", channel.channel_id, count, t_out.size, step
        )
    return ResampledSeries(
        channel_id=channel.channel_id,
        kind=channel.kind,
        time=t_out,
        values=v_out,
        original_points=count,
        actual_points=int(t_out.size),
        resampled=step > 1,
        ratio=step,
        window=win,
        resolution_floor=resolution_floor,
    )
