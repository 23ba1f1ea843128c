from __future__ import annotations

import numpy as np

from weld_rig_analyzer.models.frames import Channel
from weld_rig_analyzer.models.results import AxisStatistics, ChannelStatistics


def _axis(a: np.ndarray, unit: str, label: str) -> AxisStatistics:
    lo = float(np.min(a))
    hi = float(np.max(a))
    return AxisStatistics(min=lo, max=hi, mean=float(np.mean(a)), range=hi - lo, unit=unit, label=label)


def population_std(a: np.ndarray) -> float:
    """Population standard deviation (ddof=0); 0.0 for an empty array."""
    a = np.asarray(a, dtype=np.float64)
    if a.size == 0:
        return 0.0
    return float(np.std(a))


def channel_statistics(channel: Channel) -> ChannelStatistics:
    """
    Summary statistics over all samples of a channel.

    Raises ValueError for an empty channel.
    """
    if channel.n_points == 0:
        raise ValueError(f"Channel {channel.channel_id} has no samples")

    if channel.is_xy:
        x = _axis(channel.x, channel.x_unit or "", channel.x_label or "")
        y = _axis(channel.y, channel.unit, channel.label)
        return ChannelStatistics(
            channel_id=channel.channel_id,
            kind=channel.kind,
            count=channel.n_points,
            x=x,
            y=y,
            ultimate_strength=y.max,
            max_displacement=x.max,
        )

    v = _axis(channel.values, channel.unit, channel.label)
    return ChannelStatistics(
        channel_id=channel.channel_id,
        kind=channel.kind,
        count=channel.n_points,
        values=v,
        std_dev=population_std(channel.values),
        peak_value=v.max,
        sampling_rate=channel.sampling_rate,
    )
