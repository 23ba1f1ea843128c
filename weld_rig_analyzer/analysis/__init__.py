"""Analysis package: computations over loaded channels.

Nothing here reads files. Inputs are :class:`~weld_rig_analyzer.models.frames.Channel`
objects; resampling never interpolates.
"""

from .derived import DERIVED_CHANNELS, DerivedChannelEngine, normalize_binary_channel_id
from .resample import resample
from .stats import channel_statistics

__all__ = [
    "DERIVED_CHANNELS",
    "DerivedChannelEngine",
    "normalize_binary_channel_id",
    "resample",
    "channel_statistics",
]
