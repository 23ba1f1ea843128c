from .catalog import ExperimentRecord, FLAG_NAMES, parse_experiment_date
from .frames import Channel, ChannelSet, TIME_SERIES, XY_RELATIONSHIP
from .results import AxisStatistics, ChannelStatistics, ResampledSeries, ServiceResult
from .settings import AnalyzerSettings

__all__ = [
    "AnalyzerSettings",
    "AxisStatistics",
    "Channel",
    "ChannelSet",
    "ChannelStatistics",
    "ExperimentRecord",
    "FLAG_NAMES",
    "ResampledSeries",
    "ServiceResult",
    "TIME_SERIES",
    "XY_RELATIONSHIP",
    "parse_experiment_date",
]
