"""Format adapters: which file an experiment folder holds for a format, and how to read it.

An adapter bundles everything format specific that the service layer needs:

- ``locate(files, experiment_id)`` picks the source file from a recursive
  listing of the experiment folder (shallowest match first, then by path),
- ``reader_factory(path, log_cap=N)`` builds an unloaded reader for that file,
- ``normalize_channel_id`` maps accepted channel-id spellings to canonical
  ids (None = invalid),
- ``resolution_floor`` reports the finest time step a loaded ChannelSet can
  represent, if the format has one.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from weld_rig_analyzer.analysis.derived import normalize_binary_channel_id
from weld_rig_analyzer.ingest import discovery
from weld_rig_analyzer.ingest.base import ChannelReader
from weld_rig_analyzer.ingest.readers_acceleration import AccelerationCsvReader
from weld_rig_analyzer.ingest.readers_binary import DEFAULT_STRIDE, Tpc5Reader
from weld_rig_analyzer.ingest.readers_position import PositionCsvReader
from weld_rig_analyzer.ingest.readers_temperature import TemperatureCsvReader
from weld_rig_analyzer.ingest.readers_tensile import TensileCsvReader
from weld_rig_analyzer.models.frames import ChannelSet

Locator = Callable[[Sequence[Path], str], Optional[Path]]


def _identity(channel_id: str) -> Optional[str]:
    cid = str(channel_id).strip()
    return cid or None


def _no_floor(data: ChannelSet) -> Optional[float]:
    return None


def _binary_floor(data: ChannelSet) -> Optional[float]:
    v = data.metadata.get("resolution_floor_s")
    return None if v is None else float(v)


@dataclass(frozen=True)
class FormatAdapter:
    name: str
    reader_factory: Callable[..., ChannelReader]
    locate: Locator
    normalize_channel_id: Callable[[str], Optional[str]] = _identity
    resolution_floor: Callable[[ChannelSet], Optional[float]] = _no_floor
    description: str = ""


# ---------------------------------------------------------------------------
# Locators
# ---------------------------------------------------------------------------


def locate_position(files: Sequence[Path], experiment_id: str) -> Optional[Path]:
    return discovery.locate_first(files, discovery.is_position_csv)


def locate_tensile(files: Sequence[Path], experiment_id: str) -> Optional[Path]:
    hit = discovery.locate_first(files, lambda n: n.lower().endswith("redalsa.csv"))
    if hit is not None:
        return hit
    return discovery.locate_first(files, lambda n: discovery.is_tensile_csv(n, experiment_id))


def locate_temperature(files: Sequence[Path], experiment_id: str) -> Optional[Path]:
    return discovery.locate_first(files, discovery.is_temperature_csv)


def locate_acceleration(files: Sequence[Path], experiment_id: str) -> Optional[Path]:
    return discovery.locate_first(files, lambda n: discovery.is_acceleration_csv(n, experiment_id))


def locate_tpc5(files: Sequence[Path], experiment_id: str) -> Optional[Path]:
    return discovery.locate_first(files, lambda n: discovery.is_tpc5_file(n, experiment_id))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_FORMATS: Dict[str, FormatAdapter] = {}


def register_format(adapter: FormatAdapter, *, replace: bool = False) -> None:
    if adapter.name in _FORMATS and not replace:
        raise ValueError(f"Format '{adapter.name}' is already registered")
    _FORMATS[adapter.name] = adapter


def get_format(name: str) -> FormatAdapter:
    try:
        return _FORMATS[name]
    except KeyError:
        raise KeyError(f"Unknown format '{name}'. Available: {list_formats()}") from None


def list_formats() -> List[str]:
    return list(_FORMATS.keys())


def tpc5_adapter(stride: int = DEFAULT_STRIDE) -> FormatAdapter:
    return FormatAdapter(
        name="tpc5",
        reader_factory=lambda p, log_cap=5: Tpc5Reader(p, stride=stride, log_cap=log_cap),
        locate=locate_tpc5,
        normalize_channel_id=normalize_binary_channel_id,
        resolution_floor=_binary_floor,
        description=f"TPC5 oscilloscope container, data@{stride} min/max blocks",
    )


register_format(FormatAdapter(
    "position", PositionCsvReader, locate_position,
    description="snapshot_optoNCDT-*.csv, tab delimited",
))
register_format(FormatAdapter(
    "tensile", TensileCsvReader, locate_tensile,
    description="*redalsa.csv or <id>*.csv, semicolon delimited",
))
register_format(FormatAdapter(
    "temperature", TemperatureCsvReader, locate_temperature,
    description="*temperature*.csv with header",
))
register_format(FormatAdapter(
    "acceleration", AccelerationCsvReader, locate_acceleration,
    description="<id>_beschleuinigung.csv",
))
register_format(tpc5_adapter())
