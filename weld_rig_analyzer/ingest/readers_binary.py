from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
from pathlib import Path
import re
from typing import Any, Dict, List, Optional, Tuple

import h5py
import numpy as np

from weld_rig_analyzer.analysis.derived import DerivedChannelEngine
from weld_rig_analyzer.exceptions import ParseFailure
from weld_rig_analyzer.ingest.base import ChannelReader, ValidationReport
from weld_rig_analyzer.ingest.cancellation import CancellationToken, check_cancelled
from weld_rig_analyzer.ingest.units import bin_to_physical
from weld_rig_analyzer.models.frames import Channel, ChannelSet

logger = logging.getLogger(__name__)

TPC5_FORMAT = "tpc5"
BASE_SAMPLING_RATE_HZ = 10_000_000.0
DEFAULT_STRIDE = 128

MEASUREMENT_PATH = "measurements/00000001"
BLOCK_PATH = "blocks/00000001"

# HDF5 channel key -> (channel id, front-panel input name)
CHANNEL_KEYS: Tuple[Tuple[str, str, str], ...] = (
    ("00000001", "channel_0", "A1"),
    ("00000002", "channel_1", "A2"),
    ("00000003", "channel_2", "A3"),
    ("00000004", "channel_3", "A4"),
    ("00000005", "channel_4", "B1"),
    ("00000006", "channel_5", "B3"),
)

_STRIDE_DATASET = re.compile(r"^data@(\d+)$")


def _decode(v: Any) -> Any:
    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    if isinstance(v, np.ndarray) and v.size == 1:
        return _decode(v.reshape(-1)[0])
    if isinstance(v, np.generic):
        return v.item()
    return v


def _attr(attrs: h5py.AttributeManager, name: str, default: Any) -> Any:
    if name not in attrs:
        return default
    return _decode(attrs[name])


# ---------------------------------------------------------------------------
# Attribute records with documented defaults
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChannelCalibration:
    """
    Per-channel attributes of a TPC5 channel group.

    Defaults apply when an attribute is absent:
      channel_name                'Channel <key>'
      physical_unit               'V'
      bin_to_volt_factor          1.0
      bin_to_volt_constant        0.0
      volt_to_physical_factor     1.0
      volt_to_physical_constant   0.0
      device_name                 ''
    """
    key: str
    channel_name: str
    physical_unit: str = "V"
    bin_to_volt_factor: float = 1.0
    bin_to_volt_constant: float = 0.0
    volt_to_physical_factor: float = 1.0
    volt_to_physical_constant: float = 0.0
    device_name: str = ""

    @classmethod
    def from_attrs(cls, key: str, attrs: h5py.AttributeManager) -> ChannelCalibration:
        return cls(
            key=key,
            channel_name=str(_attr(attrs, "ChannelName", f"Channel {key}")),
            physical_unit=str(_attr(attrs, "physicalUnit", "V")),
            bin_to_volt_factor=float(_attr(attrs, "binToVoltFactor", 1.0)),
            bin_to_volt_constant=float(_attr(attrs, "binToVoltConstant", 0.0)),
            volt_to_physical_factor=float(_attr(attrs, "voltToPhysicalFactor", 1.0)),
            volt_to_physical_constant=float(_attr(attrs, "voltToPhysicalConstant", 0.0)),
            device_name=str(_attr(attrs, "deviceName", "")),
        )

    def to_physical(self, raw: np.ndarray) -> np.ndarray:
        return bin_to_physical(
            np.asarray(raw, dtype=np.float64),
            self.bin_to_volt_factor,
            self.bin_to_volt_constant,
            self.volt_to_physical_factor,
            self.volt_to_physical_constant,
        )


@dataclass(frozen=True)
class BlockInfo:
    """Recording block attributes (start time string, trigger position)."""
    start_time: Optional[str] = None
    trigger_sample: int = 0
    trigger_time_seconds: float = 0.0

    @classmethod
    def from_attrs(cls, attrs: h5py.AttributeManager) -> BlockInfo:
        st = _attr(attrs, "startTime", None)
        return cls(
            start_time=None if st is None else str(st),
            trigger_sample=int(_attr(attrs, "triggerSample", 0)),
            trigger_time_seconds=float(_attr(attrs, "triggerTimeSeconds", 0.0)),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def available_strides(block: h5py.Group) -> List[int]:
    out = []
    for name in block.keys():
        m = _STRIDE_DATASET.match(name)
        if m:
            out.append(int(m.group(1)))
    return sorted(out)


def choose_stride(available: List[int], requested: int) -> Optional[int]:
    """Requested stride if stored, else the smallest stored stride above it, else the largest below."""
    if not available:
        return None
    if requested in available:
        return requested
    above = [s for s in available if s > requested]
    if above:
        return above[0]
    return available[-1]


def common_stride(per_channel: Dict[str, List[int]], requested: int) -> Optional[int]:
    """
    One stride for every channel of a file.

    Among the strides stored by the most channels, the requested one is
    preferred, then as in :func:`choose_stride`. Channels lacking the result
    cannot be combined sample by sample with the others.
    """
    coverage: Dict[int, int] = {}
    for strides in per_channel.values():
        for s in set(strides):
            coverage[s] = coverage.get(s, 0) + 1
    if not coverage:
        return None
    best = max(coverage.values())
    return choose_stride(sorted(s for s, c in coverage.items() if c == best), requested)


def interleave_min_max(pairs: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    (N, 2) min/max pairs -> interleaved (time, values) of length 2N.

    Pair i yields the min at ``i*dt`` and the max at ``i*dt + dt/2``.
    """
    p = np.asarray(pairs, dtype=np.float64)
    if p.ndim == 1:
        if p.size % 2:
            raise ValueError(f"min/max dataset has odd length {p.size}")
        p = p.reshape(-1, 2)
    if p.ndim != 2 or p.shape[1] != 2:
        raise ValueError(f"min/max dataset must have shape (N, 2), got {p.shape}")
    n = p.shape[0]
    base = np.arange(n, dtype=np.float64) * dt
    t = np.empty(2 * n, dtype=np.float64)
    t[0::2] = base
    t[1::2] = base + 0.5 * dt
    return t, p.reshape(-1)


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class Tpc5Reader(ChannelReader):
    """
    Reader for TPC5 oscilloscope containers (HDF5, ``<id>_original(manuell).tpc5``).

    Layout::

        measurements/00000001/channels/<key>              attrs: ChannelName, physicalUnit, calibration
        measurements/00000001/channels/<key>/blocks/00000001   attrs: startTime, triggerSample, ...
            data@<stride>                                 (N, 2) min/max of each <stride> raw samples

    Only the pre-aggregated ``data@<stride>`` datasets are read, never the
    full-rate stream, so the time resolution cannot be finer than
    ``stride / 10 MHz``. All channels are read at one common stride; a channel
    not stored at it is skipped. Values go through the two affine calibration stages.
    Derived channels (``calc_*``) are computed at load time and merged.
    Time is in seconds.
    """

    format_name = TPC5_FORMAT
    max_file_size = None
    time_range_fallback = (0.0, 0.0)

    def __init__(
        self,
        path: str | Path,
        *,
        stride: int = DEFAULT_STRIDE,
        engine: Optional[DerivedChannelEngine] = None,
        log_cap: int = 5,
    ):
        super().__init__(path, log_cap=log_cap)
        if stride < 1:
            raise ValueError(f"stride must be >= 1, got {stride}")
        self.requested_stride = int(stride)
        self.engine = engine or DerivedChannelEngine()

    def _check_content(self, report: ValidationReport) -> None:
        try:
            with h5py.File(self.path, "r") as f:
                if "measurements" not in f:
                    report.errors.append("Missing /measurements group - not a valid TPC5 file")
                elif MEASUREMENT_PATH not in f:
                    report.errors.append(f"Missing /{MEASUREMENT_PATH} group")
                elif "channels" not in f[MEASUREMENT_PATH]:
                    report.errors.append(f"Missing /{MEASUREMENT_PATH}/channels group")
        except OSError as e:
            report.errors.append(f"Cannot open HDF5 file: {e}")

    def _parse(self, cancel: Optional[CancellationToken], report: ValidationReport) -> ChannelSet:
        raw: Dict[str, Channel] = {}
        warnings: List[str] = []
        calibrations: Dict[str, Dict[str, Any]] = {}
        block_info: Optional[BlockInfo] = None
        present: List[Tuple[str, str, str, ChannelCalibration, h5py.Group]] = []
        per_channel: Dict[str, List[int]] = {}

        with h5py.File(self.path, "r") as f:
            channels_group = f[MEASUREMENT_PATH]["channels"]
            for key, cid, input_name in CHANNEL_KEYS:
                if key not in channels_group:
                    warnings.append(f"Channel group {key} ({input_name}) not present")
                    continue
                grp = channels_group[key]
                if BLOCK_PATH not in grp:
                    warnings.append(f"Channel {key}: block {BLOCK_PATH} missing, skipped")
                    continue
                block = grp[BLOCK_PATH]
                if block_info is None:
                    block_info = BlockInfo.from_attrs(block.attrs)
                strides = available_strides(block)
                if not strides:
                    warnings.append(f"Channel {key}: no data@<stride> dataset, skipped")
                    continue
                per_channel[key] = strides
                present.append((key, cid, input_name, ChannelCalibration.from_attrs(key, grp.attrs), block))

            stride = common_stride(per_channel, self.requested_stride)
            if stride is not None and stride != self.requested_stride:
                warnings.append(f"data@{self.requested_stride} not stored, using data@{stride}")
            stored_strides = sorted({s for strides in per_channel.values() for s in strides})

            for key, cid, input_name, cal, block in present:
                check_cancelled(cancel)
                if stride not in per_channel[key]:
                    warnings.append(
                        f"Channel {key}: data@{stride} not stored (has {per_channel[key]}), skipped"
                    )
                    continue

                dt = stride / BASE_SAMPLING_RATE_HZ
                try:
                    t, raw_vals = interleave_min_max(block[f"data@{stride}"][()], dt)
                except ValueError as e:
                    warnings.append(f"Channel {key}: {e}")
                    continue

                raw[cid] = Channel(
                    cid,
                    cal.channel_name,
                    cal.physical_unit,
                    t,
                    cal.to_physical(raw_vals),
                    sampling_rate=BASE_SAMPLING_RATE_HZ / stride,
                    extra={
                        "tpc5_channel_key": key,
                        "input_name": input_name,
                        "device_name": cal.device_name,
                        "downsampling": stride,
                    },
                )
                calibrations[cid] = asdict(cal)

        check_cancelled(cancel)
        if not raw:
            raise ParseFailure(f"No readable channels in {self.path.name}")
        for w in warnings:
            logger.warning("%s: %s", self.path.name, w)

        derived = self.engine.compute(raw, extra={"downsampling": stride})
        channels: Dict[str, Channel] = dict(raw)
        channels.update(derived.channels)

        logger.info(
            "%s: %d raw + %d derived channels at data@%d (%d unavailable)",
            self.path.name, len(raw), len(derived.channels), stride, len(derived.unavailable),
        )
        bi = block_info or BlockInfo()
        metadata = {
            "format_type": TPC5_FORMAT,
            "sampling_rate": BASE_SAMPLING_RATE_HZ,
            "downsampling": stride,
            "effective_sampling_rate": BASE_SAMPLING_RATE_HZ / stride,
            "resolution_floor_s": stride / BASE_SAMPLING_RATE_HZ,
            "available_strides": stored_strides,
            "start_time": bi.start_time,
            "trigger_sample": bi.trigger_sample,
            "trigger_time_seconds": bi.trigger_time_seconds,
            "calibration": calibrations,
            "raw_channels": list(raw.keys()),
            "derived_channels": list(derived.channels.keys()),
            "unavailable_channels": dict(derived.unavailable),
        }
        defaults = tuple(cid for _, cid, _ in CHANNEL_KEYS) + tuple(self.engine.channel_ids)
        return self._build_set(channels, metadata, warnings, default_channels=defaults, file_size=report.file_size)
