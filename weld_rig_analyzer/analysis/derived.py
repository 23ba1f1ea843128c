"""Derived (calculated) channels of the welding power supply.

The catalogue is fixed. Each entry names the raw channels it reads
(``sources``) and the derived channels it builds on (``depends_on``);
evaluation follows a topological order of ``depends_on``. A derived channel
whose inputs are missing from the ChannelSet is reported as unavailable and
left out, which is not an error.

Formulas (``chN`` = ``channel_N``, M = TRAFO_STROM_MULTIPLIER)::

    calc_0  UL3L1*       V   -ch0 - ch1
    calc_1  IL2GR1*      V   -ch2 - ch3
    calc_2  IL2GR2*      V   -ch4 - ch5
    calc_3  I_DC_GR1*    A   M * (|ch2| + |ch3| + |calc_1|)
    calc_4  I_DC_GR2*    A   M * (|ch4| + |ch5| + |calc_2|)
    calc_5  U_DC*        V   (|ch0| + |ch1| + |calc_0|) / M
    calc_6  F_Schlitten* kN  ch6 * 6.2832 - ch7 * 5.0108
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from weld_rig_analyzer.models.frames import Channel

logger = logging.getLogger(__name__)

TRAFO_STROM_MULTIPLIER = 35.0
SLIDE_FORCE_WEIGHTS = (6.2832, 5.0108)

Formula = Callable[[Mapping[str, np.ndarray]], np.ndarray]


# ---------------------------------------------------------------------------
# Formula primitives
# ---------------------------------------------------------------------------


def signed_differential(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """``-a - b``."""
    return -np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)


def abs_sum(*arrays: np.ndarray) -> np.ndarray:
    out = np.zeros_like(np.asarray(arrays[0], dtype=np.float64))
    for a in arrays:
        out = out + np.abs(a)
    return out


def dc_current(a: np.ndarray, b: np.ndarray, diff: np.ndarray, multiplier: float = TRAFO_STROM_MULTIPLIER) -> np.ndarray:
    """``M * (|a| + |b| + |diff|)``."""
    return multiplier * abs_sum(a, b, diff)


def dc_voltage(a: np.ndarray, b: np.ndarray, diff: np.ndarray, multiplier: float = TRAFO_STROM_MULTIPLIER) -> np.ndarray:
    """``(|a| + |b| + |diff|) / M``."""
    return abs_sum(a, b, diff) / multiplier


def weighted_difference(a: np.ndarray, wa: float, b: np.ndarray, wb: float) -> np.ndarray:
    return np.asarray(a, dtype=np.float64) * wa - np.asarray(b, dtype=np.float64) * wb


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DerivedChannelDef:
    channel_id: str
    label: str
    unit: str
    sources: Tuple[str, ...]
    formula: Formula
    depends_on: Tuple[str, ...] = ()

    @property
    def inputs(self) -> Tuple[str, ...]:
        return self.sources + self.depends_on


def _differential(a: str, b: str) -> Formula:
    return lambda v: signed_differential(v[a], v[b])


def _current(a: str, b: str, diff: str) -> Formula:
    return lambda v: dc_current(v[a], v[b], v[diff])


def _voltage(a: str, b: str, diff: str) -> Formula:
    return lambda v: dc_voltage(v[a], v[b], v[diff])


DERIVED_CHANNELS: Tuple[DerivedChannelDef, ...] = (
    DerivedChannelDef("calc_0", "UL3L1*", "V", ("channel_0", "channel_1"), _differential("channel_0", "channel_1")),
    DerivedChannelDef("calc_1", "IL2GR1*", "V", ("channel_2", "channel_3"), _differential("channel_2", "channel_3")),
    DerivedChannelDef("calc_2", "IL2GR2*", "V", ("channel_4", "channel_5"), _differential("channel_4", "channel_5")),
    DerivedChannelDef(
        "calc_3", "I_DC_GR1*", "A", ("channel_2", "channel_3"),
        _current("channel_2", "channel_3", "calc_1"), depends_on=("calc_1",),
    ),
    DerivedChannelDef(
        "calc_4", "I_DC_GR2*", "A", ("channel_4", "channel_5"),
        _current("channel_4", "channel_5", "calc_2"), depends_on=("calc_2",),
    ),
    DerivedChannelDef(
        "calc_5", "U_DC*", "V", ("channel_0", "channel_1"),
        _voltage("channel_0", "channel_1", "calc_0"), depends_on=("calc_0",),
    ),
    DerivedChannelDef(
        "calc_6", "F_Schlitten*", "kN", ("channel_6", "channel_7"),
        lambda v: weighted_difference(v["channel_6"], SLIDE_FORCE_WEIGHTS[0], v["channel_7"], SLIDE_FORCE_WEIGHTS[1]),
    ),
)


def evaluation_order(defs: Sequence[DerivedChannelDef]) -> List[DerivedChannelDef]:
    """Topological order over ``depends_on``.

    Raises ValueError on duplicate ids, references to unknown derived
    channels, or cycles.
    """
    by_id: Dict[str, DerivedChannelDef] = {}
    for d in defs:
        if d.channel_id in by_id:
            raise ValueError(f"Duplicate derived channel id '{d.channel_id}'")
        by_id[d.channel_id] = d
    for d in defs:
        for dep in d.depends_on:
            if dep not in by_id:
                raise ValueError(f"{d.channel_id} depends on unknown derived channel '{dep}'")

    order: List[DerivedChannelDef] = []
    state: Dict[str, int] = {}  # 1 = visiting, 2 = done

    def visit(cid: str, chain: Tuple[str, ...]) -> None:
        s = state.get(cid, 0)
        if s == 2:
            return
        if s == 1:
            raise ValueError("Cycle in derived channel table: " + " -> ".join(chain + (cid,)))
        state[cid] = 1
        for dep in by_id[cid].depends_on:
            visit(dep, chain + (cid,))
        state[cid] = 2
        order.append(by_id[cid])

    for d in defs:
        visit(d.channel_id, ())
    return order


@dataclass(frozen=True)
class DerivedResult:
    channels: Dict[str, Channel]
    unavailable: Dict[str, str] = field(default_factory=dict)


class DerivedChannelEngine:
    """Evaluate a derived-channel catalogue against a set of raw channels."""

    def __init__(self, defs: Sequence[DerivedChannelDef] = DERIVED_CHANNELS):
        self.defs = tuple(defs)
        self.order = evaluation_order(self.defs)

    @property
    def channel_ids(self) -> List[str]:
        return [d.channel_id for d in self.defs]

    def compute(self, raw: Mapping[str, Channel], extra: Optional[Mapping[str, object]] = None) -> DerivedResult:
        """
        Compute every derived channel whose inputs are present.

        Parameters
        ----------
        raw : mapping
            Raw channels by id. A derived channel takes time axis and sampling
            rate from its first source; inputs on another time axis make it
            unavailable.
        extra : mapping, optional
            Additional ``Channel.extra`` entries attached to every derived channel
            (e.g. the downsampling stride of the source format).
        """
        values: Dict[str, np.ndarray] = {cid: ch.values for cid, ch in raw.items()}
        out: Dict[str, Channel] = {}
        unavailable: Dict[str, str] = {}

        for d in self.order:
            missing = [s for s in d.sources if s not in raw]
            missing += [s for s in d.depends_on if s not in out]
            if missing:
                unavailable[d.channel_id] = f"missing inputs: {', '.join(missing)}"
                logger.debug("Derived channel %s unavailable (%s)", d.channel_id, unavailable[d.channel_id])
                continue

            primary = raw[d.sources[0]]
            inputs_ch = [raw[s] for s in d.sources] + [out[s] for s in d.depends_on]
            if any(not np.array_equal(c.time, primary.time) for c in inputs_ch):
                unavailable[d.channel_id] = "source time axes differ"
                logger.warning("Derived channel %s unavailable: source time axes differ", d.channel_id)
                continue

            inputs = {s: values[s] for s in d.inputs}
            v = np.asarray(d.formula(inputs), dtype=np.float64)
            ch_extra = {"source_channels": list(d.sources), "depends_on": list(d.depends_on), "derived": True}
            if extra:
                ch_extra.update(extra)
            ch = Channel(
                d.channel_id,
                d.label,
                d.unit,
                primary.time,
                v,
                sampling_rate=primary.sampling_rate,
                extra=ch_extra,
            )
            out[d.channel_id] = ch
            values[d.channel_id] = ch.values

        return DerivedResult(channels=out, unavailable=unavailable)


# ---------------------------------------------------------------------------
# Channel id normalisation
# ---------------------------------------------------------------------------

_RAW_ID = re.compile(r"^channel_([0-5])$")
_CALC_ID = re.compile(r"^calc_([0-6])$")
_LEGACY_ID = re.compile(r"^([0-5])$")


def normalize_binary_channel_id(channel_id: str) -> Optional[str]:
    """
    Canonical id for the structured-binary format, or None if invalid.

    Accepts ``channel_0``..``channel_5``, ``calc_0``..``calc_6`` and the legacy
    bare indices ``0``..``5`` (mapped to ``channel_N``).
    """
    cid = str(channel_id).strip()
    if _RAW_ID.match(cid) or _CALC_ID.match(cid):
        return cid
    m = _LEGACY_ID.match(cid)
    if m:
        return f"channel_{m.group(1)}"
    return None
