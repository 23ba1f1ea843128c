"""Shared fixtures: small but realistic rig exports written into tmp_path."""

from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import h5py
import numpy as np
import pytest


POSITION_TEXT = (
    "# optoNCDT snapshot export\n"
    "2025-07-15 10:00:00.000000\t1752573600.000\t10.0\n"
    "2025-07-15 10:00:00.001000\t1752573600.001\t10.5\n"
    "2025-07-15 10:00:00.002000\t1752573600.002\t11.0\n"
    "2025-07-15 10:00:00.003000\t1752573600.003\t11.5\n"
)

TENSILE_TEXT = (
    "Test-Nr.;Schienentyp;Deformations Weg [mm];Datum;Geprueft von;Sonderfeld\n"
    "T-001;60E1;25,5;15.07.2025 10:30:00;MK;abc\n"
    "\n"
    "FORCE/WAY DATA;FORCE/TIME DATA;WAY/TIME DATA\n"
    "{X=0.0, Y=0.0};{X=0.0, Y=0.0};{X=0.0, Y=0.0}\n"
    "{X=0.013733, Y=2.268685};{X=0.1, Y=2.268685};{X=0.1, Y=0.013733}\n"
    "{X=0.5, Y=100.0};{X=0.2, Y=100.0};{X=0.2, Y=0.5}\n"
    "{X=0.4, Y=80.0};{X=0.3, Y=80.0};{X=0.3, Y=0.4}\n"
)

TEMPERATURE_TEXT = (
    "Zeit;Schweissen Durchschn. [°C];Kanal 1 Durchschn. [°C];Kanal 2 Max [°C]\n"
    "1752573600,0;25,5;20,1;30\n"
    "1752573601,0;26,5;;31\n"
    "bad;27,0;21,0;32\n"
    "1752573602,0;27,5;22,1;33\n"
)

ACCELERATION_TEXT = (
    "Device: XYZ logger\n"
    "time [s],X [m*s^-2],Y [m*s^-2],Z [m*s^-2]\n"
    "0.0000,0.1,0.2,9.81\n"
    "0.0001,0.2,0.3,9.80\n"
    "0.0002,0.3,0.4,9.79\n"
)


def write_tpc5(
    path: Path,
    channels: Dict[str, Tuple[Iterable, Dict[str, object]]],
    strides: Iterable[int] = (128,),
    block_attrs: Optional[Dict[str, object]] = None,
    channel_strides: Optional[Dict[str, Iterable[int]]] = None,
) -> Path:
    """Write a minimal TPC5 container: channel key -> ((N, 2) min/max pairs, channel attrs).

    ``channel_strides`` overrides ``strides`` for individual channel keys.
    """
    with h5py.File(path, "w") as f:
        grp = f.create_group("measurements/00000001/channels")
        for key, (pairs, attrs) in channels.items():
            ch = grp.create_group(key)
            for name, value in attrs.items():
                ch.attrs[name] = value
            block = ch.create_group("blocks/00000001")
            for name, value in (block_attrs or {}).items():
                block.attrs[name] = value
            for s in (channel_strides or {}).get(key, strides):
                block.create_dataset(f"data@{s}", data=np.asarray(pairs, dtype=np.int16))
    return path


def constant_pairs(value: int, n: int = 2) -> np.ndarray:
    return np.full((n, 2), value, dtype=np.int16)


@pytest.fixture
def write_file(tmp_path: Path):
    """Factory fixture: write text into tmp_path (or a sub-folder) and return the path."""

    def _write(name: str, text: str, folder: Optional[Path] = None) -> Path:
        base = folder if folder is not None else tmp_path
        base.mkdir(parents=True, exist_ok=True)
        p = base / name
        p.write_text(text, encoding="utf-8")
        return p

    return _write


@pytest.fixture
def position_file(write_file) -> Path:
    return write_file("snapshot_optoNCDT-0001.csv", POSITION_TEXT)


@pytest.fixture
def tensile_file(write_file) -> Path:
    return write_file("J25-07-15(1)_redalsa.csv", TENSILE_TEXT)


@pytest.fixture
def temperature_file(write_file) -> Path:
    return write_file("temperature_2025-07-15.csv", TEMPERATURE_TEXT)


@pytest.fixture
def acceleration_file(write_file) -> Path:
    return write_file("J25-07-15(1)_beschleuinigung.csv", ACCELERATION_TEXT)


@pytest.fixture
def welding_tpc5_channels() -> Dict[str, Tuple[np.ndarray, Dict[str, object]]]:
    """All six welding channels, channel_0/2/4 = 3 and channel_1/3/5 = 4 after calibration."""
    out = {}
    for i in range(1, 7):
        value = 3 if i % 2 else 4
        out[f"{i:08d}"] = (constant_pairs(value), {"ChannelName": f"CH{i}", "physicalUnit": "V"})
    return out


@pytest.fixture
def tpc5_file(tmp_path: Path, welding_tpc5_channels) -> Path:
    return write_tpc5(
        tmp_path / "J25-07-15(1)_original(manuell).tpc5",
        welding_tpc5_channels,
        block_attrs={"startTime": "2025-07-15T10:00:00", "triggerSample": 64},
    )


@pytest.fixture
def experiment_root(tmp_path: Path) -> Path:
    """Root with one complete experiment folder J25-07-15(1)."""
    root = tmp_path / "experiments"
    exp = root / "J25-07-15(1)"
    (exp / "sensors").mkdir(parents=True)
    (exp / "Schweissjournal.txt").write_text("journal", encoding="utf-8")
    (exp / "sensors" / "snapshot_optoNCDT-0001.csv").write_text(POSITION_TEXT, encoding="utf-8")
    (exp / "J25-07-15(1)_redalsa.csv").write_text(TENSILE_TEXT, encoding="utf-8")
    (exp / "temperature_2025-07-15.csv").write_text(TEMPERATURE_TEXT, encoding="utf-8")
    (exp / "J25-07-15(1)_beschleuinigung.csv").write_text(ACCELERATION_TEXT, encoding="utf-8")
    return root


@pytest.fixture
def tpc5_writer():
    return write_tpc5
