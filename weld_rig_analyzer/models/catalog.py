from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import re


EXPERIMENT_ID_PATTERN = re.compile(r"^J(\d{2})-(\d{2})-(\d{2})\((\d+)\)$")

FLAG_NAMES: Tuple[str, ...] = (
    "has_bin_file",
    "has_acceleration_csv",
    "has_position_csv",
    "has_tensile_csv",
    "has_photos",
    "has_thermal_ravi",
    "has_tcp5_file",
    "has_weld_journal",
    "has_crown_measurements",
    "has_ambient_temperature",
)


def parse_experiment_date(experiment_id: str) -> Optional[date]:
    """
    Extract the date embedded in an experiment id ``JYY-MM-DD(n)``.

    Returns None when the id does not match or the date is not a real calendar day
    (e.g. ``J99-13-40(1)``).
    """
    m = EXPERIMENT_ID_PATTERN.match(experiment_id)
    if not m:
        return None
    yy, mm, dd = (int(g) for g in m.groups()[:3])
    try:
        return date(2000 + yy, mm, dd)
    except ValueError:
        return None


@dataclass(frozen=True)
class ExperimentRecord:
    """
    Index record for one experiment folder.

    experiment_id: folder name, pattern ``J\\d{2}-\\d{2}-\\d{2}\\(\\d+\\)``
    folder_path: absolute folder path
    experiment_date: date parsed from the id
    flags: one boolean per entry of FLAG_NAMES (missing names read as False)
    """
    experiment_id: str
    folder_path: Path
    experiment_date: date
    flags: Dict[str, bool] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        unknown = set(self.flags) - set(FLAG_NAMES)
        if unknown:
            raise ValueError(f"Unknown experiment flags: {sorted(unknown)}")
        full = {name: bool(self.flags.get(name, False)) for name in FLAG_NAMES}
        object.__setattr__(self, "flags", full)

    def has(self, flag: str) -> bool:
        if flag not in FLAG_NAMES:
            raise KeyError(flag)
        return self.flags[flag]

    def touched(self, when: Optional[datetime] = None) -> "ExperimentRecord":
        """Copy with a fresh ``updated_at`` (creation time kept)."""
        return replace(self, updated_at=when or datetime.now())

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["folder_path"] = str(self.folder_path)
        d["experiment_date"] = self.experiment_date.isoformat()
        d["created_at"] = self.created_at.isoformat()
        d["updated_at"] = self.updated_at.isoformat()
        return d
