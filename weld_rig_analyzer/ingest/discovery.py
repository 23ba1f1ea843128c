from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
import logging
from pathlib import Path
import re
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from weld_rig_analyzer.exceptions import LoadCancelled, ScanRootError
from weld_rig_analyzer.ingest.cancellation import CancellationToken, check_cancelled
from weld_rig_analyzer.models.catalog import ExperimentRecord, parse_experiment_date
from weld_rig_analyzer.models.settings import DEFAULT_VALID_DATE_FROM
from weld_rig_analyzer.services.filesystem import FileSystem, LocalFileSystem
from weld_rig_analyzer.services.repository import ExperimentRepository

logger = logging.getLogger(__name__)

JOURNAL_FILE = "schweissjournal.txt"
PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".gif")
TENSILE_EXCLUDE_TOKENS = ("beschleuinigung", "temperature", "snapshot")

_POSITION_CSV = re.compile(r"^snapshot_optoncdt-.*\.csv$")
_THERMAL_RAVI = re.compile(r"^record_.*\.ravi$")
_AMBIENT_TEMPERATURE = re.compile(r"^temperature.*\.csv$")


# ---------------------------------------------------------------------------
# File-name predicates (lower-case names)
# ---------------------------------------------------------------------------


def is_position_csv(name: str) -> bool:
    return bool(_POSITION_CSV.match(name.lower()))


def is_tensile_csv(name: str, experiment_id: str) -> bool:
    """``*redalsa.csv``, or ``<id>*.csv`` that is not an acceleration/temperature/snapshot export."""
    n = name.lower()
    if n.endswith("redalsa.csv"):
        return True
    return (
        n.startswith(experiment_id.lower())
        and n.endswith(".csv")
        and not any(tok in n for tok in TENSILE_EXCLUDE_TOKENS)
    )


def is_temperature_csv(name: str) -> bool:
    n = name.lower()
    return "temperature" in n and n.endswith(".csv")


def is_acceleration_csv(name: str, experiment_id: str) -> bool:
    return name.lower() == f"{experiment_id.lower()}_beschleuinigung.csv"


def is_tpc5_file(name: str, experiment_id: str) -> bool:
    return name.lower() == f"{experiment_id.lower()}_original(manuell).tpc5"


def detect_flags(experiment_id: str, names: Iterable[str]) -> Dict[str, bool]:
    """
    Evaluate the file-availability flags over a folder's (recursive) file names.
    """
    eid = experiment_id.lower()
    lower = [n.lower() for n in names]
    return {
        "has_bin_file": f"{eid}.bin" in lower,
        "has_acceleration_csv": any(is_acceleration_csv(n, eid) for n in lower),
        "has_position_csv": any(is_position_csv(n) for n in lower),
        "has_tensile_csv": (
            any(n.endswith("redalsa.csv") for n in lower)
            or any(is_tensile_csv(n, eid) for n in lower)
        ),
        "has_photos": any(n.endswith(PHOTO_EXTENSIONS) for n in lower),
        "has_thermal_ravi": any(_THERMAL_RAVI.match(n) for n in lower),
        "has_tcp5_file": any(is_tpc5_file(n, eid) for n in lower),
        "has_weld_journal": JOURNAL_FILE in lower,
        "has_crown_measurements": "geradheit+versatz.xlsx" in lower,
        "has_ambient_temperature": any(_AMBIENT_TEMPERATURE.match(n) for n in lower),
    }


# ---------------------------------------------------------------------------
# Scan outcome types
# ---------------------------------------------------------------------------


class ScanState(str, Enum):
    EXCLUDED_NAME = "excluded_name"
    EXCLUDED_DATE = "excluded_date"
    EXCLUDED_NO_JOURNAL = "excluded_no_journal"
    SKIPPED_CACHED = "skipped_cached"
    UPSERTED = "upserted"
    FAILED = "failed"


@dataclass(frozen=True)
class FolderOutcome:
    name: str
    path: Path
    state: ScanState
    error: Optional[str] = None


@dataclass(frozen=True)
class ScanReport:
    """
    Result of one directory scan.

    Folders excluded by the name/date gate or the journal gate do not touch the
    counters and produce no error.
    """
    success: bool
    message: str
    processed_count: int
    skipped_count: int
    duration_s: float
    errors: Tuple[str, ...] = ()
    outcomes: Tuple[FolderOutcome, ...] = ()

    def by_state(self, state: ScanState) -> List[FolderOutcome]:
        return [o for o in self.outcomes if o.state == state]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "processed_count": self.processed_count,
            "skipped_count": self.skipped_count,
            "duration_s": self.duration_s,
            "errors": list(self.errors),
            "outcomes": [
                {"name": o.name, "path": str(o.path), "state": o.state.value, "error": o.error}
                for o in self.outcomes
            ],
        }


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


@dataclass
class DirectoryScanner:
    """
    Index experiment folders below a root directory.

    Per folder (sequential, sorted by name):

      Discovered
        -> name is not ``JYY-MM-DD(n)`` or not a real date   EXCLUDED_NAME (silent)
        -> date before ``valid_date_from``                     EXCLUDED_DATE (silent)
        -> no schweissjournal.txt anywhere inside              EXCLUDED_NO_JOURNAL (silent)
        -> already indexed and not forced                      SKIPPED_CACHED (skipped_count += 1)
        -> flags detected, record upserted                     UPSERTED (processed_count += 1)

    An exception while handling one folder is recorded as FAILED and the scan
    continues. An unreadable root raises ScanRootError.
    """
    repository: ExperimentRepository
    filesystem: FileSystem = field(default_factory=LocalFileSystem)
    valid_date_from: date = DEFAULT_VALID_DATE_FROM

    def candidate_date(self, name: str) -> Tuple[Optional[date], ScanState]:
        d = parse_experiment_date(name)
        if d is None:
            return None, ScanState.EXCLUDED_NAME
        if d < self.valid_date_from:
            return d, ScanState.EXCLUDED_DATE
        return d, ScanState.UPSERTED

    def scan(
        self,
        root: str | Path,
        force_refresh: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ScanReport:
        t0 = time.perf_counter()
        root_p = Path(root).expanduser()
        if not self.filesystem.is_dir(root_p):
            raise ScanRootError(f"Scan root is not an accessible directory: {root_p}")
        try:
            folders = sorted(self.filesystem.list_dirs(root_p), key=lambda p: p.name)
        except OSError as e:
            raise ScanRootError(f"Cannot list scan root {root_p}: {e}") from e

        logger.info("Scanning %d folders under %s (force_refresh=%s)", len(folders), root_p, force_refresh)
        processed = 0
        skipped = 0
        errors: List[str] = []
        outcomes: List[FolderOutcome] = []

        for folder in folders:
            check_cancelled(cancel)
            name = folder.name
            exp_date, gate = self.candidate_date(name)
            if exp_date is None or gate != ScanState.UPSERTED:
                outcomes.append(FolderOutcome(name, folder, gate))
                continue
            try:
                state = self._scan_folder(folder, name, exp_date, force_refresh)
            except LoadCancelled:
                raise
            except Exception as e:
                msg = f"{name}: {type(e).__name__}: {e}"
                logger.error("Failed to index %s", folder, exc_info=True)
                errors.append(msg)
                outcomes.append(FolderOutcome(name, folder, ScanState.FAILED, error=str(e)))
                continue
            if state == ScanState.SKIPPED_CACHED:
                skipped += 1
            elif state == ScanState.UPSERTED:
                processed += 1
            outcomes.append(FolderOutcome(name, folder, state))

        duration = time.perf_counter() - t0
        msg = f"Directory scan completed: {processed} processed, {skipped} skipped"
        if errors:
            msg += f", {len(errors)} errors"
        logger.info("%s (%.2f s)", msg, duration)
        return ScanReport(
            success=True,
            message=msg,
            processed_count=processed,
            skipped_count=skipped,
            duration_s=duration,
            errors=tuple(errors),
            outcomes=tuple(outcomes),
        )

    def _scan_folder(self, folder: Path, experiment_id: str, exp_date: date, force_refresh: bool) -> ScanState:
        files = self.filesystem.walk_files(folder)
        names = [p.name for p in files]
        if JOURNAL_FILE not in (n.lower() for n in names):
            logger.debug("%s: no %s, not indexed", experiment_id, JOURNAL_FILE)
            return ScanState.EXCLUDED_NO_JOURNAL
        if not force_refresh and self.repository.experiment_exists(experiment_id):
            return ScanState.SKIPPED_CACHED

        now = datetime.now()
        record = ExperimentRecord(
            experiment_id=experiment_id,
            folder_path=folder,
            experiment_date=exp_date,
            flags=detect_flags(experiment_id, names),
            created_at=now,
            updated_at=now,
        )
        self.repository.upsert_experiment(record)
        return ScanState.UPSERTED


def locate_first(files: Sequence[Path], predicate) -> Optional[Path]:
    """First match in (depth, path) order, so files nearest the folder win."""
    ordered = sorted(files, key=lambda p: (len(p.parts), str(p)))
    for p in ordered:
        if predicate(p.name):
            return p
    return None
