"""Index the experiment folders below a root directory and print the scan report as JSON.

Examples
--------
    python -m weld_rig_analyzer.scripts.scan_experiments /data/experiments --since 2025-07-01
"""

from __future__ import annotations

import argparse
from datetime import date
import json
import logging
import sys
import textwrap
from typing import Optional, Sequence

from weld_rig_analyzer.exceptions import ScanRootError
from weld_rig_analyzer.ingest.discovery import DirectoryScanner
from weld_rig_analyzer.models.settings import AnalyzerSettings
from weld_rig_analyzer.services.repository import InMemoryExperimentRepository

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="python -m weld_rig_analyzer.scripts.scan_experiments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=textwrap.dedent(
            """\
            Scan a root folder for experiment folders named JYY-MM-DD(n).

            A folder is indexed only if its date is on or after the cutoff and it
            contains schweissjournal.txt somewhere inside. Defaults come from
            EXPERIMENT_ROOT_PATH and EXPERIMENT_VALID_DATE_FROM.
            """
        ),
    )
    p.add_argument("root", nargs="?", default=None, help="Root folder (default: $EXPERIMENT_ROOT_PATH)")
    p.add_argument("--since", default=None, help="Cutoff date YYYY-MM-DD (default: settings)")
    p.add_argument("--force", action="store_true", help="Re-index folders that are already indexed")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    ns = p.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if ns.root is not None:
        overrides["root_path"] = ns.root
    if ns.since is not None:
        try:
            overrides["valid_date_from"] = date.fromisoformat(ns.since)
        except ValueError:
            p.error(f"--since is not YYYY-MM-DD: '{ns.since}'")
    try:
        settings = AnalyzerSettings.from_env(**overrides)
    except ValueError as e:
        p.error(str(e))
    if settings.root_path is None:
        p.error("no root folder given and EXPERIMENT_ROOT_PATH is not set")

    scanner = DirectoryScanner(InMemoryExperimentRepository(), valid_date_from=settings.valid_date_from)
    try:
        report = scanner.scan(settings.root_path, force_refresh=ns.force)
    except ScanRootError as e:
        logger.error("%s", e)
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        return 2

    out = report.to_dict()
    out["records"] = [r.to_dict() for r in scanner.repository.all()]
    json.dump(out, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 1 if report.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
