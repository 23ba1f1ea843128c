"""Filesystem access used by the scanner and the data services.

Kept behind a small protocol so tests and alternative storage (network
shares, archives) can provide their own listing.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Protocol


class FileSystem(Protocol):
    def is_dir(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def list_dirs(self, path: Path) -> List[Path]:
        """Immediate sub-directories of ``path``; raises OSError if unreadable."""
        ...

    def walk_files(self, path: Path) -> List[Path]:
        """All files below ``path`` (recursive)."""
        ...


class LocalFileSystem:
    """FileSystem over the local disk."""

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def is_file(self, path: Path) -> bool:
        return Path(path).is_file()

    def list_dirs(self, path: Path) -> List[Path]:
        with os.scandir(path) as it:
            return sorted(Path(e.path) for e in it if e.is_dir())

    def walk_files(self, path: Path) -> List[Path]:
        out: List[Path] = []
        for dirpath, _dirnames, filenames in os.walk(path):
            out.extend(Path(dirpath) / fn for fn in filenames)
        return out
