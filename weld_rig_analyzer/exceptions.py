"""Error taxonomy for ingestion, caching and scanning.

Every exception derives from :class:`WeldRigError` and, where a builtin
fits, from that builtin too, so callers that only know ``ValueError`` or
``FileNotFoundError`` keep working.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class WeldRigError(Exception):
    """Base class for all package errors."""


class ValidationError(WeldRigError, ValueError):
    """Structural or size check failed before parsing started.

    ``diagnostics`` holds every problem found, not just the first.
    """

    def __init__(self, message: str, diagnostics: Optional[Iterable[str]] = None):
        self.diagnostics: List[str] = list(diagnostics or [])
        if self.diagnostics:
            message = f"{message}: " + "; ".join(self.diagnostics)
        super().__init__(message)


class ParseFailure(WeldRigError, ValueError):
    """No valid rows survived parsing, or the file layout is unusable."""


class NotFound(WeldRigError, FileNotFoundError):
    """Source file or experiment folder is absent."""


class InvalidChannel(WeldRigError, KeyError):
    """Requested channel id is unknown for the loaded data."""

    def __init__(self, channel_id: str, available: Optional[Iterable[str]] = None):
        self.channel_id = channel_id
        self.available = sorted(available or [])
        msg = f"Channel '{channel_id}' not found"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class CacheMiss(WeldRigError):
    """No live cache entry for a key. Internal to the service layer."""


class LoadCancelled(WeldRigError):
    """A cancellation token was set while a load was in progress."""


class ScanRootError(WeldRigError, OSError):
    """The scan root directory cannot be accessed."""
