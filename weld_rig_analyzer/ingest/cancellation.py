"""Cooperative cancellation for long-running loads and scans."""

from __future__ import annotations

import threading
from typing import Optional

from weld_rig_analyzer.exceptions import LoadCancelled


class CancellationToken:
    """Thread-safe cancel flag checked by readers between rows and by the
    scanner between folders.

    Example::

        token = CancellationToken()
        for line in lines:
            token.throw_if_cancelled()
            ...
    """

    def __init__(self):
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def throw_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise LoadCancelled("Operation was cancelled")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """No-op when ``token`` is None."""
    if token is not None:
        token.throw_if_cancelled()
