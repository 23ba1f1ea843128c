"""Per-experiment TTL cache with at most one load in flight per key."""

from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import dataclass
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional

from weld_rig_analyzer.exceptions import CacheMiss, LoadCancelled

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 600.0


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    inserted_at: float

    def age(self, now: float) -> float:
        return now - self.inserted_at


class ExperimentCache:
    """
    One slot per key holding a loaded value and its insertion time.

    A slot is live while ``clock() - inserted_at < ttl_s``. A stale or
    missing slot is refilled by calling the loader; the slot is replaced
    wholesale, never updated in place.

    Concurrent misses on the same key share one pending Future: the loader
    runs once and every caller gets its value or its exception. A cancelled
    load is the exception: waiters then load again themselves. A failed
    load leaves the previous slot state untouched.

    Parameters
    ----------
    ttl_s : float
        Slot lifetime in seconds.
    clock : callable
        Monotonic time source in seconds (injectable for tests).
    executor : concurrent.futures.Executor, optional
        Runs loaders on a worker pool instead of the calling thread.
    """

    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
        executor: Optional[Executor] = None,
    ):
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be > 0, got {ttl_s}")
        self.ttl_s = float(ttl_s)
        self.clock = clock
        self.executor = executor
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._pending: Dict[Hashable, Future] = {}
        self._lock = threading.Lock()

    def _live(self, entry: Optional[CacheEntry], now: float) -> bool:
        return entry is not None and entry.age(now) < self.ttl_s

    def peek(self, key: Hashable) -> Any:
        """Live value for ``key``; raises CacheMiss otherwise."""
        with self._lock:
            entry = self._entries.get(key)
            if not self._live(entry, self.clock()):
                raise CacheMiss(f"No live cache entry for '{key}'")
            return entry.value

    def get_or_load(self, key: Hashable, loader: Callable[[], Any], force_refresh: bool = False) -> Any:
        """
        Live value for ``key``, loading it if needed.

        A waiter whose shared load was cancelled by its owner retries with its
        own loader; cancellation only fails the request that cancelled.
        """
        while True:
            with self._lock:
                if not force_refresh:
                    entry = self._entries.get(key)
                    if self._live(entry, self.clock()):
                        logger.debug("cache hit %s", key)
                        return entry.value
                fut = self._pending.get(key)
                owner = fut is None
                if owner:
                    fut = Future()
                    self._pending[key] = fut

            if owner:
                break
            logger.debug("cache wait %s (load in flight)", key)
            try:
                return fut.result()
            except LoadCancelled:
                logger.debug("cache %s: shared load was cancelled, retrying", key)

        logger.debug("cache miss %s (force_refresh=%s)", key, force_refresh)
        try:
            if self.executor is not None:
                value = self.executor.submit(loader).result()
            else:
                value = loader()
        except BaseException as e:
            with self._lock:
                self._pending.pop(key, None)
            fut.set_exception(e)
            raise

        with self._lock:
            self._entries[key] = CacheEntry(value, self.clock())
            self._pending.pop(key, None)
        fut.set_result(value)
        return value

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
        logger.info("cache cleared (%d entries)", n)
        return n

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return self._live(self._entries.get(key), self.clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            now = self.clock()
            entries = [
                {
                    "key": str(k),
                    "age_ms": e.age(now) * 1000.0,
                    "expired": not self._live(e, now),
                }
                for k, e in self._entries.items()
            ]
            pending = [str(k) for k in self._pending]
        return {
            "total_cached_experiments": len(entries),
            "cache_timeout_ms": self.ttl_s * 1000.0,
            "entries": entries,
            "pending": pending,
        }
