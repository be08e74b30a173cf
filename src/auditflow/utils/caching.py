"""
Report Cache + In-Flight Registry

Maps an input fingerprint to either a completed AnalysisReport (with expiry)
or a computation still running that later identical requests can join.

Features:
- TTL expiry
- optional LRU capacity (max_entries=0 means unbounded)
- at most one computation per fingerprint: the first caller claims it,
  everyone else awaits the same future
- hit/miss/join statistics
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from auditflow.models.findings import AnalysisReport

logger = logging.getLogger(__name__)


class LookupKind(Enum):
    HIT = "hit"
    IN_FLIGHT = "in_flight"
    MISS = "miss"


@dataclass(frozen=True)
class CacheLookup:
    kind: LookupKind
    report: Optional[AnalysisReport] = None
    future: Optional["asyncio.Future[AnalysisReport]"] = None


@dataclass
class CacheEntry:
    report: AnalysisReport
    expires_at: float
    hits: int = 0


def _consume_exception(future: "asyncio.Future") -> None:
    # a failed computation nobody joined must not warn at garbage collection
    if not future.cancelled():
        future.exception()


class ReportCache:
    """
    Fingerprint-keyed report cache

    Usage:
        claimed, future = cache.register(fp)
        if claimed:
            cache.complete(fp, report)   # or cache.fail(fp, exc)
        else:
            report = await future
    """

    def __init__(self, ttl_seconds: float = 3600.0, max_entries: int = 0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._joins = 0
        self._evictions = 0

    def _live_entry(self, fingerprint: str) -> Optional[CacheEntry]:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[fingerprint]
            return None
        self._entries.move_to_end(fingerprint)
        return entry

    def get(self, fingerprint: str) -> CacheLookup:
        with self._lock:
            entry = self._live_entry(fingerprint)
            if entry is not None:
                entry.hits += 1
                self._hits += 1
                return CacheLookup(LookupKind.HIT, report=entry.report)
            future = self._in_flight.get(fingerprint)
            if future is not None:
                self._joins += 1
                return CacheLookup(LookupKind.IN_FLIGHT, future=future)
            self._misses += 1
            return CacheLookup(LookupKind.MISS)

    def register(self, fingerprint: str) -> Tuple[bool, "asyncio.Future[AnalysisReport]"]:
        """claim the computation for fingerprint, or get the future of whoever already has it"""
        with self._lock:
            future = self._in_flight.get(fingerprint)
            if future is not None:
                self._joins += 1
                return False, future
            future = asyncio.get_running_loop().create_future()
            future.add_done_callback(_consume_exception)
            self._in_flight[fingerprint] = future
            return True, future

    def complete(self, fingerprint: str, report: AnalysisReport, store: bool = True) -> None:
        """store the report and hand the same instance to every waiter"""
        with self._lock:
            if store and self.ttl_seconds > 0:
                self._entries[fingerprint] = CacheEntry(report=report, expires_at=self._clock() + self.ttl_seconds)
                self._entries.move_to_end(fingerprint)
                self._evict()
            future = self._in_flight.pop(fingerprint, None)
        if future is not None and not future.done():
            future.set_result(report)

    def fail(self, fingerprint: str, error: BaseException) -> None:
        """release waiters with the error; nothing is stored"""
        with self._lock:
            future = self._in_flight.pop(fingerprint, None)
        if future is not None and not future.done():
            future.set_exception(error)

    def _evict(self) -> None:
        if not self.max_entries:
            return
        while len(self._entries) > self.max_entries:
            fingerprint, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"[cache] evicted {fingerprint[:12]}")

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [fp for fp, entry in self._entries.items() if entry.expires_at <= now]
            for fp in expired:
                del self._entries[fp]
        return len(expired)

    def clear(self) -> None:
        """drop stored reports. in-flight computations are left to finish."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses + self._joins
            return {
                "size": len(self._entries),
                "in_flight": len(self._in_flight),
                "hits": self._hits,
                "misses": self._misses,
                "joins": self._joins,
                "evictions": self._evictions,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "ttl_seconds": self.ttl_seconds,
                "max_entries": self.max_entries,
            }
