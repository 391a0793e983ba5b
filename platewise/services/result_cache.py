"""In-memory TTL cache for brand-search results."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from platewise.config import settings
from platewise.services.analysis_schemas import AnalysisResult


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_key(brand: str, meal_name: str) -> str:
    """Case-sensitive cache key for a brand/meal pair."""
    return f"{brand}_{meal_name}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    result: AnalysisResult
    timestamp: datetime


class ResultCache:
    """
    Mutex-guarded map of key -> CacheEntry.

    Entries are never updated in place; `put` replaces them. Expired entries
    are dropped lazily on lookup.
    """

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ttl = ttl if ttl is not None else timedelta(days=settings.brand_cache_ttl_days)
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[AnalysisResult]:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - entry.timestamp >= self.ttl:
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key)
                return None
            return entry.result

    def put(self, key: str, result: AnalysisResult) -> None:
        entry = CacheEntry(key=key, result=result, timestamp=self.clock())
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
