"""In-memory forecast cache with a freshness window."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Hashable, List, Optional

from ..schemas.forecast import ForecastSeries

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: Hashable
    series: ForecastSeries
    cached_at: datetime


class ForecastCache:
    """
    Maps a rounded coordinate key to its forecast series.

    An entry is stale once ``now - cached_at > ttl``. Stale entries are
    evicted lazily: by ``get`` for the requested key, and by a sweep at the
    end of every ``put``. There is no background timer and no locking; the
    engine runs on a single event loop.

    Keys are usually ``CoordinateKey`` values; the resolver namespaces them
    with the provider name so minute-level and hourly series for the same
    coordinate live side by side.
    """

    def __init__(self, ttl: timedelta = timedelta(minutes=10)):
        self.ttl = ttl
        self._entries: Dict[Hashable, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def _expired(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.cached_at > self.ttl

    def get(self, key: Hashable, now: datetime) -> Optional[ForecastSeries]:
        """
        Return the cached series if still fresh, otherwise evict it and miss.
        """
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Forecast cache miss for %s", key)
            return None

        if self._expired(entry, now):
            age = (now - entry.cached_at).total_seconds()
            logger.debug("Forecast cache expired for %s (age %.1fs)", key, age)
            del self._entries[key]
            return None

        logger.debug("Forecast cache hit for %s", key)
        return entry.series

    def peek(self, key: Hashable) -> Optional[CacheEntry]:
        """Return the entry whatever its age, without evicting it."""
        return self._entries.get(key)

    def put(self, key: Hashable, series: ForecastSeries, now: datetime) -> None:
        self._entries[key] = CacheEntry(key=key, series=series, cached_at=now)
        logger.debug("Cached forecast series for %s (%d points)", key, len(series))
        self._sweep(now, keep=key)

    def _sweep(self, now: datetime, keep: Hashable) -> None:
        expired: List[Hashable] = [
            k for k, e in self._entries.items() if k != keep and self._expired(e, now)
        ]
        for k in expired:
            del self._entries[k]
            logger.debug("Cleaned up expired cache entry: %s", k)

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Forecast cache cleared")

    def stats(self, now: datetime) -> Dict[str, float]:
        fresh = sum(1 for e in self._entries.values() if not self._expired(e, now))
        return {
            "size": len(self._entries),
            "fresh": fresh,
            "ttl_minutes": self.ttl.total_seconds() / 60.0,
        }
