"""Fetch forecast series for a route's sampled coordinates, cache first."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Set, Tuple

from ..schemas.forecast import CoordinateKey, ForecastSeries
from .cache import ForecastCache
from .weather import WeatherProvider, WeatherProviderError

logger = logging.getLogger(__name__)

ForecastMap = Dict[CoordinateKey, ForecastSeries]


class ForecastResolver:
    """
    Resolves a set of coordinates to forecast series.

    For every coordinate the provider chain is tried in order; the first
    fresh cache entry or successful fetch wins. A failed or timed-out fetch
    falls back to the last cached series for that coordinate, even if stale.
    Coordinates nobody can serve are simply missing from the result.

    Fetches are fanned out as tasks and joined with ``asyncio.gather``. The
    tasks are tracked so ``cancel_pending`` can abandon a superseded run.
    """

    def __init__(
        self,
        cache: ForecastCache,
        *,
        timeout_s: float = 10.0,
        clock: Callable[[], datetime],
    ):
        self.cache = cache
        self.timeout_s = timeout_s
        self.clock = clock
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def cache_key(provider: WeatherProvider, key: CoordinateKey) -> Tuple[str, CoordinateKey]:
        return (provider.name, key)

    async def resolve(
        self,
        keys: Sequence[CoordinateKey],
        providers: Sequence[WeatherProvider],
        start: datetime,
        end: datetime,
    ) -> ForecastMap:
        if not providers:
            logger.warning("No weather provider configured; %d coordinates unresolved", len(keys))
            return {}

        unique = list(dict.fromkeys(keys))
        loop = asyncio.get_running_loop()
        tasks: List[asyncio.Task] = []
        for key in unique:
            task = loop.create_task(self._resolve_one(key, providers, start, end))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)

        results = await asyncio.gather(*tasks)

        forecasts: ForecastMap = {}
        for key, series in zip(unique, results):
            if series is not None:
                forecasts[key] = series

        logger.info("Got weather data for %d of %d route points", len(forecasts), len(unique))
        return forecasts

    def cancel_pending(self) -> int:
        """Cancel every in-flight fetch. Returns how many were cancelled."""
        cancelled = 0
        for task in list(self._pending):
            if not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    async def _resolve_one(
        self,
        key: CoordinateKey,
        providers: Sequence[WeatherProvider],
        start: datetime,
        end: datetime,
    ) -> Optional[ForecastSeries]:
        stale: List[Tuple[Hashable, ForecastSeries]] = []

        for provider in providers:
            ck = self.cache_key(provider, key)

            # Capture before get() evicts it; this is the last-good fallback
            entry = self.cache.peek(ck)
            if entry is not None:
                stale.append((ck, entry.series))

            fresh = self.cache.get(ck, self.clock())
            if fresh is not None:
                return fresh

            series = await self._fetch(provider, key, start, end)
            if series is not None and len(series):
                self.cache.put(ck, series, self.clock())
                return series

        if stale:
            ck, series = stale[0]
            logger.warning("All providers failed for %s, using last cached series from %s", key, ck[0])
            return series

        return None

    async def _fetch(
        self,
        provider: WeatherProvider,
        key: CoordinateKey,
        start: datetime,
        end: datetime,
    ) -> Optional[ForecastSeries]:
        try:
            return await asyncio.wait_for(
                provider.fetch_forecast(key.lat, key.lon, start, end),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs for %s", provider.name, self.timeout_s, key)
        except WeatherProviderError as e:
            logger.warning("%s failed for %s: %s", provider.name, key, e)
        except Exception:
            # Any other provider failure counts against this coordinate only
            logger.exception("%s raised unexpectedly for %s", provider.name, key)
        return None
