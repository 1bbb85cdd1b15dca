"""Weather provider abstraction and provider selection policy."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from ..schemas.forecast import ForecastSeries, ProviderInterval
from .interpolation import TemporalInterpolator

logger = logging.getLogger(__name__)

MS_TO_KMH = 3.6


class WeatherProviderError(Exception):
    """Raised when a provider cannot deliver a usable forecast."""
    pass


class WeatherProvider(ABC):
    """
    Base class for forecast sources.

    Subclasses only implement ``fetch_intervals``; ``fetch_forecast`` turns
    those sparse records into a dense series using the provider's own step,
    horizon and lookup tolerance.
    """

    name: str = "provider"
    high_resolution: bool = False
    reports_wind: bool = True
    native_interval: timedelta = timedelta(hours=1)
    step: timedelta = timedelta(minutes=15)
    horizon: timedelta = timedelta(hours=120)
    tolerance: timedelta = timedelta(hours=3)

    def __init__(
        self,
        *,
        interpolator: Optional[TemporalInterpolator] = None,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.interpolator = interpolator or TemporalInterpolator()
        self.timeout_s = timeout_s
        # Tests swap in httpx.MockTransport here
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        """GET ``url`` and decode JSON, converting every failure to WeatherProviderError."""
        try:
            async with self._client() as client:
                r = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise WeatherProviderError(f"{self.name}: network error: {e}") from e

        if r.status_code >= 400:
            raise WeatherProviderError(f"{self.name}: HTTP {r.status_code}: {r.text[:200]}")

        try:
            return r.json()
        except ValueError as e:
            raise WeatherProviderError(f"{self.name}: bad JSON in response") from e

    @abstractmethod
    async def fetch_intervals(
        self,
        lat: float,
        lon: float,
        start: datetime,
        end: datetime,
    ) -> List[ProviderInterval]:
        """
        Fetch sparse forecast records for one coordinate.

        Raises:
            WeatherProviderError: On HTTP errors, bad JSON or missing fields.
        """

    async def fetch_forecast(
        self,
        lat: float,
        lon: float,
        start: datetime,
        end: datetime,
    ) -> ForecastSeries:
        intervals = await self.fetch_intervals(lat, lon, start, end)
        if not intervals:
            raise WeatherProviderError(f"{self.name}: no forecast intervals for {lat},{lon}")

        return self.interpolator.densify(
            intervals,
            step=self.step,
            horizon=self.horizon,
            native_interval=self.native_interval,
            tolerance=self.tolerance,
            provider=self.name,
            has_wind=self.reports_wind,
        )


@dataclass
class ProviderPolicy:
    """
    Which providers serve a trip, in order of preference.

    Precedence: short-trip high-resolution > long-range > none. The
    high-resolution provider is only considered for trips shorter than
    ``short_trip``. Both are fetched for such trips: minute-level data
    serves the points its horizon covers and the long-range provider
    covers everything else, per point.
    """

    long_range: Optional[WeatherProvider] = None
    short_range: Optional[WeatherProvider] = None
    short_trip: timedelta = timedelta(hours=2)

    def select(self, trip_duration: timedelta) -> List[WeatherProvider]:
        chain: List[WeatherProvider] = []
        if self.short_range is not None and trip_duration < self.short_trip:
            chain.append(self.short_range)
        if self.long_range is not None:
            chain.append(self.long_range)
        return chain

    def uses_high_resolution(self, trip_duration: timedelta) -> bool:
        chain = self.select(trip_duration)
        return bool(chain) and chain[0].high_resolution
