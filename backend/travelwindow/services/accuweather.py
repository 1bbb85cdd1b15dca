"""AccuWeather MinuteCast provider: minute-level precipitation for the next 2 hours."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from ..schemas.forecast import ProviderInterval
from .weather import WeatherProvider, WeatherProviderError

logger = logging.getLogger(__name__)


def _intensity_label(precip: float) -> str:
    if precip <= 0:
        return ""
    if precip <= 0.5:
        return "light"
    if precip <= 2.0:
        return "moderate"
    return "heavy"


class AccuWeatherMinuteCastProvider(WeatherProvider):
    """
    Two requests per coordinate: a geoposition lookup for the location key,
    then the minute forecast. MinuteCast carries no wind; its series is
    flagged ``has_wind=False`` and wind comes from the long-range provider.
    """

    LOCATION_URL = "https://dataservice.accuweather.com/locations/v1/cities/geoposition/search"
    MINUTECAST_URL = "https://dataservice.accuweather.com/forecasts/v1/minute"

    name = "accuweather-minutecast"
    high_resolution = True
    reports_wind = False
    native_interval = timedelta(minutes=1)
    step = timedelta(minutes=5)
    horizon = timedelta(hours=2)
    tolerance = timedelta(minutes=3)

    def __init__(self, api_key: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def get_location_key(self, lat: float, lon: float) -> str:
        data = await self._get_json(
            self.LOCATION_URL,
            {"apikey": self.api_key, "q": f"{lat},{lon}"},
        )
        key = data.get("Key") if isinstance(data, dict) else None
        if not key:
            raise WeatherProviderError(f"{self.name}: no location key for {lat},{lon}")
        return str(key)

    async def fetch_intervals(
        self,
        lat: float,
        lon: float,
        start: datetime,
        end: datetime,
    ) -> List[ProviderInterval]:
        location_key = await self.get_location_key(lat, lon)
        logger.info("MinuteCast request for location key %s", location_key)
        data = await self._get_json(
            self.MINUTECAST_URL,
            {"apikey": self.api_key, "locationKey": location_key, "details": "true"},
        )
        return self._parse(data)

    def _parse(self, data: Dict[str, Any]) -> List[ProviderInterval]:
        intervals = data.get("Intervals") if isinstance(data, dict) else None
        if not intervals or not isinstance(intervals, list):
            raise WeatherProviderError(f"{self.name}: response missing 'Intervals'")

        out: List[ProviderInterval] = []
        try:
            for item in intervals:
                if not isinstance(item, dict):
                    raise TypeError(f"interval is {type(item).__name__}, not an object")
                precip = float(item.get("Precipitation") or 0.0)
                kind = str(item.get("PrecipitationType") or "Rain").lower() if precip > 0 else ""
                label = _intensity_label(precip)
                out.append(
                    ProviderInterval(
                        start=datetime.fromisoformat(str(item["DateTime"])),
                        precipitation_intensity=precip,
                        wind_speed=0.0,
                        condition=f"{label} {kind}".strip(),
                    )
                )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise WeatherProviderError(f"{self.name}: failed to parse response: {e}") from e
        return out
