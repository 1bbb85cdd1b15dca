"""OpenWeather 5 day / 3 hour forecast provider."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from ..schemas.forecast import ProviderInterval
from .weather import MS_TO_KMH, WeatherProvider, WeatherProviderError

logger = logging.getLogger(__name__)


class OpenWeatherProvider(WeatherProvider):
    """
    Long-range provider backed by https://openweathermap.org/forecast5.

    OpenWeather reports rain as an accumulation over the 3h slot, so it is
    divided by three to get an intensity in mm/h.
    """

    BASE_URL = "https://api.openweathermap.org/data/2.5/forecast"

    name = "openweather"
    native_interval = timedelta(hours=3)
    step = timedelta(minutes=15)
    horizon = timedelta(hours=120)
    tolerance = timedelta(hours=3)

    def __init__(self, api_key: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def fetch_intervals(
        self,
        lat: float,
        lon: float,
        start: datetime,
        end: datetime,
    ) -> List[ProviderInterval]:
        params = {
            "lat": round(lat, 4),
            "lon": round(lon, 4),
            "appid": self.api_key,
            "units": "metric",
        }
        logger.info("OpenWeather forecast request for %s,%s", params["lat"], params["lon"])
        data = await self._get_json(self.BASE_URL, params)
        return self._parse(data)

    def _parse(self, data: Dict[str, Any]) -> List[ProviderInterval]:
        items = data.get("list") if isinstance(data, dict) else None
        if not items or not isinstance(items, list):
            raise WeatherProviderError("openweather: response missing 'list'")

        out: List[ProviderInterval] = []
        try:
            for item in items:
                if not isinstance(item, dict):
                    raise TypeError(f"forecast item is {type(item).__name__}, not an object")
                weather = (item.get("weather") or [{}])[0]
                rain_3h = (item.get("rain") or {}).get("3h") or (item.get("snow") or {}).get("3h") or 0.0
                out.append(
                    ProviderInterval(
                        start=datetime.fromtimestamp(int(item["dt"]), tz=timezone.utc),
                        precipitation_intensity=float(rain_3h) / 3.0,
                        wind_speed=float((item.get("wind") or {}).get("speed", 0.0)) * MS_TO_KMH,
                        temperature=item["main"].get("temp"),
                        condition=weather.get("description") or weather.get("main") or "",
                    )
                )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise WeatherProviderError(f"openweather: failed to parse response: {e}") from e
        return out
