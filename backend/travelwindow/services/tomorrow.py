"""Tomorrow.io timelines provider (hourly, or 1-minute for short trips)."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from ..schemas.forecast import ProviderInterval
from .weather import MS_TO_KMH, WeatherProvider, WeatherProviderError

logger = logging.getLogger(__name__)

WEATHER_CODES: Dict[int, str] = {
    1000: "Clear",
    1100: "Mostly Clear",
    1101: "Partly Cloudy",
    1102: "Mostly Cloudy",
    1001: "Cloudy",
    2000: "Fog",
    2100: "Light Fog",
    4000: "Drizzle",
    4001: "Rain",
    4200: "Light Rain",
    4201: "Heavy Rain",
    5000: "Snow",
    5001: "Flurries",
    5100: "Light Snow",
    5101: "Heavy Snow",
    6000: "Freezing Drizzle",
    6001: "Freezing Rain",
    6200: "Light Freezing Rain",
    6201: "Heavy Freezing Rain",
    7000: "Ice Pellets",
    7101: "Heavy Ice Pellets",
    7102: "Light Ice Pellets",
    8000: "Thunderstorm",
}


class TomorrowIoProvider(WeatherProvider):
    BASE_URL = "https://api.tomorrow.io/v4/timelines"
    FIELDS = ("temperature", "precipitationIntensity", "windSpeed", "weatherCode")

    def __init__(self, api_key: str, *, timestep: str = "1h", **kwargs: Any):
        super().__init__(**kwargs)
        if timestep not in ("1h", "1m"):
            raise ValueError(f"Unsupported Tomorrow.io timestep '{timestep}'")
        self.api_key = api_key
        self.timestep = timestep

        if timestep == "1m":
            self.name = "tomorrow-minutely"
            self.high_resolution = True
            self.native_interval = timedelta(minutes=1)
            self.step = timedelta(minutes=5)
            self.horizon = timedelta(hours=2)
            self.tolerance = timedelta(minutes=3)
        else:
            self.name = "tomorrow-hourly"
            self.native_interval = timedelta(hours=1)
            self.step = timedelta(minutes=15)
            self.horizon = timedelta(hours=120)
            self.tolerance = timedelta(hours=3)

    async def fetch_intervals(
        self,
        lat: float,
        lon: float,
        start: datetime,
        end: datetime,
    ) -> List[ProviderInterval]:
        params = {
            "location": f"{round(lat, 4)},{round(lon, 4)}",
            "fields": ",".join(self.FIELDS),
            "timesteps": self.timestep,
            "startTime": start.isoformat(),
            "endTime": end.isoformat(),
            "units": "metric",
            "apikey": self.api_key,
        }
        logger.info("Tomorrow.io %s request for %s", self.timestep, params["location"])
        data = await self._get_json(self.BASE_URL, params)
        return self._parse(data)

    def _parse(self, data: Dict[str, Any]) -> List[ProviderInterval]:
        body = data.get("data") if isinstance(data, dict) else None
        timelines = body.get("timelines") if isinstance(body, dict) else None
        if not timelines or not isinstance(timelines, list):
            raise WeatherProviderError(f"{self.name}: response missing 'data.timelines'")

        timeline = next(
            (t for t in timelines if isinstance(t, dict) and t.get("timestep") == self.timestep),
            None,
        )
        if timeline is None:
            raise WeatherProviderError(f"{self.name}: no '{self.timestep}' timeline in response")

        out: List[ProviderInterval] = []
        try:
            for item in timeline.get("intervals") or []:
                if not isinstance(item, dict):
                    raise TypeError(f"interval is {type(item).__name__}, not an object")
                values = item.get("values") or {}
                code = int(values.get("weatherCode") or 1000)
                out.append(
                    ProviderInterval(
                        start=datetime.fromisoformat(str(item["startTime"]).replace("Z", "+00:00")),
                        precipitation_intensity=float(values.get("precipitationIntensity") or 0.0),
                        wind_speed=float(values.get("windSpeed") or 0.0) * MS_TO_KMH,
                        temperature=values.get("temperature"),
                        condition=WEATHER_CODES.get(code, "Unknown"),
                    )
                )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise WeatherProviderError(f"{self.name}: failed to parse response: {e}") from e
        return out
