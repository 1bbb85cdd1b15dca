# backend/travelwindow/schemas/forecast.py

from __future__ import annotations

from bisect import bisect_left
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel, ConfigDict, field_validator


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CoordinateKey(NamedTuple):
    lon: float
    lat: float

    def __str__(self) -> str:
        return f"{self.lon},{self.lat}"


def coordinate_key(lon: float, lat: float, precision: int = 3) -> CoordinateKey:
    return CoordinateKey(round(float(lon), precision), round(float(lat), precision))


class ForecastPoint(BaseModel):
    """
    Weather at one instant. Precipitation in mm/h, wind in km/h.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    precipitation_intensity: float = 0.0
    wind_speed: float = 0.0
    temperature: Optional[float] = None
    condition: str = ""

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)


class ProviderInterval(BaseModel):
    """
    One sparse record as a vendor reports it (3-hourly, hourly or minutely).
    """

    start: datetime
    precipitation_intensity: float = 0.0
    wind_speed: float = 0.0
    temperature: Optional[float] = None
    condition: str = ""

    @field_validator("start")
    @classmethod
    def _utc_start(cls, v: datetime) -> datetime:
        return _as_utc(v)


def minute_key(when: datetime) -> int:
    return int(_as_utc(when).timestamp() // 60)


class ForecastSeries:
    """
    Time-ordered forecast for one coordinate.

    Timestamps must be strictly increasing. ``tolerance`` bounds how far
    ``point_at`` will reach for the nearest point when there is no exact
    minute match (3 minutes for minute-level data, 3 hours otherwise).
    ``has_wind`` is False for sources that carry precipitation only.
    """

    def __init__(
        self,
        points: Sequence[ForecastPoint],
        *,
        tolerance: timedelta = timedelta(hours=3),
        provider: str = "",
        has_wind: bool = True,
    ) -> None:
        pts = list(points)
        for prev, cur in zip(pts, pts[1:]):
            if cur.timestamp <= prev.timestamp:
                raise ValueError(
                    f"Forecast timestamps must be strictly increasing "
                    f"({prev.timestamp.isoformat()} then {cur.timestamp.isoformat()})"
                )

        self._points: List[ForecastPoint] = pts
        self._times: List[datetime] = [p.timestamp for p in pts]
        self._by_minute: Dict[int, ForecastPoint] = {}
        for p in pts:
            self._by_minute.setdefault(minute_key(p.timestamp), p)

        self.tolerance = tolerance
        self.provider = provider
        self.has_wind = has_wind

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[ForecastPoint]:
        return iter(self._points)

    def __getitem__(self, idx: int) -> ForecastPoint:
        return self._points[idx]

    def __repr__(self) -> str:
        if not self._points:
            return f"ForecastSeries(empty, provider={self.provider!r})"
        return (
            f"ForecastSeries({len(self)} points, {self.start.isoformat()} -> "
            f"{self.end.isoformat()}, provider={self.provider!r})"
        )

    @property
    def points(self) -> List[ForecastPoint]:
        return list(self._points)

    @property
    def start(self) -> datetime:
        return self._times[0]

    @property
    def end(self) -> datetime:
        return self._times[-1]

    def point_at(self, when: datetime) -> Optional[ForecastPoint]:
        """
        Exact minute match first, then the nearest point within tolerance.
        Ties between an earlier and a later point go to the earlier one.
        """
        if not self._points:
            return None

        exact = self._by_minute.get(minute_key(when))
        if exact is not None:
            return exact

        when = _as_utc(when)
        idx = bisect_left(self._times, when)

        best: Optional[ForecastPoint] = None
        best_delta: Optional[timedelta] = None
        for i in (idx - 1, idx):
            if 0 <= i < len(self._points):
                delta = abs(self._times[i] - when)
                if best_delta is None or delta < best_delta:
                    best, best_delta = self._points[i], delta

        if best_delta is not None and best_delta <= self.tolerance:
            return best
        return None
