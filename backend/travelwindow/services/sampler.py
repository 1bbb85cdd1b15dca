# backend/travelwindow/services/sampler.py

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Mapping, Optional, Sequence, Tuple

from ..config import AdvisoryConfig
from ..schemas.forecast import CoordinateKey, ForecastPoint, ForecastSeries, coordinate_key
from ..schemas.route import RouteGeometry

if TYPE_CHECKING:
    from .resolver import ForecastResolver
    from .weather import WeatherProvider

logger = logging.getLogger(__name__)


@dataclass
class SampledPoint:
    coordinate: CoordinateKey
    arrival_time: datetime
    forecast: ForecastPoint


@dataclass
class RouteSample:
    points: List[SampledPoint] = field(default_factory=list)
    unresolved: int = 0

    @property
    def requested(self) -> int:
        return len(self.points) + self.unresolved

    @property
    def unresolved_fraction(self) -> float:
        return (self.unresolved / self.requested) if self.requested else 1.0


def sample_indices(n: int, max_samples: int) -> List[int]:
    """
    Polyline indices to sample: stride ``ceil(n / max_samples)`` from 0,
    always ending on ``n - 1`` and never more than ``max_samples`` of them.
    """
    if n <= 0:
        return []
    if n == 1:
        return [0]

    max_samples = max(2, max_samples)
    stride = math.ceil(n / max_samples)
    idx = list(range(0, n, stride))

    if idx[-1] != n - 1:
        if len(idx) < max_samples:
            idx.append(n - 1)
        else:
            idx[-1] = n - 1
    return idx


def arrival_time(departure: datetime, duration_s: float, i: int, n: int) -> datetime:
    # Progress along the polyline by index, not by distance
    progress = i / (n - 1) if n > 1 else 0.0
    return departure + timedelta(seconds=duration_s * progress)


class RouteSampler:
    """
    Maps a route and a departure time onto forecast points.

    Per sampled point: exact/nearest time match in that coordinate's own
    series, then other forecast coordinates within
    ``spatial_fallback_max_degrees`` nearest first, then the next layer;
    otherwise the point counts as unresolved.
    """

    def __init__(self, config: Optional[AdvisoryConfig] = None):
        cfg = config or AdvisoryConfig()
        self.max_samples = cfg.max_route_samples
        self.precision = cfg.coordinate_precision
        self.max_fallback_distance = cfg.spatial_fallback_max_degrees

    def sampled(self, route: RouteGeometry) -> List[Tuple[int, CoordinateKey]]:
        coords = route.coordinates
        return [
            (i, coordinate_key(coords[i][0], coords[i][1], self.precision))
            for i in sample_indices(len(coords), self.max_samples)
        ]

    def sampled_coordinates(self, route: RouteGeometry) -> List[CoordinateKey]:
        return [key for _, key in self.sampled(route)]

    def sample(
        self,
        route: RouteGeometry,
        departure: datetime,
        *layers: Mapping[CoordinateKey, ForecastSeries],
    ) -> RouteSample:
        """
        Look every sampled point up in ``layers``, highest priority first.

        A point comes from the first layer that can serve it. If that layer's
        series carries no wind, wind is taken from the next layer that can.
        """
        n = len(route.coordinates)
        result = RouteSample()

        for i, key in self.sampled(route):
            eta = arrival_time(departure, route.duration, i, n)
            point = self._lookup(key, eta, layers)
            if point is None:
                result.unresolved += 1
                continue
            result.points.append(SampledPoint(coordinate=key, arrival_time=eta, forecast=point))

        if result.unresolved:
            logger.debug(
                "%d of %d sampled points unresolved for departure %s",
                result.unresolved, result.requested, departure.isoformat(),
            )
        return result

    async def resolve(
        self,
        route: RouteGeometry,
        departure: datetime,
        resolver: "ForecastResolver",
        providers: List["WeatherProvider"],
    ) -> RouteSample:
        """Fetch forecasts for the sampled coordinates, then sample."""
        arrival = departure + timedelta(seconds=route.duration)
        forecasts = await resolver.resolve(self.sampled_coordinates(route), providers, departure, arrival)
        return self.sample(route, departure, forecasts)

    def _lookup(
        self,
        key: CoordinateKey,
        eta: datetime,
        layers: Sequence[Mapping[CoordinateKey, ForecastSeries]],
    ) -> Optional[ForecastPoint]:
        primary: Optional[ForecastPoint] = None

        for forecasts in layers:
            hit = self._lookup_in(key, eta, forecasts)
            if hit is None:
                continue
            point, series = hit
            if primary is None:
                if series.has_wind:
                    return point
                primary = point
            elif series.has_wind:
                return primary.model_copy(update={"wind_speed": point.wind_speed})

        return primary

    def _lookup_in(
        self,
        key: CoordinateKey,
        eta: datetime,
        forecasts: Mapping[CoordinateKey, ForecastSeries],
    ) -> Optional[Tuple[ForecastPoint, ForecastSeries]]:
        series = forecasts.get(key)
        if series is not None:
            point = series.point_at(eta)
            if point is not None:
                return point, series

        for other in self._neighbours(key, forecasts):
            point = other.point_at(eta)
            if point is not None:
                return point, other
        return None

    def _neighbours(
        self,
        key: CoordinateKey,
        forecasts: Mapping[CoordinateKey, ForecastSeries],
    ) -> List[ForecastSeries]:
        # Other coordinates within the fallback distance, nearest first
        near: List[Tuple[float, int, ForecastSeries]] = []
        for idx, (other, series) in enumerate(forecasts.items()):
            if other == key:
                continue
            d = math.hypot(other.lon - key.lon, other.lat - key.lat)
            if d <= self.max_fallback_distance:
                near.append((d, idx, series))
        near.sort(key=lambda item: (item[0], item[1]))
        return [series for _, _, series in near]
