"""Shared fixtures: a frozen clock and fake weather providers."""
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from travelwindow.config import AdvisoryConfig
from travelwindow.schemas.forecast import ForecastPoint, ForecastSeries, ProviderInterval
from travelwindow.schemas.route import RouteGeometry
from travelwindow.services.cache import ForecastCache
from travelwindow.services.optimizer import WindowOptimizer
from travelwindow.services.resolver import ForecastResolver
from travelwindow.services.weather import ProviderPolicy, WeatherProvider, WeatherProviderError

T0 = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeProvider(WeatherProvider):
    """
    Provider whose series is produced by ``fn(lat, lon, t)`` on a fixed grid,
    so tests control exactly what each coordinate sees at each minute.
    """

    def __init__(
        self,
        fn: Callable[[float, float, datetime], ForecastPoint],
        *,
        name: str = "fake-hourly",
        high_resolution: bool = False,
        grid_step: timedelta = timedelta(minutes=5),
        span: timedelta = timedelta(hours=12),
        origin: datetime = T0 - timedelta(hours=2),
        fail_for: Optional[List[float]] = None,
        reports_wind: bool = True,
    ):
        super().__init__()
        self.name = name
        self.high_resolution = high_resolution
        self.tolerance = timedelta(minutes=3) if high_resolution else timedelta(hours=3)
        self.fn = fn
        self.grid_step = grid_step
        self.span = span
        self.origin = origin
        self.fail_for = fail_for or []
        self.reports_wind = reports_wind
        self.calls: List[tuple] = []

    async def fetch_intervals(self, lat, lon, start, end) -> List[ProviderInterval]:
        raise NotImplementedError

    async def fetch_forecast(self, lat, lon, start, end) -> ForecastSeries:
        self.calls.append((lat, lon))
        if lat in self.fail_for:
            raise WeatherProviderError(f"{self.name}: HTTP 500")
        points = []
        t = self.origin
        while t < self.origin + self.span:
            points.append(self.fn(lat, lon, t))
            t += self.grid_step
        return ForecastSeries(points, tolerance=self.tolerance, provider=self.name, has_wind=self.reports_wind)


def constant(precip: float = 0.0, wind: float = 10.0):
    def fn(lat, lon, t):
        return ForecastPoint(timestamp=t, precipitation_intensity=precip, wind_speed=wind, temperature=15.0)
    return fn


def make_optimizer(
    policy: ProviderPolicy,
    clock: FrozenClock,
    config: Optional[AdvisoryConfig] = None,
    cache: Optional[ForecastCache] = None,
) -> WindowOptimizer:
    config = config or AdvisoryConfig()
    if cache is None:
        cache = ForecastCache(ttl=timedelta(minutes=config.cache_ttl_minutes))
    resolver = ForecastResolver(cache, timeout_s=config.fetch_timeout_s, clock=clock)
    return WindowOptimizer(resolver, policy, config, clock=clock)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def three_point_route() -> RouteGeometry:
    """~90 minute trip; points far enough apart that no spatial fallback kicks in."""
    return RouteGeometry(
        coordinates=[(174.70, -36.80), (175.20, -37.30), (175.70, -37.80)],
        distance=120000.0,
        duration=5400.0,
    )


@pytest.fixture
def series_factory() -> Callable[..., ForecastSeries]:
    def build(values: Dict[int, float], *, start: datetime = T0, step_min: int = 15, tolerance=timedelta(hours=3)):
        pts = [
            ForecastPoint(
                timestamp=start + timedelta(minutes=step_min * i),
                precipitation_intensity=v,
                wind_speed=10.0,
            )
            for i, v in sorted(values.items())
        ]
        return ForecastSeries(pts, tolerance=tolerance)
    return build
