"""Turn sparse provider intervals into a dense, fixed-step forecast series."""
from __future__ import annotations

import logging
import math
import random
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from ..schemas.forecast import ForecastPoint, ForecastSeries, ProviderInterval

logger = logging.getLogger(__name__)

LIGHT = "light"
MODERATE = "moderate"
HEAVY = "heavy"

# mm/h ranges injected when the numbers say "dry" but the text says otherwise
FALLBACK_RANGES = {
    LIGHT: (0.1, 0.5),
    MODERATE: (0.5, 2.0),
    HEAVY: (2.0, 5.0),
}

_PRECIP_WORDS = ("rain", "drizzle", "shower", "snow", "sleet", "hail", "thunder", "storm", "flurries", "freezing")
_HEAVY_WORDS = ("heavy", "thunder", "storm", "extreme", "violent")
_LIGHT_WORDS = ("light", "drizzle", "flurries")


def precipitation_category(condition: str) -> Optional[str]:
    """
    Map a provider's condition text to light/moderate/heavy, or None if the
    text does not imply precipitation at all.

    >>> precipitation_category("light rain")
    'light'
    >>> precipitation_category("HeavyRain")
    'heavy'
    >>> precipitation_category("broken clouds") is None
    True
    """
    text = (condition or "").strip().lower()
    if not text or not any(w in text for w in _PRECIP_WORDS):
        return None
    if any(w in text for w in _HEAVY_WORDS):
        return HEAVY
    if any(w in text for w in _LIGHT_WORDS):
        return LIGHT
    return MODERATE


def fallback_precipitation(category: str, progress: float) -> float:
    """
    Deterministic stand-in intensity for a category at a position in the
    window. Starts at the bottom of the range and peaks mid-window.
    """
    lo, hi = FALLBACK_RANGES[category]
    progress = max(0.0, min(1.0, progress))
    return lo + (hi - lo) * math.sin(math.pi * progress)


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _clean(value: float) -> float:
    return round(max(0.0, value), 2)


class TemporalInterpolator:
    """
    Linear interpolation between consecutive provider intervals.

    Pass a seeded ``random.Random`` to draw the condition fallback uniformly
    from its range instead of the deterministic curve.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng

    def _fallback(self, category: str, progress: float) -> float:
        if self.rng is not None:
            lo, hi = FALLBACK_RANGES[category]
            return self.rng.uniform(lo, hi)
        return fallback_precipitation(category, progress)

    def densify(
        self,
        intervals: Iterable[ProviderInterval],
        *,
        step: timedelta,
        horizon: timedelta,
        native_interval: timedelta,
        tolerance: timedelta = timedelta(hours=3),
        provider: str = "",
        has_wind: bool = True,
    ) -> ForecastSeries:
        """
        Build a dense series from ``intervals``.

        Args:
            intervals: Sparse provider records, any order; duplicate starts
                keep the first record seen.
            step: Output spacing (5 or 15 minutes in practice).
            horizon: Maximum span covered, measured from the first interval.
            native_interval: Provider's own spacing; the last interval is held
                flat for this long.
            tolerance: Lookup tolerance stored on the resulting series.
            provider: Name recorded on the series.
            has_wind: Whether the source reports wind at all.
        """
        if step <= timedelta(0):
            raise ValueError("step must be positive")

        ordered = self._dedupe(intervals)
        if not ordered:
            return ForecastSeries([], tolerance=tolerance, provider=provider, has_wind=has_wind)

        starts = [iv.start for iv in ordered]
        end = min(ordered[0].start + horizon, ordered[-1].start + native_interval)
        points: List[ForecastPoint] = []

        t = ordered[0].start
        while t < end:
            i = bisect_right(starts, t) - 1
            points.append(self._point_at(ordered, i, t, native_interval))
            t += step

        logger.debug(
            "Densified %d %s intervals into %d points (step %s)",
            len(ordered), provider or "provider", len(points), step,
        )
        return ForecastSeries(points, tolerance=tolerance, provider=provider, has_wind=has_wind)

    @staticmethod
    def _dedupe(intervals: Iterable[ProviderInterval]) -> List[ProviderInterval]:
        seen = set()
        out: List[ProviderInterval] = []
        for iv in sorted(intervals, key=lambda x: x.start):
            if iv.start in seen:
                continue
            seen.add(iv.start)
            out.append(iv)
        return out

    def _point_at(
        self,
        ordered: List[ProviderInterval],
        i: int,
        t: datetime,
        native_interval: timedelta,
    ) -> ForecastPoint:
        cur = ordered[i]
        nxt = ordered[i + 1] if i + 1 < len(ordered) else None
        window = (nxt.start - cur.start) if nxt is not None else native_interval
        window_s = window.total_seconds()
        progress = (t - cur.start).total_seconds() / window_s if window_s > 0 else 0.0

        precip, wind, temp = self._values_at(cur, nxt, progress)

        category = precipitation_category(cur.condition)
        if _clean(precip) == 0.0 and category is not None:
            precip = self._fallback(category, progress)

        return ForecastPoint(
            timestamp=t,
            precipitation_intensity=_clean(precip),
            wind_speed=_clean(wind),
            temperature=(round(temp, 2) if temp is not None else None),
            condition=cur.condition,
        )

    @staticmethod
    def _values_at(
        cur: ProviderInterval,
        nxt: Optional[ProviderInterval],
        progress: float,
    ) -> Tuple[float, float, Optional[float]]:
        if nxt is None:
            return cur.precipitation_intensity, cur.wind_speed, cur.temperature

        precip = _lerp(cur.precipitation_intensity, nxt.precipitation_intensity, progress)
        wind = _lerp(cur.wind_speed, nxt.wind_speed, progress)
        if cur.temperature is not None and nxt.temperature is not None:
            temp: Optional[float] = _lerp(cur.temperature, nxt.temperature, progress)
        else:
            temp = cur.temperature
        return precip, wind, temp
