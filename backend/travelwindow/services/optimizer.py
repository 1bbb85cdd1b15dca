# backend/travelwindow/services/optimizer.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import AdvisoryConfig
from ..schemas.advisory import (
    CurrentConditions,
    ImprovementForecast,
    Recommendation,
    RecommendationStatus,
    RiskFactor,
    RiskLevel,
    Trend,
    TravelWindow,
)
from ..schemas.route import RouteGeometry
from .resolver import ForecastMap, ForecastResolver
from .risk import RiskAnalyzer
from .sampler import RouteSampler
from .weather import ProviderPolicy

logger = logging.getLogger(__name__)


class StaleComputationError(RuntimeError):
    """A newer recommend() call superseded this one."""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def rank_key(window: TravelWindow) -> Tuple[int, float]:
    return (window.risk_level.ordinal, window.total_rain)


def rank_windows(windows: Sequence[TravelWindow]) -> List[TravelWindow]:
    # sorted() is stable, so equal windows keep chronological order
    return sorted(windows, key=rank_key)


def _hhmm(when: datetime) -> str:
    return _utc(when).strftime("%H:%M UTC")


class WindowOptimizer:
    """
    Searches departure times around a baseline and turns the result into a
    recommendation.

    Forecasts are fetched once per ``recommend`` call and reused for every
    candidate departure. Each call bumps a generation counter; starting a new
    call cancels the previous call's in-flight fetches and the superseded call
    raises ``StaleComputationError`` rather than returning an outdated answer.
    """

    def __init__(
        self,
        resolver: ForecastResolver,
        policy: ProviderPolicy,
        config: Optional[AdvisoryConfig] = None,
        *,
        sampler: Optional[RouteSampler] = None,
        analyzer: Optional[RiskAnalyzer] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or AdvisoryConfig()
        self.resolver = resolver
        self.policy = policy
        self.sampler = sampler or RouteSampler(self.config)
        self.analyzer = analyzer or RiskAnalyzer(self.config)
        self.clock = clock
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    # -----------------------------------------------------------------
    # Candidates and windows
    # -----------------------------------------------------------------

    def search_step(self, trip_duration: timedelta) -> timedelta:
        if self.policy.uses_high_resolution(trip_duration):
            return timedelta(minutes=self.config.high_res_search_step_minutes)
        return timedelta(minutes=self.config.search_step_minutes)

    def candidate_times(self, baseline: datetime, now: datetime, step: timedelta) -> List[datetime]:
        span = timedelta(minutes=self.config.search_window_minutes)
        earliest = now - timedelta(minutes=self.config.past_candidate_grace_minutes)

        out: List[datetime] = []
        t = baseline - span
        while t <= baseline + span:
            if t >= earliest:
                out.append(t)
            t += step
        return out

    def build_window(
        self,
        route: RouteGeometry,
        departure: datetime,
        layers: Sequence[ForecastMap],
    ) -> TravelWindow:
        sample = self.sampler.sample(route, departure, *layers)

        rains = [p.forecast.precipitation_intensity for p in sample.points]
        winds = [p.forecast.wind_speed for p in sample.points]
        n = len(sample.points)

        total_rain = sum(rains)
        max_rain = max(rains, default=0.0)
        max_wind = max(winds, default=0.0)

        assessment = self.analyzer.analyze(max_rain, max_wind)
        risk = assessment.risk_level

        escalated = False
        if sample.unresolved_fraction > self.config.unresolved_fraction_escalation_limit:
            # Too little data to trust a "low"
            if risk == RiskLevel.LOW:
                risk = RiskLevel.MEDIUM
                escalated = True

        return TravelWindow(
            departure_time=departure,
            arrival_time=departure + timedelta(seconds=route.duration),
            total_rain=round(total_rain, 2),
            avg_rain=round(total_rain / n, 2) if n else 0.0,
            max_rain=round(max_rain, 2),
            avg_wind=round(sum(winds) / n, 2) if n else 0.0,
            max_wind=round(max_wind, 2),
            risk_level=risk,
            primary_risk_factor=assessment.primary_risk_factor,
            resolved_points=n,
            unresolved_points=sample.unresolved,
            escalated=escalated,
        )

    # -----------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------

    async def recommend(
        self,
        route: RouteGeometry,
        baseline: Optional[datetime] = None,
    ) -> Recommendation:
        self._generation += 1
        generation = self._generation
        cancelled = self.resolver.cancel_pending()
        if cancelled:
            logger.info("Generation %d: cancelled %d superseded fetches", generation, cancelled)

        now = _utc(self.clock())
        baseline = _utc(baseline) if baseline is not None else now
        duration = timedelta(seconds=route.duration)

        providers = self.policy.select(duration)
        step = self.search_step(duration)
        span = timedelta(minutes=self.config.search_window_minutes)

        logger.info(
            "Generation %d: %s trip, providers=%s, step=%s",
            generation, duration, [p.name for p in providers], step,
        )

        if not providers:
            logger.warning("No weather provider configured; route cannot be assessed")

        keys = self.sampler.sampled_coordinates(route)
        try:
            # One map per provider; the sampler layers them per point
            layers = await asyncio.gather(*(
                self.resolver.resolve(keys, [provider], baseline - span, baseline + span + duration)
                for provider in providers
            ))
        except asyncio.CancelledError:
            if generation != self._generation:
                raise StaleComputationError(f"generation {generation} superseded by {self._generation}")
            raise

        if generation != self._generation:
            raise StaleComputationError(f"generation {generation} superseded by {self._generation}")

        return self.evaluate(route, baseline, now, step, list(layers), generation=generation)

    def evaluate(
        self,
        route: RouteGeometry,
        baseline: datetime,
        now: datetime,
        step: timedelta,
        layers: Sequence[ForecastMap],
        *,
        generation: int = 0,
    ) -> Recommendation:
        """
        Pure part of ``recommend``: everything after the forecasts are in hand.

        ``layers`` holds one forecast map per provider, highest priority
        first. Minute-level data serves every point its horizon covers and
        the long-range map fills in the rest, and the wind it lacks.
        """
        provider = ",".join(sorted({
            s.provider for forecasts in layers for s in forecasts.values() if s.provider
        })) or None

        current = self.build_window(route, baseline, layers)
        if current.resolved_points == 0:
            logger.warning("No sampled point resolved for departure %s", baseline.isoformat())
            return self._insufficient(baseline, provider, generation)

        windows = [self.build_window(route, t, layers) for t in self.candidate_times(baseline, now, step)]
        ranked = rank_windows(windows) or [current]

        should_wait, reason = self._decide(current, windows, baseline)

        return Recommendation(
            status=RecommendationStatus.OK,
            should_wait=should_wait,
            reason=reason,
            best_departure_time=ranked[0].departure_time,
            windows=ranked,
            current_conditions=self._current_conditions(current),
            improvement_forecast=self.improvement_forecast(current, windows, baseline),
            provider=provider,
            generation=generation,
        )

    # -----------------------------------------------------------------
    # Decision helpers
    # -----------------------------------------------------------------

    @staticmethod
    def _best(windows: Sequence[TravelWindow]) -> Optional[TravelWindow]:
        return min(windows, key=rank_key) if windows else None

    def _decide(
        self,
        current: TravelWindow,
        windows: Sequence[TravelWindow],
        baseline: datetime,
    ) -> Tuple[bool, str]:
        best_after = self._best([w for w in windows if w.departure_time > baseline])
        best_before = self._best([w for w in windows if w.departure_time < baseline])
        best_from_now = self._best([w for w in windows if w.departure_time >= baseline])
        cur = current.risk_level.ordinal

        if best_after is not None and best_after.risk_level.ordinal > cur:
            return False, "Conditions are expected to get worse. Leave as soon as possible."

        if best_before is not None and best_before.risk_level.ordinal < cur:
            return False, (
                f"Leaving earlier, around {_hhmm(best_before.departure_time)}, "
                f"lowers the risk to {best_before.risk_level.value}."
            )

        if (
            current.risk_level == RiskLevel.HIGH
            and best_from_now is not None
            and best_from_now.risk_level != RiskLevel.HIGH
        ):
            minutes = round((best_from_now.departure_time - baseline).total_seconds() / 60)
            when = f"in {minutes} minutes" if minutes > 0 else "now"
            return True, f"Current conditions pose high risk. Better to depart {when}."

        if current.risk_level == RiskLevel.LOW:
            return False, "Current conditions are favorable for travel."
        if current.risk_level == RiskLevel.HIGH:
            return False, "High risk across the whole search window. Consider postponing the trip."
        return False, "Conditions are acceptable, but monitor weather closely."

    def improvement_forecast(
        self,
        current: TravelWindow,
        windows: Sequence[TravelWindow],
        baseline: datetime,
    ) -> ImprovementForecast:
        future = sorted((w for w in windows if w.departure_time > baseline), key=lambda w: w.departure_time)
        better = self.config.improvement_ratio * current.max_rain
        worse = self.config.worsening_ratio * current.max_rain

        for w in future:
            drops_from_high = current.risk_level == RiskLevel.HIGH and w.risk_level != RiskLevel.HIGH
            if w.max_rain < better or drops_from_high:
                return ImprovementForecast(
                    will_improve=True,
                    trend=Trend.IMPROVING,
                    time_to_improvement=w.departure_time,
                    message=f"Conditions should improve around {_hhmm(w.departure_time)}.",
                )

        if any(w.max_rain > worse for w in future):
            return ImprovementForecast(
                will_improve=False,
                trend=Trend.WORSENING,
                message="Rain is expected to get heavier over the next hour.",
            )

        return ImprovementForecast(
            will_improve=False,
            trend=Trend.STABLE,
            message="Weather conditions appear stable for the next hour.",
        )

    @staticmethod
    def _current_conditions(current: TravelWindow) -> CurrentConditions:
        level = {
            RiskLevel.HIGH: "High",
            RiskLevel.MEDIUM: "Moderate",
            RiskLevel.LOW: "Low",
        }[current.risk_level]

        if current.primary_risk_factor == RiskFactor.WIND:
            message = f"{level} wind risk: {current.max_wind:.0f} km/h expected"
        elif current.primary_risk_factor == RiskFactor.COMBINED:
            message = (
                f"{level} combined risk: {current.max_rain:.1f}mm/h rain "
                f"with {current.max_wind:.0f} km/h wind expected"
            )
        else:
            message = f"{level} rain risk: {current.max_rain:.1f}mm/h expected"

        if current.escalated:
            message += " (limited forecast coverage for this trip)"

        return CurrentConditions(
            risk_level=current.risk_level,
            primary_risk_factor=current.primary_risk_factor,
            max_rain=current.max_rain,
            max_wind=current.max_wind,
            message=message,
        )

    @staticmethod
    def _insufficient(baseline: datetime, provider: Optional[str], generation: int) -> Recommendation:
        return Recommendation(
            status=RecommendationStatus.INSUFFICIENT_DATA,
            should_wait=False,
            reason="Insufficient weather data for this route. Risk could not be assessed.",
            best_departure_time=baseline,
            windows=[],
            current_conditions=None,
            improvement_forecast=ImprovementForecast(
                will_improve=False,
                trend=Trend.STABLE,
                message="No forecast data available to judge how conditions will change.",
            ),
            provider=provider,
            generation=generation,
        )
