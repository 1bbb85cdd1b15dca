# backend/travelwindow/dependencies.py

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends

from .config import AdvisoryConfig, Settings, get_settings
from .services.accuweather import AccuWeatherMinuteCastProvider
from .services.cache import ForecastCache
from .services.openweather import OpenWeatherProvider
from .services.optimizer import WindowOptimizer, utc_now
from .services.resolver import ForecastResolver
from .services.tomorrow import TomorrowIoProvider
from .services.weather import ProviderPolicy

logger = logging.getLogger(__name__)


def build_policy(settings: Settings, config: AdvisoryConfig) -> ProviderPolicy:
    """
    Long-range: OpenWeather if keyed, else Tomorrow.io hourly.
    Short-range: AccuWeather MinuteCast if keyed, else Tomorrow.io 1-minute.
    """
    timeout = config.fetch_timeout_s

    long_range = None
    if settings.openweather_api_key:
        long_range = OpenWeatherProvider(settings.openweather_api_key, timeout_s=timeout)
    elif settings.tomorrow_api_key:
        long_range = TomorrowIoProvider(settings.tomorrow_api_key, timestep="1h", timeout_s=timeout)

    short_range = None
    if settings.use_minutecast:
        if settings.accuweather_api_key:
            short_range = AccuWeatherMinuteCastProvider(settings.accuweather_api_key, timeout_s=timeout)
        elif settings.tomorrow_api_key:
            short_range = TomorrowIoProvider(settings.tomorrow_api_key, timestep="1m", timeout_s=timeout)

    if long_range is None and short_range is None:
        logger.warning("No weather provider API key configured; every advisory will lack data")

    return ProviderPolicy(
        long_range=long_range,
        short_range=short_range,
        short_trip=timedelta(minutes=config.short_trip_minutes),
    )


@lru_cache()
def get_advisory_config() -> AdvisoryConfig:
    return AdvisoryConfig.from_settings(get_settings())


@lru_cache()
def get_forecast_cache() -> ForecastCache:
    # One cache for the whole process
    return ForecastCache(ttl=timedelta(minutes=get_advisory_config().cache_ttl_minutes))


@lru_cache()
def get_provider_policy() -> ProviderPolicy:
    return build_policy(get_settings(), get_advisory_config())


def get_optimizer(
    cache: ForecastCache = Depends(get_forecast_cache),
    policy: ProviderPolicy = Depends(get_provider_policy),
    config: AdvisoryConfig = Depends(get_advisory_config),
) -> WindowOptimizer:
    """
    Fresh optimizer per request so one caller's generation counter never
    cancels another caller's fetches; the cache is shared.
    """
    resolver = ForecastResolver(cache, timeout_s=config.fetch_timeout_s, clock=utc_now)
    return WindowOptimizer(resolver, policy, config, clock=utc_now)
