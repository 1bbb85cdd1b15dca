# backend/travelwindow/config.py

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process-level settings, read from TRAVELWINDOW_* env vars or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRAVELWINDOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Vendor credentials
    openweather_api_key: Optional[str] = None
    tomorrow_api_key: Optional[str] = None
    accuweather_api_key: Optional[str] = None
    mapbox_token: Optional[str] = None

    # Short-trip provider is only used when a key is present AND this is on
    use_minutecast: bool = True

    fetch_timeout_s: float = 10.0
    cache_ttl_minutes: float = 10.0
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


class AdvisoryConfig(BaseModel):
    """
    Every knob the advisory engine reads. Passed explicitly into the
    optimizer, resolver and sampler; nothing is looked up mid-computation.
    """

    model_config = ConfigDict(frozen=True)

    max_route_samples: int = Field(default=100, ge=2)
    search_window_minutes: int = Field(default=60, ge=0)
    search_step_minutes: int = Field(default=15, gt=0)
    high_res_search_step_minutes: int = Field(default=5, gt=0)
    cache_ttl_minutes: float = Field(default=10.0, gt=0)

    precip_high_threshold: float = 2.0  # mm/h
    precip_medium_threshold: float = 0.5  # mm/h
    wind_high_threshold: float = 50.0  # km/h
    wind_medium_threshold: float = 25.0  # km/h
    unresolved_fraction_escalation_limit: float = Field(default=0.7, ge=0.0, le=1.0)

    coordinate_precision: int = Field(default=3, ge=0, le=6)
    spatial_fallback_max_degrees: float = 0.1
    short_trip_minutes: float = 120.0
    past_candidate_grace_minutes: float = 5.0
    improvement_ratio: float = 0.7
    worsening_ratio: float = 1.3
    fetch_timeout_s: float = Field(default=10.0, gt=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdvisoryConfig":
        return cls(
            cache_ttl_minutes=settings.cache_ttl_minutes,
            fetch_timeout_s=settings.fetch_timeout_s,
        )
