# backend/travelwindow/schemas/advisory.py

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, model_validator

from .route import Location, RouteGeometry


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def ordinal(self) -> int:
        return _RISK_ORDER[self]

    @classmethod
    def from_ordinal(cls, value: int) -> "RiskLevel":
        value = max(0, min(2, value))
        return (cls.LOW, cls.MEDIUM, cls.HIGH)[value]


_RISK_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class RiskFactor(str, Enum):
    PRECIPITATION = "precipitation"
    WIND = "wind"
    COMBINED = "combined"


class RecommendationStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"


class Trend(str, Enum):
    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"


class RiskAssessment(BaseModel):
    risk_level: RiskLevel
    primary_risk_factor: RiskFactor


class TravelWindow(BaseModel):
    departure_time: datetime
    arrival_time: datetime
    total_rain: float
    avg_rain: float
    max_rain: float
    avg_wind: float
    max_wind: float
    risk_level: RiskLevel
    primary_risk_factor: RiskFactor
    resolved_points: int
    unresolved_points: int
    escalated: bool = False  # risk raised because too few points resolved

    @property
    def unresolved_fraction(self) -> float:
        total = self.resolved_points + self.unresolved_points
        return (self.unresolved_points / total) if total else 1.0


class CurrentConditions(BaseModel):
    risk_level: RiskLevel
    primary_risk_factor: RiskFactor
    max_rain: float
    max_wind: float
    message: str


class ImprovementForecast(BaseModel):
    will_improve: bool
    trend: Trend
    time_to_improvement: Optional[datetime] = None
    message: str


class Recommendation(BaseModel):
    status: RecommendationStatus = RecommendationStatus.OK
    should_wait: bool
    reason: str
    best_departure_time: datetime
    windows: List[TravelWindow] = []
    current_conditions: Optional[CurrentConditions] = None
    improvement_forecast: ImprovementForecast
    provider: Optional[str] = None
    generation: int = 0


class AdvisoryRequest(BaseModel):
    route: Optional[RouteGeometry] = None
    from_location: Optional[Location] = None
    to_location: Optional[Location] = None
    departure_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _route_or_endpoints(self) -> "AdvisoryRequest":
        if self.route is None and (self.from_location is None or self.to_location is None):
            raise ValueError("Provide either 'route' or both 'from_location' and 'to_location'.")
        return self


class CacheStats(BaseModel):
    size: int
    fresh: int
    ttl_minutes: float
