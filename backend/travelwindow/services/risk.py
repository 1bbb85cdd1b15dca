"""Precipitation / wind risk scoring."""
from __future__ import annotations

from typing import Optional

from ..config import AdvisoryConfig
from ..schemas.advisory import RiskAssessment, RiskFactor, RiskLevel


class RiskAnalyzer:
    """
    Pure scoring of the worst precipitation and wind seen along a trip.

    Each factor is classified on its own thresholds and the worse one wins,
    except that two factors both at medium or above compound to high.
    """

    def __init__(self, config: Optional[AdvisoryConfig] = None):
        cfg = config or AdvisoryConfig()
        self.precip_high = cfg.precip_high_threshold
        self.precip_medium = cfg.precip_medium_threshold
        self.wind_high = cfg.wind_high_threshold
        self.wind_medium = cfg.wind_medium_threshold

    def precipitation_risk(self, max_precip: float) -> RiskLevel:
        if max_precip > self.precip_high:
            return RiskLevel.HIGH
        if max_precip > self.precip_medium:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def wind_risk(self, max_wind: float) -> RiskLevel:
        if max_wind > self.wind_high:
            return RiskLevel.HIGH
        if max_wind > self.wind_medium:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def analyze(self, max_precip: float, max_wind: float) -> RiskAssessment:
        rain = self.precipitation_risk(max_precip)
        wind = self.wind_risk(max_wind)

        if rain.ordinal >= RiskLevel.MEDIUM.ordinal and wind.ordinal >= RiskLevel.MEDIUM.ordinal:
            return RiskAssessment(risk_level=RiskLevel.HIGH, primary_risk_factor=RiskFactor.COMBINED)

        if wind.ordinal > rain.ordinal:
            return RiskAssessment(risk_level=wind, primary_risk_factor=RiskFactor.WIND)
        return RiskAssessment(risk_level=rain, primary_risk_factor=RiskFactor.PRECIPITATION)


def analyze(max_precip: float, max_wind: float) -> RiskAssessment:
    """Score with the default thresholds."""
    return RiskAnalyzer().analyze(max_precip, max_wind)
