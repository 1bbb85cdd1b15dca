# backend/travelwindow/schemas/route.py

from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class Location(BaseModel):
    name: Optional[str] = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RouteGeometry(BaseModel):
    """
    Route as handed over by the directions provider.

    Coordinates are (lon, lat) pairs, Mapbox/GeoJSON order.
    Distance in metres, duration in seconds.
    """
    coordinates: List[Tuple[float, float]]
    distance: float = Field(default=0.0, ge=0)
    duration: float = Field(..., gt=0)

    @field_validator("coordinates")
    @classmethod
    def _at_least_two(cls, v: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        if len(v) < 2:
            raise ValueError("A route needs at least two coordinates")
        return v
