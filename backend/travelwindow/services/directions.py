from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import get_settings
from ..schemas.route import Location, RouteGeometry

logger = logging.getLogger(__name__)

MAPBOX_DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox/driving"


class DirectionsError(RuntimeError):
    pass


def _get_mapbox_token() -> str:
    token = (get_settings().mapbox_token or "").strip()
    if not token:
        raise DirectionsError("TRAVELWINDOW_MAPBOX_TOKEN is not set in environment")
    return token


async def get_route_geometry(
    from_loc: Location,
    to_loc: Location,
    *,
    timeout_s: float = 12.0,
    token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RouteGeometry:
    """
    Full route polyline (GeoJSON, lon/lat) plus distance and duration from
    Mapbox Directions. The engine treats the result as opaque.
    """
    token = token or _get_mapbox_token()

    # Mapbox expects lon,lat order
    coords = f"{from_loc.longitude},{from_loc.latitude};{to_loc.longitude},{to_loc.latitude}"
    url = f"{MAPBOX_DIRECTIONS_URL}/{coords}"

    params = {
        "access_token": token,
        "alternatives": "false",
        "overview": "full",
        "steps": "false",
        "geometries": "geojson",
    }

    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            r = await client.get(url, params=params)
            if r.status_code == 401:
                raise DirectionsError("Mapbox token rejected (401). Check TRAVELWINDOW_MAPBOX_TOKEN.")
            r.raise_for_status()
            data: Dict[str, Any] = r.json()
    except httpx.HTTPError as e:
        raise DirectionsError(f"Mapbox directions request failed: {e}") from e

    routes = data.get("routes") or []
    if not routes:
        code = data.get("code")
        msg = data.get("message")
        raise DirectionsError(f"No routes returned by Mapbox for this A→B (code={code}, message={msg})")

    route0 = routes[0]
    dist_m = route0.get("distance")
    dur_s = route0.get("duration")
    coordinates = (route0.get("geometry") or {}).get("coordinates") or []

    if dist_m is None or dur_s is None or len(coordinates) < 2:
        logger.warning("Mapbox route0 keys: %s", list(route0.keys()))
        raise DirectionsError("Mapbox route missing distance/duration/geometry fields")

    return RouteGeometry(
        coordinates=[(float(c[0]), float(c[1])) for c in coordinates],
        distance=float(dist_m),
        duration=float(dur_s),
    )
