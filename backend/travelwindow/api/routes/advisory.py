from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from ...dependencies import get_forecast_cache, get_optimizer
from ...schemas.advisory import AdvisoryRequest, CacheStats, Recommendation
from ...services.cache import ForecastCache
from ...services.directions import DirectionsError, get_route_geometry
from ...services.optimizer import StaleComputationError, WindowOptimizer

router = APIRouter()


@router.post("/recommend", response_model=Recommendation)
async def recommend_departure(
    payload: AdvisoryRequest,
    optimizer: WindowOptimizer = Depends(get_optimizer),
) -> Recommendation:
    """
    Search departure times around ``departure_time`` (default: now) and
    advise whether to leave now, earlier, or wait.

    Send either a ready-made ``route`` or ``from_location``/``to_location``,
    in which case the route comes from Mapbox Directions.
    """
    route = payload.route
    if route is None:
        try:
            route = await get_route_geometry(payload.from_location, payload.to_location)
        except DirectionsError as e:
            raise HTTPException(status_code=502, detail=f"Directions service error: {e}")

    try:
        return await optimizer.recommend(route, payload.departure_time)
    except StaleComputationError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/cache", response_model=CacheStats)
def cache_stats(cache: ForecastCache = Depends(get_forecast_cache)) -> CacheStats:
    return CacheStats(**cache.stats(datetime.now(timezone.utc)))


@router.delete("/cache", response_model=CacheStats)
def clear_cache(cache: ForecastCache = Depends(get_forecast_cache)) -> CacheStats:
    cache.clear()
    return CacheStats(**cache.stats(datetime.now(timezone.utc)))
