import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse, RedirectResponse

from .api.routes import advisory
from .config import get_settings

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Travel Window",
    version="0.3.0",
    description="Backend API for Travel Window – weather-aware departure advice for a route.",
)


@app.get("/", include_in_schema=False)
def root():
    return RedirectResponse(url="/docs")


@app.get("/health", tags=["health"])
def health_check():
    """
    Basic health check endpoint used for monitoring and deployment.
    """
    return JSONResponse(content={"status": "ok"})


# ---- API Routers ----

app.include_router(
    advisory.router,
    prefix="/advisory",
    tags=["advisory"],
)
