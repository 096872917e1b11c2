"""
FastAPI application entry point.

Run with:
    uvicorn gauge.app.main:app --reload --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from gauge.app.core.config import Settings, settings as default_settings
from gauge.app.core.logging_config import setup_logging
from gauge.app.core.errors import register_error_handlers
from gauge.app.core.middleware import RequestLoggingMiddleware
from gauge.app.core.health import HealthStatus, run_health_check
from gauge.app.pipeline.services import Services, build_services
from gauge.app.pipeline.warm import start_warm_task, stop_warm_task

# ── API routers ──
from gauge.app.api.v1.water_levels import router as water_levels_router
from gauge.app.api.v1.rainfall import router as rainfall_router
from gauge.app.api.v1.weather import router as weather_router
from gauge.app.api.v1.warnings import router as warnings_router
from gauge.app.api.v1.predictions import router as predictions_router

# ── Initialise logging ──
setup_logging()
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the application.

    ``services`` lets tests inject a container with fake providers; when it
    is given the container is not closed on shutdown and no cache warm runs.
    """
    config = settings or default_settings
    injected = services is not None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            config.APP_NAME, config.APP_VERSION, config.ENVIRONMENT,
        )
        if not injected:
            app.state.services = build_services(config)
        warm_task = None
        if not injected and config.CACHE_WARM_ON_STARTUP:
            warm_task = start_warm_task(app.state.services.water_levels, app.state.services.rainfall)
        yield
        await stop_warm_task(warm_task)
        await app.state.services.water_levels.aclose()
        if not injected:
            await app.state.services.aclose()
        logger.info("Shutting down %s", config.APP_NAME)

    app = FastAPI(
        title=config.APP_NAME,
        description=(
            "Flood telemetry for the Fitzroy basin. "
            "Reconciles river gauge levels from BOM Water Data and the "
            "Queensland WMIP, classifies flood status against gauge "
            "thresholds, and serves rainfall, weather, warnings and "
            "short-range level predictions."
        ),
        version=config.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if injected:
        app.state.services = services

    # ── Middleware stack (outermost first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS if not config.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app, config)

    # ── Register routers ──
    app.include_router(water_levels_router)
    app.include_router(rainfall_router)
    app.include_router(weather_router)
    app.include_router(warnings_router)
    app.include_router(predictions_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
            "providers": list(config.PROVIDER_PRIORITY),
            "endpoints": [
                "/api/v1/water-levels",
                "/api/v1/rainfall",
                "/api/v1/weather",
                "/api/v1/warnings",
                "/api/v1/predictions/{station_id}",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Deep health probe — checks all subsystems."""
        report = await run_health_check(request.app.state.services.cache, config)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(request: Request):
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(request.app.state.services.cache, config)
        if report.status is HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
