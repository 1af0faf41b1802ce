from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from orderflow_api.core.settings import settings
from orderflow_api.db.session import engine
from orderflow_api.services.realtime import get_change_feed
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    feed = get_change_feed()
    app.state.change_feed = feed
    logger.info(
        "Change feed ready",
        queue_size=settings.realtime_queue_size,
        max_retries=settings.realtime_max_retries,
    )
    if settings.staff_passcode_lockout_enabled:
        logger.info(
            "Staff passcode lockout enabled",
            threshold=settings.staff_passcode_lockout_threshold,
            window_seconds=settings.staff_passcode_lockout_window_seconds,
        )
    else:
        logger.info(
            "Staff passcode lockout disabled",
            reason="staff_passcode_lockout_enabled is false",
        )

    try:
        yield
    finally:
        # Open SSE streams end with a CLOSED frame.
        feed.reset()
        await engine.dispose()


def create_app() -> FastAPI:
    """Application factory for the orderflow FastAPI service."""
    configure_logging(
        service_name="orderflow-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Orderflow API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name="orderflow-api",
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
