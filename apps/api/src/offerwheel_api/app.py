from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from offerwheel_api.core.settings import settings
from offerwheel_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Promotion API starting",
        environment=settings.environment,
        notification_dispatch_enabled=settings.notification_dispatch_enabled,
        prize_day_timezone=settings.prize_day_timezone,
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Promotion API stopped")


def create_app() -> FastAPI:
    """Application factory for the Offerwheel promotion API."""
    configure_logging(
        service_name="offerwheel-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Offerwheel API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name="offerwheel-api",
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
