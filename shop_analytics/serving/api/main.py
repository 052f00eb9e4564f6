"""
FastAPI Application Factory

Creates and configures the analytics API application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from shop_analytics.analytics.query_builder import resolve_revenue_columns
from shop_analytics.config import get_settings
from shop_analytics.config.logging import configure_logging
from shop_analytics.database.connection import init_database, close_database
from shop_analytics.serving.cache import init_redis, close_redis
from shop_analytics.serving.api.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from shop_analytics.serving.api.routes import (
    analytics_router,
    dashboard_router,
    health_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Storefront Sales Analytics API")

    try:
        engine = await init_database()
        app.state.revenue_columns = await resolve_revenue_columns(engine, settings.analytics)
    except Exception as e:
        logger.warning("Database init failed", error=str(e))

    # Analytics run uncached without Redis
    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis init failed", error=str(e))

    yield

    logger.info("Shutting down...")
    await close_database()
    await close_redis()


def create_api_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Storefront Sales Analytics API",
        description="Admin sales analytics and dashboard metrics",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/admin/analytics", tags=["Analytics"])
    app.include_router(dashboard_router, prefix="/api/v1/admin/dashboard", tags=["Dashboard"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
        }

    return app
