"""
Main FastAPI application for the Rapid Offer pipeline.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import dialer, closer, kpi, leads, buy_boxes, webhooks, scheduled, realtime
from .services import get_services, initialize_services, ROUTING_RECONCILIATION
from .errors import register_exception_handlers
from .logging_config import configure_logging
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from .middleware.rate_limit import RateLimitMiddleware
from config.settings import get_settings
from database.session import init_db, close_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Rapid Offer pipeline starting up...")
    settings = get_settings()

    await init_db(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )

    initialize_services()
    services = get_services()
    if settings.scheduler_enabled:
        services.scheduler.start_periodic(
            ROUTING_RECONCILIATION, settings.reconciliation_interval_minutes * 60
        )
    logger.info("Rapid Offer pipeline ready")
    yield
    logger.info("Rapid Offer pipeline shutting down...")

    await services.scheduler.shutdown()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.api_title,
        description="Lead compliance, scoring, routing, dialer-to-closer handoff and KPI tracking.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    # Rate limiting middleware
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
    )

    # --- Dialer / closer workflow ---
    app.include_router(dialer.router, prefix="/api/v1/dialer", tags=["Dialer"])
    app.include_router(closer.router, prefix="/api/v1/closer", tags=["Closer"])

    # --- Leads and buy boxes ---
    app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
    app.include_router(buy_boxes.router, prefix="/api/v1", tags=["Buy Boxes"])

    # --- KPIs and reports ---
    app.include_router(kpi.router, prefix="/api/v1/kpi", tags=["KPI"])

    # --- Integrations ---
    app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
    app.include_router(scheduled.router, prefix="/api/v1", tags=["Scheduled"])

    # --- Real-time ---
    app.include_router(realtime.router, prefix="/api/v1", tags=["Realtime"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": "Rapid Offer Pipeline",
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        services = get_services()
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
