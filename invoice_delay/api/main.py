"""FastAPI application factory"""

from typing import Optional

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from invoice_delay.api.v1 import runs, sessions, summary
from invoice_delay.config import Settings
from invoice_delay.infrastructure.observability.logging import setup_logging

SERVICE_NAME = "invoice-delay-gateway"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    if settings is not None:
        setup_logging(settings.log_level, settings.logs_dir, settings.timezone, settings.service_name)

    app = FastAPI(
        title="Invoice Delay Gateway",
        description="Volume-gated invoice due-date scheduling",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name if settings else SERVICE_NAME}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(summary.router, prefix="/v1", tags=["summary"])
    app.include_router(runs.router, prefix="/v1", tags=["runs"])
    app.include_router(sessions.router, prefix="/v1", tags=["sessions"])

    return app


app = create_app()
