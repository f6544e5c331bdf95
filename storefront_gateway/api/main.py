"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from storefront_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from storefront_gateway.api.v1 import history, loyalty, purchases, risk
from storefront_gateway.config import settings
from storefront_gateway.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Storefront Gateway",
        description="Purchase risk gating, payment lifecycle and loyalty points",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(purchases.router, prefix="/v1", tags=["purchases"])
    app.include_router(loyalty.router, prefix="/v1", tags=["loyalty"])
    app.include_router(risk.router, prefix="/v1", tags=["risk"])
    app.include_router(history.router, prefix="/v1", tags=["audit"])

    return app


app = create_app()
