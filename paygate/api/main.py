"""FastAPI application factories: public API and admin server"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from paygate.api.middleware import RequestIDMiddleware, MetricsMiddleware
from paygate.api.v1 import micro_deposits
from paygate.api.admin import micro_deposits as admin_micro_deposits
from paygate.infrastructure.observability.logging import setup_logging
from paygate.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create the public (user facing) application"""
    app = FastAPI(
        title="Paygate",
        description="Depository verification through micro-deposits",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(micro_deposits.router, prefix="/v1", tags=["micro-deposits"])

    return app


def create_admin_app() -> FastAPI:
    """Create the admin application; serve it on a separate, internal-only port"""
    admin = FastAPI(title="Paygate admin", version="0.1.0")
    admin.add_middleware(RequestIDMiddleware)

    @admin.get("/live")
    def live():
        return {"status": "ok", "service": settings.service_name}

    admin.include_router(admin_micro_deposits.router, tags=["admin"])

    return admin


app = create_app()
admin_app = create_admin_app()
