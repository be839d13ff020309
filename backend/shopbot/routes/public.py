# /shopbot/routes/public.py

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest
from datetime import datetime, timezone

from shopbot.config.settings import settings

# Public endpoints: service info, health checks for load balancers, and the
# Prometheus metrics scrape endpoint.

router = APIRouter()

@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Shop Update Chatbot",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment
    }

@router.get("/health", summary="Basic Health Check")
async def health_check(request: Request):
    """Basic health check, with the catalog and sender configuration status."""
    store = getattr(request.app.state, "session_store", None)
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc),
        "services": {
            "sender": "mock" if settings.mock_mode else "configured" if settings.green_api_configured else "not_configured",
            "catalog": "configured" if settings.woocommerce_configured else "not_configured",
        },
        "active_sessions": len(store) if store is not None else 0,
    }

@router.get("/metrics", tags=["Monitoring"])
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
