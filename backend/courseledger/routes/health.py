# backend/courseledger/routes/health.py
"""
Health check and Prometheus metrics endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Response

from .. import __version__
from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> dict[str, str]:
    """Basic liveness payload; does not touch the database."""
    return {
        "status": "healthy",
        "service": "courseledger-api",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus exposition of the service and domain counters."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
