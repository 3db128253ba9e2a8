# backend/courseledger/api/dependencies/__init__.py
"""
FastAPI dependencies for the admin API.

Usage:
    from courseledger.api.dependencies import get_db, get_provider_id
"""

from .database import get_db
from .provider import get_provider_id
from .services import (
    get_billing_document_service,
    get_booking_lifecycle_service,
    get_document_aggregator_service,
)

__all__ = [
    "get_billing_document_service",
    "get_booking_lifecycle_service",
    "get_db",
    "get_document_aggregator_service",
    "get_provider_id",
]
