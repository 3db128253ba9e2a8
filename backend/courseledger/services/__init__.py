# backend/courseledger/services/__init__.py
"""
Service layer for the course ledger.

Pure rules (taxonomy, proration, export serialization) are plain modules;
everything that touches the database extends BaseService.
"""

from .base import BaseService
from .billing_document_service import BillingDocumentService
from .booking_lifecycle_service import BookingLifecycleService
from .document_aggregator_service import DocumentAggregatorService
from .document_delivery_service import DocumentDeliveryService

__all__ = [
    "BaseService",
    "BillingDocumentService",
    "BookingLifecycleService",
    "DocumentAggregatorService",
    "DocumentDeliveryService",
]
