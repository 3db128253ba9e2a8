# backend/courseledger/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets service instances bound to its own database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.billing_document_service import BillingDocumentService
from ...services.booking_lifecycle_service import BookingLifecycleService
from ...services.document_aggregator_service import DocumentAggregatorService
from .database import get_db


def get_booking_lifecycle_service(db: Session = Depends(get_db)) -> BookingLifecycleService:
    return BookingLifecycleService(db)


def get_billing_document_service(db: Session = Depends(get_db)) -> BillingDocumentService:
    return BillingDocumentService(db)


def get_document_aggregator_service(db: Session = Depends(get_db)) -> DocumentAggregatorService:
    return DocumentAggregatorService(db)
