# backend/courseledger/repositories/factory.py
"""
Repository Factory for the course ledger.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .billing_document_repository import BillingDocumentRepository
    from .booking_repository import BookingRepository
    from .customer_repository import CustomerRepository
    from .invoice_counter_repository import InvoiceCounterRepository
    from .offer_repository import OfferRepository
    from .provider_repository import ProviderRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_offer_repository(db: Session) -> "OfferRepository":
        from .offer_repository import OfferRepository

        return OfferRepository(db)

    @staticmethod
    def create_customer_repository(db: Session) -> "CustomerRepository":
        from .customer_repository import CustomerRepository

        return CustomerRepository(db)

    @staticmethod
    def create_provider_repository(db: Session) -> "ProviderRepository":
        from .provider_repository import ProviderRepository

        return ProviderRepository(db)

    @staticmethod
    def create_billing_document_repository(db: Session) -> "BillingDocumentRepository":
        """Create repository for billing document reads and inserts."""
        from .billing_document_repository import BillingDocumentRepository

        return BillingDocumentRepository(db)

    @staticmethod
    def create_invoice_counter_repository(db: Session) -> "InvoiceCounterRepository":
        """Create repository for invoice number allocation."""
        from .invoice_counter_repository import InvoiceCounterRepository

        return InvoiceCounterRepository(db)
