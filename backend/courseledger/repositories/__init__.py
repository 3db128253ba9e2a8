# backend/courseledger/repositories/__init__.py
"""
Repository layer for the course ledger.

Repositories encapsulate data access; services own transactions.
"""

from .base_repository import BaseRepository
from .billing_document_repository import BillingDocumentRepository
from .booking_repository import BookingRepository
from .customer_repository import CustomerRepository
from .factory import RepositoryFactory
from .invoice_counter_repository import InvoiceCounterRepository
from .offer_repository import OfferRepository
from .provider_repository import ProviderRepository

__all__ = [
    "BaseRepository",
    "BillingDocumentRepository",
    "BookingRepository",
    "CustomerRepository",
    "InvoiceCounterRepository",
    "OfferRepository",
    "ProviderRepository",
    "RepositoryFactory",
]
