from .billing_document import BillingDocument
from .booking import Booking
from .customer import Customer
from .invoice_counter import InvoiceCounter
from .offer import Offer
from .provider import Provider

__all__ = [
    "BillingDocument",
    "Booking",
    "Customer",
    "InvoiceCounter",
    "Offer",
    "Provider",
]
