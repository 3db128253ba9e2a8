"""Billing document model: immutable, uniquely numbered financial artifact."""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..core.enums import DocumentKind
from ..database import Base


def document_id_for(booking_id: str, kind: DocumentKind | str) -> str:
    """Stable identifier ``{booking_id}:{kind}``."""
    kind_value = kind.value if isinstance(kind, DocumentKind) else str(kind)
    return f"{booking_id}:{kind_value}"


class BillingDocument(Base):
    """
    One document per (booking, kind), ever.

    The primary key is ``{booking_id}:{kind}`` so a second insert for the same
    pair fails at the database, and ``(provider_id, invoice_number)`` is unique
    so a number is never handed out twice. Display fields (title, offer data)
    are snapshotted at issue time so exports reproduce identically.
    """

    __tablename__ = "billing_documents"

    id = Column(String(64), primary_key=True)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    customer_id = Column(String(26), ForeignKey("customers.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)

    invoice_number = Column(Integer, nullable=False)
    issued_at = Column(Date, nullable=False)
    referenced_invoice_number = Column(Integer, nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False)

    title = Column(String(300), nullable=False)
    offer_title = Column(String(255), nullable=True)
    offer_type = Column(String(80), nullable=True)
    venue = Column(String(255), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    booking = relationship("Booking", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("booking_id", "kind", name="uq_billing_documents_booking_kind"),
        UniqueConstraint(
            "provider_id", "invoice_number", name="uq_billing_documents_provider_number"
        ),
        CheckConstraint(
            "kind IN ('participation', 'cancellation', 'storno')",
            name="ck_billing_documents_kind",
        ),
        CheckConstraint(
            "kind = 'participation' OR referenced_invoice_number IS NOT NULL",
            name="ck_billing_documents_reference",
        ),
        Index("ix_billing_documents_provider_issued", "provider_id", "issued_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<BillingDocument {self.id}: no={self.invoice_number} "
            f"issued={self.issued_at} ref={self.referenced_invoice_number}>"
        )
