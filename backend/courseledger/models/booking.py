# backend/courseledger/models/booking.py
"""
Booking model.

A booking is a customer's subscription to one offer. Price and category are
snapshotted at creation so documents issued later are not affected by offer
edits; the live offer is still reachable for display and re-classification.
"""

from datetime import date, datetime, timezone
import logging
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import BookingStatus
from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False, index=True)
    customer_id = Column(String(26), ForeignKey("customers.id"), nullable=False, index=True)
    offer_id = Column(String(26), ForeignKey("offers.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=BookingStatus.ACTIVE.value, index=True)
    start_date = Column(Date, nullable=True)

    # Snapshot taken at creation
    price_snapshot = Column(Numeric(10, 2), nullable=False, default=0)
    category_snapshot = Column(String(40), nullable=True)

    # Cancellation ("received on / effective as of")
    cancel_received_date = Column(Date, nullable=True)
    cancel_effective_date = Column(Date, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    storno_note = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    storno_at = Column(DateTime(timezone=True), nullable=True)
    restored_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency: UPDATEs carry "WHERE version = :old"
    version = Column(Integer, nullable=False, default=1)

    offer = relationship("Offer", lazy="joined")
    customer = relationship("Customer", lazy="select")
    documents = relationship(
        "BillingDocument",
        back_populates="booking",
        order_by="BillingDocument.invoice_number",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'cancelled', 'storno')",
            name="ck_bookings_status",
        ),
        CheckConstraint("price_snapshot >= 0", name="ck_bookings_price_non_negative"),
        CheckConstraint(
            "cancel_effective_date IS NULL OR cancel_received_date IS NULL "
            "OR cancel_effective_date >= cancel_received_date",
            name="ck_bookings_cancel_dates_order",
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: customer={self.customer_id}, offer={self.offer_id}, "
            f"start={self.start_date}, status={self.status}>"
        )

    def mark_cancelled(
        self,
        received: date,
        effective: date,
        reason: Optional[str] = None,
    ) -> None:
        self.status = BookingStatus.CANCELLED.value
        self.cancel_received_date = received
        self.cancel_effective_date = effective
        self.cancel_reason = reason
        self.cancelled_at = datetime.now(timezone.utc)
        logger.info(f"Booking {self.id} cancelled effective {effective.isoformat()}")

    def mark_storno(self, note: Optional[str] = None) -> None:
        self.status = BookingStatus.STORNO.value
        self.storno_note = note
        self.storno_at = datetime.now(timezone.utc)
        logger.info(f"Booking {self.id} reversed (storno)")

    def mark_restored(self) -> None:
        """Back to active; the cancellation document keeps the old dates."""
        self.status = BookingStatus.ACTIVE.value
        self.cancel_received_date = None
        self.cancel_effective_date = None
        self.cancel_reason = None
        self.restored_at = datetime.now(timezone.utc)
        logger.info(f"Booking {self.id} restored")
