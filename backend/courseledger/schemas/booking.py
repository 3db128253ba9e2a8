"""Schemas for admin booking lifecycle endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_serializer

from ._strict_base import StrictModel, StrictRequestModel


class CreateBookingRequest(StrictRequestModel):
    customer_id: str = Field(..., min_length=1, max_length=26)
    offer_id: str = Field(..., min_length=1, max_length=26)
    start_date: Optional[date] = None


class CancelBookingRequest(StrictRequestModel):
    # Optional here so a missing date is reported by the lifecycle rules with its field name
    received_date: Optional[date] = None
    effective_date: Optional[date] = None
    reason: Optional[str] = Field(default=None, max_length=2000)


class StornoBookingRequest(StrictRequestModel):
    amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    note: Optional[str] = Field(default=None, max_length=2000)


class BookingOut(StrictModel):
    id: str
    provider_id: str
    customer_id: str
    offer_id: str
    status: str
    start_date: Optional[date] = None
    price_snapshot: Decimal
    category_snapshot: Optional[str] = None
    cancel_received_date: Optional[date] = None
    cancel_effective_date: Optional[date] = None
    cancel_reason: Optional[str] = None
    storno_note: Optional[str] = None
    created_at: Optional[datetime] = None
    version: int

    @field_serializer("price_snapshot")
    def serialize_price(self, value: Decimal) -> str:
        return f"{value:.2f}"


class BillingDocumentOut(StrictModel):
    id: str
    booking_id: str
    customer_id: str
    kind: str
    invoice_number: int
    issued_at: date
    referenced_invoice_number: Optional[int] = None
    amount: Optional[Decimal] = None
    currency: str
    title: str
    offer_title: Optional[str] = None
    offer_type: Optional[str] = None
    venue: Optional[str] = None

    @field_serializer("amount")
    def serialize_amount(self, value: Optional[Decimal]) -> Optional[str]:
        return f"{value:.2f}" if value is not None else None


class BookingTransitionResponse(StrictModel):
    booking: BookingOut
    document: Optional[BillingDocumentOut] = None
    applied: bool = True
