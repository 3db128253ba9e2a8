# backend/courseledger/routes/admin_bookings.py
"""
Admin booking lifecycle routes.

Endpoints:
    POST /                           - Create a booking (issues its invoice)
    GET /{booking_id}                - Booking details
    POST /{booking_id}/cancel        - Cancel with received/effective dates
    POST /{booking_id}/storno        - Reverse with a credit invoice
    POST /{booking_id}/restore       - Undo a cancellation
    POST /{booking_id}/documents/{kind} - Ensure and return a document
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, status

from ..api.dependencies import (
    get_billing_document_service,
    get_booking_lifecycle_service,
    get_provider_id,
)
from ..core.exceptions import DomainException
from ..schemas.booking import (
    BillingDocumentOut,
    BookingOut,
    BookingTransitionResponse,
    CancelBookingRequest,
    CreateBookingRequest,
    StornoBookingRequest,
)
from ..services.billing_document_service import BillingDocumentService
from ..services.booking_lifecycle_service import (
    BookingLifecycleService,
    BookingTransitionResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-bookings"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception() from exc


def _to_response(result: BookingTransitionResult) -> BookingTransitionResponse:
    return BookingTransitionResponse(
        booking=BookingOut.model_validate(result.booking),
        document=(
            BillingDocumentOut.model_validate(result.document)
            if result.document is not None
            else None
        ),
        applied=result.applied,
    )


@router.post("", response_model=BookingTransitionResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: CreateBookingRequest,
    provider_id: str = Depends(get_provider_id),
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingTransitionResponse:
    try:
        result = await asyncio.to_thread(
            service.create_booking,
            provider_id,
            payload.customer_id,
            payload.offer_id,
            payload.start_date,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return _to_response(result)


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: str,
    provider_id: str = Depends(get_provider_id),
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingOut:
    try:
        booking = await asyncio.to_thread(service.get_booking, provider_id, booking_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingOut.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingTransitionResponse)
async def cancel_booking(
    booking_id: str,
    payload: CancelBookingRequest,
    provider_id: str = Depends(get_provider_id),
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingTransitionResponse:
    """Cancel an active booking; rejects non-cancellable course types."""
    try:
        result = await asyncio.to_thread(
            service.cancel_booking,
            provider_id,
            booking_id,
            payload.received_date,
            payload.effective_date,
            payload.reason,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return _to_response(result)


@router.post("/{booking_id}/storno", response_model=BookingTransitionResponse)
async def storno_booking(
    booking_id: str,
    payload: Optional[StornoBookingRequest] = Body(default=None),
    provider_id: str = Depends(get_provider_id),
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingTransitionResponse:
    body = payload or StornoBookingRequest()
    try:
        result = await asyncio.to_thread(
            lambda: service.storno_booking(
                provider_id, booking_id, amount=body.amount, note=body.note
            )
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return _to_response(result)


@router.post("/{booking_id}/restore", response_model=BookingTransitionResponse)
async def restore_booking(
    booking_id: str,
    provider_id: str = Depends(get_provider_id),
    service: BookingLifecycleService = Depends(get_booking_lifecycle_service),
) -> BookingTransitionResponse:
    try:
        result = await asyncio.to_thread(service.restore_booking, provider_id, booking_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return _to_response(result)


@router.post("/{booking_id}/documents/{kind}", response_model=BillingDocumentOut)
async def ensure_booking_document(
    booking_id: str,
    kind: str,
    provider_id: str = Depends(get_provider_id),
    service: BillingDocumentService = Depends(get_billing_document_service),
) -> BillingDocumentOut:
    """Return the booking's document of ``kind``, issuing it on first request."""
    try:
        document = await asyncio.to_thread(
            service.ensure_document, provider_id, booking_id, kind
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BillingDocumentOut.model_validate(document)
