# backend/courseledger/services/booking_lifecycle_service.py
"""
Booking Lifecycle Service for the course ledger.

Owns the booking state machine:

    active    --cancel-->   cancelled   (cancellable offers only, dated)
    active    --storno-->   storno      (any offer; repeat storno is a no-op)
    cancelled --restore-->  active      (documents stay as issued)

Every other move is rejected with InvalidTransitionException. Each
transition runs under the per-booking lock, re-reads the booking row inside
its transaction and issues its document in that same transaction, so a
transition and its document are committed together or not at all.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.enums import BookingStatus, DocumentKind
from ..core.exceptions import (
    ConflictRetryableException,
    DomainException,
    InvalidTransitionException,
    NotCancellableException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import parse_calendar_date
from ..core.ulid_helper import generate_ulid
from ..models.billing_document import BillingDocument
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .billing_document_service import BillingDocumentService
from .offer_taxonomy import classify, is_cancellable
from .proration import resolve_booking_price


@dataclass(frozen=True)
class BookingTransitionResult:
    """Outcome of a lifecycle call; ``applied`` is False for idempotent repeats."""

    booking: Booking
    document: Optional[BillingDocument]
    applied: bool = True


class BookingLifecycleService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.offer_repository = RepositoryFactory.create_offer_repository(db)
        self.customer_repository = RepositoryFactory.create_customer_repository(db)
        self.documents = BillingDocumentService(db)

    # Reads

    def get_booking(self, provider_id: str, booking_id: str) -> Booking:
        booking = self.booking_repository.get_for_provider(provider_id, booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", resource="booking", resource_id=booking_id)
        return booking

    # Creation

    @BaseService.measure_operation("booking.create")
    def create_booking(
        self,
        provider_id: str,
        customer_id: str,
        offer_id: str,
        start_date: Any = None,
    ) -> BookingTransitionResult:
        """
        Create an active booking and issue its participation invoice.

        Price and category are snapshotted from the offer; weekly courses are
        billed the prorated first month.
        """
        start = None
        if start_date is not None and start_date != "":
            start = parse_calendar_date(start_date)
            if start is None:
                raise ValidationException(
                    "start_date is not a valid calendar date",
                    field="start_date",
                    details={"value": str(start_date)},
                )

        with self.transaction():
            customer = self.customer_repository.get_for_provider(provider_id, customer_id)
            if customer is None:
                raise NotFoundException(
                    "Customer not found", resource="customer", resource_id=customer_id
                )
            offer = self.offer_repository.get_for_provider(provider_id, offer_id)
            if offer is None:
                raise NotFoundException("Offer not found", resource="offer", resource_id=offer_id)

            booking = self.booking_repository.create(
                id=generate_ulid(),
                provider_id=provider_id,
                customer_id=customer.id,
                offer_id=offer.id,
                status=BookingStatus.ACTIVE.value,
                start_date=start,
                price_snapshot=resolve_booking_price(offer, start),
                category_snapshot=classify(offer).value,
            )
            booking.offer = offer
            issued = self.documents.issue_for_booking(booking, DocumentKind.PARTICIPATION)

        prometheus_metrics.record_booking_transition("create", "applied")
        prometheus_metrics.record_document_issued(DocumentKind.PARTICIPATION.value)
        self.logger.info(
            "booking_lifecycle.created",
            extra={
                "booking_id": booking.id,
                "provider_id": provider_id,
                "category": booking.category_snapshot,
                "price": str(booking.price_snapshot),
            },
        )
        return BookingTransitionResult(booking, issued.document)

    # Transitions

    @contextmanager
    def _locked(self, booking_id: str, action: str) -> Iterator[None]:
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                prometheus_metrics.record_booking_transition(action, "conflict")
                raise ConflictRetryableException(
                    details={"booking_id": booking_id, "action": action, "reason": "lock_timeout"}
                )
            try:
                yield
            except DomainException as exc:
                prometheus_metrics.record_booking_transition(action, _outcome_for(exc))
                raise

    def _load_for_update(self, provider_id: str, booking_id: str) -> Booking:
        booking = self.booking_repository.get_for_update(provider_id, booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", resource="booking", resource_id=booking_id)
        return booking

    @BaseService.measure_operation("booking.cancel")
    def cancel_booking(
        self,
        provider_id: str,
        booking_id: str,
        received_date: Any,
        effective_date: Any,
        reason: Optional[str] = None,
    ) -> BookingTransitionResult:
        """
        Cancel an active booking as of ``effective_date``.

        Both dates are required and the effective date may not precede the
        received date. Only cancellable offers qualify.
        """
        received, effective = _validate_cancel_dates(received_date, effective_date)

        with self._locked(booking_id, "cancel"):
            with self.transaction():
                booking = self._load_for_update(provider_id, booking_id)
                if booking.status != BookingStatus.ACTIVE.value:
                    raise InvalidTransitionException(booking.id, "cancel", booking.status)
                if booking.offer is None or not is_cancellable(booking.offer):
                    raise NotCancellableException(
                        booking.id,
                        booking.category_snapshot or "Unknown",
                        reason="offer_not_cancellable",
                    )

                self.documents.issue_for_booking(booking, DocumentKind.PARTICIPATION)
                booking.mark_cancelled(received, effective, (reason or "").strip() or None)
                self.booking_repository.flush()
                issued = self.documents.issue_for_booking(booking, DocumentKind.CANCELLATION)

        self._record_applied("cancel", issued.created, DocumentKind.CANCELLATION)
        self.logger.info(
            "booking_lifecycle.cancelled",
            extra={
                "booking_id": booking.id,
                "effective_date": effective.isoformat(),
                "invoice_number": issued.document.invoice_number,
            },
        )
        return BookingTransitionResult(booking, issued.document)

    @BaseService.measure_operation("booking.storno")
    def storno_booking(
        self,
        provider_id: str,
        booking_id: str,
        *,
        amount: Any = None,
        note: Optional[str] = None,
    ) -> BookingTransitionResult:
        """
        Reverse an active booking with a storno (credit) invoice.

        Allowed for every offer type. Repeating it on a storno booking returns
        the existing storno document without changes.
        """
        with self._locked(booking_id, "storno"):
            with self.transaction():
                booking = self._load_for_update(provider_id, booking_id)
                if booking.status == BookingStatus.STORNO.value:
                    existing = self.documents.issue_for_booking(booking, DocumentKind.STORNO)
                    applied = False
                else:
                    if booking.status != BookingStatus.ACTIVE.value:
                        raise InvalidTransitionException(booking.id, "storno", booking.status)
                    self.documents.issue_for_booking(booking, DocumentKind.PARTICIPATION)
                    booking.mark_storno((note or "").strip() or None)
                    self.booking_repository.flush()
                    existing = self.documents.issue_for_booking(
                        booking, DocumentKind.STORNO, amount=amount
                    )
                    applied = True

        if applied:
            self._record_applied("storno", existing.created, DocumentKind.STORNO)
            self.logger.info(
                "booking_lifecycle.storno",
                extra={
                    "booking_id": booking.id,
                    "invoice_number": existing.document.invoice_number,
                    "amount": str(existing.document.amount),
                },
            )
        else:
            prometheus_metrics.record_booking_transition("storno", "noop")
            self.logger.info("booking_lifecycle.storno_repeat", extra={"booking_id": booking.id})
        return BookingTransitionResult(booking, existing.document, applied=applied)

    @BaseService.measure_operation("booking.restore")
    def restore_booking(self, provider_id: str, booking_id: str) -> BookingTransitionResult:
        """Undo a cancellation. The cancellation document is kept."""
        with self._locked(booking_id, "restore"):
            with self.transaction():
                booking = self._load_for_update(provider_id, booking_id)
                if booking.status != BookingStatus.CANCELLED.value:
                    raise InvalidTransitionException(booking.id, "restore", booking.status)
                booking.mark_restored()

        prometheus_metrics.record_booking_transition("restore", "applied")
        self.logger.info("booking_lifecycle.restored", extra={"booking_id": booking.id})
        return BookingTransitionResult(booking, None)

    def _record_applied(self, action: str, created: bool, kind: DocumentKind) -> None:
        prometheus_metrics.record_booking_transition(action, "applied")
        if created:
            prometheus_metrics.record_document_issued(kind.value)


def _validate_cancel_dates(received_value: Any, effective_value: Any) -> tuple[date, date]:
    received = parse_calendar_date(received_value)
    if received is None:
        raise ValidationException(
            "The date the cancellation was received is required",
            field="received_date",
        )
    effective = parse_calendar_date(effective_value)
    if effective is None:
        raise ValidationException(
            "The effective cancellation date is required",
            field="effective_date",
        )
    if effective < received:
        raise ValidationException(
            "The effective date cannot be before the received date",
            code="CANCEL_DATES_ORDER",
            field="effective_date",
            details={
                "received_date": received.isoformat(),
                "effective_date": effective.isoformat(),
            },
        )
    return received, effective


def _outcome_for(exc: DomainException) -> str:
    if isinstance(exc, ConflictRetryableException):
        return "conflict"
    if isinstance(exc, NotFoundException):
        return "not_found"
    return "rejected"
