# backend/courseledger/services/billing_document_service.py
"""
Billing Document Service for the course ledger.

Issues the three document kinds for a booking:

- participation: the invoice, issued on the booking's start (or creation) date
  for the snapshotted booking price.
- cancellation: informational confirmation referencing the participation
  invoice, issued on the cancellation's effective date.
- storno: credit invoice referencing the participation invoice, issued on
  the storno date for the reversed amount.

At most one document exists per (booking, kind), ever. Generation is
idempotent: asking again returns the stored document unchanged. Invoice
numbers come from the provider's counter inside the same transaction as the
document insert, so they are strictly increasing and gap-free.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.config import settings
from ..core.enums import BookingStatus, DocumentKind
from ..core.exceptions import (
    ConflictRetryableException,
    NotFoundException,
    PolicyViolationException,
    ValidationException,
)
from ..core.timezone_utils import business_today, parse_calendar_date, to_business_date
from ..models.billing_document import BillingDocument, document_id_for
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .proration import parse_money, to_money

# Booking status a correcting document requires when it is issued for the first time
_REQUIRED_STATUS = {
    DocumentKind.CANCELLATION: BookingStatus.CANCELLED,
    DocumentKind.STORNO: BookingStatus.STORNO,
}


@dataclass(frozen=True)
class IssuedDocument:
    document: BillingDocument
    created: bool


def parse_document_kind(kind: Any) -> DocumentKind:
    if isinstance(kind, DocumentKind):
        return kind
    try:
        return DocumentKind(str(kind).strip().lower())
    except ValueError as exc:
        raise ValidationException(
            f"Unknown document kind: {kind}",
            field="kind",
            details={"allowed": [item.value for item in DocumentKind]},
        ) from exc


def document_title(kind: DocumentKind, offer_title: Optional[str]) -> str:
    title = (offer_title or "").strip()
    return f"{kind.label} - {title}" if title else kind.label


def format_reference(kind: Any, invoice_number: Optional[int]) -> str:
    """Printed document number: ``RE-000042`` for invoices, ``GS-000043`` for credit notes."""
    if invoice_number is None:
        return ""
    doc_kind = parse_document_kind(kind)
    prefix = (
        settings.credit_note_prefix
        if doc_kind is DocumentKind.STORNO
        else settings.invoice_number_prefix
    )
    return f"{prefix}{invoice_number:0{settings.invoice_number_width}d}"


class BillingDocumentService(BaseService):
    """
    Service for generating billing documents.

    ``ensure_document`` is the standalone entry point and takes the booking
    lock itself. ``issue_for_booking`` is for callers that already hold the
    lock and an open transaction (the lifecycle service).
    """

    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.document_repository = RepositoryFactory.create_billing_document_repository(db)
        self.counter_repository = RepositoryFactory.create_invoice_counter_repository(db)

    @BaseService.measure_operation("document.ensure")
    def ensure_document(
        self,
        provider_id: str,
        booking_id: str,
        kind: Any,
        *,
        amount: Any = None,
        issued_at: Any = None,
    ) -> BillingDocument:
        """
        Return the booking's document of ``kind``, issuing it if needed.

        ``amount`` only applies to a storno document that is issued by this
        call; an existing document is returned unchanged.
        """
        doc_kind = parse_document_kind(kind)
        existing = self._existing(provider_id, booking_id, doc_kind)
        if existing is not None:
            return existing

        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise ConflictRetryableException(
                    details={"booking_id": booking_id, "reason": "lock_timeout"}
                )
            try:
                with self.transaction():
                    booking = self.booking_repository.get_for_update(provider_id, booking_id)
                    if booking is None:
                        raise NotFoundException(
                            "Booking not found", resource="booking", resource_id=booking_id
                        )
                    issued = self.issue_for_booking(
                        booking, doc_kind, amount=amount, issued_at=issued_at
                    )
            except ConflictRetryableException:
                # Another writer inserted the same (booking, kind) first
                winner = self._existing(provider_id, booking_id, doc_kind)
                if winner is None:
                    raise
                self.logger.info(
                    "billing_document.race_resolved",
                    extra={"booking_id": booking_id, "kind": doc_kind.value},
                )
                return winner

        if issued.created:
            prometheus_metrics.record_document_issued(doc_kind.value)
        return issued.document

    def _existing(
        self, provider_id: str, booking_id: str, kind: DocumentKind
    ) -> Optional[BillingDocument]:
        document = self.document_repository.get_by_booking_and_kind(booking_id, kind.value)
        if document is not None and document.provider_id != provider_id:
            return None
        return document

    def issue_for_booking(
        self,
        booking: Booking,
        kind: DocumentKind,
        *,
        amount: Any = None,
        issued_at: Any = None,
    ) -> IssuedDocument:
        """
        Issue (or return) a document for a booking that the caller has locked.

        Correcting documents first make sure the participation invoice exists
        so the reference number always precedes them.
        """
        existing = self.document_repository.get_by_booking_and_kind(booking.id, kind.value)
        if existing is not None:
            return IssuedDocument(existing, created=False)

        required = _REQUIRED_STATUS.get(kind)
        if required is not None and booking.status != required.value:
            raise PolicyViolationException(
                f"A {kind.value} document requires a {required.value} booking",
                code="DOCUMENT_NOT_APPLICABLE",
                details={
                    "booking_id": booking.id,
                    "kind": kind.value,
                    "status": booking.status,
                    "field": "kind",
                },
            )

        referenced_number: Optional[int] = None
        if kind is not DocumentKind.PARTICIPATION:
            participation = self.issue_for_booking(booking, DocumentKind.PARTICIPATION)
            referenced_number = participation.document.invoice_number

        document = self._create_document(
            booking,
            kind,
            issued_on=self._issue_date(booking, kind, issued_at),
            amount=self._amount(booking, kind, amount),
            referenced_number=referenced_number,
        )
        return IssuedDocument(document, created=True)

    def _issue_date(self, booking: Booking, kind: DocumentKind, override: Any) -> date:
        if override is not None:
            parsed = parse_calendar_date(override)
            if parsed is None:
                raise ValidationException(
                    "issued_at is not a valid calendar date",
                    field="issued_at",
                    details={"value": str(override)},
                )
            return parsed
        if kind is DocumentKind.PARTICIPATION:
            return booking.start_date or to_business_date(booking.created_at) or business_today()
        if kind is DocumentKind.CANCELLATION and booking.cancel_effective_date is not None:
            return booking.cancel_effective_date
        if kind is DocumentKind.STORNO and booking.storno_at is not None:
            return to_business_date(booking.storno_at) or business_today()
        return business_today()

    def _amount(self, booking: Booking, kind: DocumentKind, override: Any) -> Optional[Decimal]:
        if kind is DocumentKind.CANCELLATION:
            return None
        if kind is DocumentKind.STORNO and override is not None:
            parsed = parse_money(override)
            if parsed is None:
                raise ValidationException(
                    "Storno amount must be a finite, non-negative amount",
                    field="amount",
                    details={"value": str(override)},
                )
            return to_money(parsed)
        return to_money(Decimal(booking.price_snapshot or 0))

    def _create_document(
        self,
        booking: Booking,
        kind: DocumentKind,
        *,
        issued_on: date,
        amount: Optional[Decimal],
        referenced_number: Optional[int],
    ) -> BillingDocument:
        offer = booking.offer
        invoice_number = self.counter_repository.allocate_next(booking.provider_id)
        document: BillingDocument = self.document_repository.create(
            id=document_id_for(booking.id, kind),
            provider_id=booking.provider_id,
            booking_id=booking.id,
            customer_id=booking.customer_id,
            kind=kind.value,
            invoice_number=invoice_number,
            issued_at=issued_on,
            referenced_invoice_number=referenced_number,
            amount=amount,
            currency=settings.currency,
            title=document_title(kind, offer.title if offer is not None else None),
            offer_title=offer.title if offer is not None else None,
            offer_type=offer.type if offer is not None else None,
            venue=offer.location if offer is not None else None,
        )
        self.logger.info(
            "billing_document.issued",
            extra={
                "booking_id": booking.id,
                "kind": kind.value,
                "invoice_number": invoice_number,
                "referenced_invoice_number": referenced_number,
            },
        )
        return document
