from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from courseledger.core.enums import DocumentKind
from courseledger.core.exceptions import (
    ConflictRetryableException,
    NotFoundException,
    PolicyViolationException,
    StorageFailureException,
    ValidationException,
)
from courseledger.models import Customer, Offer
from courseledger.repositories.factory import RepositoryFactory
from courseledger.services.billing_document_service import (
    BillingDocumentService,
    document_title,
    format_reference,
    parse_document_kind,
)
from courseledger.services.booking_lifecycle_service import BookingLifecycleService


@pytest.fixture
def service(db) -> BillingDocumentService:
    return BillingDocumentService(db)


@pytest.fixture
def lifecycle(db) -> BookingLifecycleService:
    return BookingLifecycleService(db)


def _peek(db, provider_id):
    return RepositoryFactory.create_invoice_counter_repository(db).peek(provider_id)


class TestHelpers:
    def test_format_reference(self) -> None:
        assert format_reference("participation", 42) == "RE-000042"
        assert format_reference(DocumentKind.CANCELLATION, 7) == "RE-000007"
        assert format_reference("storno", 43) == "GS-000043"
        assert format_reference("storno", None) == ""

    def test_document_title(self) -> None:
        assert document_title(DocumentKind.STORNO, " Feriencamp ") == "Storno-Rechnung - Feriencamp"
        assert document_title(DocumentKind.CANCELLATION, None) == "Kündigungsbestätigung"

    def test_parse_document_kind(self) -> None:
        assert parse_document_kind(" Storno ") is DocumentKind.STORNO
        with pytest.raises(ValidationException) as exc_info:
            parse_document_kind("invoice")
        assert exc_info.value.field == "kind"


class TestEnsureDocument:
    def test_issues_participation_once(self, db, service, provider, weekly_offer, make_booking) -> None:
        booking = make_booking(weekly_offer, start_date=date(2024, 3, 1))

        first = service.ensure_document(provider.id, booking.id, "participation")
        second = service.ensure_document(provider.id, booking.id, DocumentKind.PARTICIPATION)

        assert first.id == f"{booking.id}:participation"
        assert first.invoice_number == 1
        assert first.issued_at == date(2024, 3, 1)
        assert first.amount == Decimal("100.00")
        assert first.currency == "EUR"
        assert (second.id, second.invoice_number) == (first.id, first.invoice_number)
        assert _peek(db, provider.id) == 1

    def test_issue_date_override(self, service, provider, weekly_offer, make_booking) -> None:
        booking = make_booking(weekly_offer)
        document = service.ensure_document(
            provider.id, booking.id, "participation", issued_at="2024-05-01"
        )
        assert document.issued_at == date(2024, 5, 1)

    def test_invalid_issue_date(self, service, provider, weekly_offer, make_booking) -> None:
        booking = make_booking(weekly_offer)
        with pytest.raises(ValidationException) as exc_info:
            service.ensure_document(provider.id, booking.id, "participation", issued_at="morgen")
        assert exc_info.value.field == "issued_at"

    def test_cancellation_requires_cancelled_booking(
        self, db, service, provider, weekly_offer, make_booking
    ) -> None:
        booking = make_booking(weekly_offer)
        with pytest.raises(PolicyViolationException) as exc_info:
            service.ensure_document(provider.id, booking.id, "cancellation")

        assert exc_info.value.code == "DOCUMENT_NOT_APPLICABLE"
        assert _peek(db, provider.id) is None

    def test_storno_for_storno_booking(self, service, provider, camp_offer, make_booking) -> None:
        booking = make_booking(camp_offer, status="storno", price_snapshot=Decimal("249.00"))

        document = service.ensure_document(
            provider.id, booking.id, "storno", amount="100", issued_at="2024-08-01"
        )

        assert document.kind == "storno"
        assert document.amount == Decimal("100.00")
        assert document.referenced_invoice_number == 1
        assert document.invoice_number == 2
        assert document.title == "Storno-Rechnung - Feriencamp Sommer"

    def test_existing_document_is_returned_whatever_the_status(
        self, lifecycle, service, provider, customer, weekly_offer
    ) -> None:
        booking = lifecycle.create_booking(provider.id, customer.id, weekly_offer.id).booking
        cancelled = lifecycle.cancel_booking(provider.id, booking.id, "2024-03-20", "2024-04-30")
        lifecycle.restore_booking(provider.id, booking.id)

        document = service.ensure_document(provider.id, booking.id, "cancellation")
        assert document.id == cancelled.document.id

    def test_unknown_booking(self, service, provider) -> None:
        with pytest.raises(NotFoundException):
            service.ensure_document(provider.id, "missing", "participation")

    def test_document_of_another_provider_is_hidden(
        self, service, provider, other_provider, weekly_offer, make_booking
    ) -> None:
        booking = make_booking(weekly_offer)
        service.ensure_document(provider.id, booking.id, "participation")
        with pytest.raises(NotFoundException):
            service.ensure_document(other_provider.id, booking.id, "participation")


class TestNumbering:
    def test_numbers_are_gap_free_across_bookings(
        self, db, lifecycle, provider, customer, weekly_offer, camp_offer
    ) -> None:
        first = lifecycle.create_booking(provider.id, customer.id, weekly_offer.id, "2024-03-01")
        second = lifecycle.create_booking(provider.id, customer.id, camp_offer.id, "2024-07-15")
        lifecycle.cancel_booking(provider.id, first.booking.id, "2024-03-20", "2024-04-30")
        lifecycle.storno_booking(provider.id, second.booking.id)
        lifecycle.create_booking(provider.id, customer.id, weekly_offer.id, "2024-05-01")

        numbers = sorted(
            doc.invoice_number
            for doc in RepositoryFactory.create_billing_document_repository(db).find_by(
                provider_id=provider.id
            )
        )
        assert numbers == [1, 2, 3, 4, 5]
        assert _peek(db, provider.id) == 5

    def test_each_provider_has_its_own_sequence(
        self, db, lifecycle, provider, other_provider, customer, weekly_offer
    ) -> None:
        foreign_customer = Customer(id="01CUSTOMER0000000000000009", provider_id=other_provider.id)
        foreign_offer = Offer(
            id="01OFFER9999999999999999999",
            provider_id=other_provider.id,
            type="Kindergarten",
            title="Kita Kicker",
            monthly_price=Decimal("40"),
        )
        db.add_all([foreign_customer, foreign_offer])
        db.commit()

        lifecycle.create_booking(provider.id, customer.id, weekly_offer.id)
        lifecycle.create_booking(provider.id, customer.id, weekly_offer.id)
        foreign = lifecycle.create_booking(other_provider.id, foreign_customer.id, foreign_offer.id)

        assert foreign.document.invoice_number == 1
        assert _peek(db, provider.id) == 2

    def test_failed_insert_returns_the_number(
        self, db, service, provider, weekly_offer, make_booking
    ) -> None:
        booking = make_booking(weekly_offer)
        failure = OperationalError("INSERT INTO billing_documents", {}, Exception("disk I/O error"))

        with patch.object(service.document_repository, "create", side_effect=failure):
            with pytest.raises(StorageFailureException):
                service.ensure_document(provider.id, booking.id, "participation")

        assert _peek(db, provider.id) is None
        document = service.ensure_document(provider.id, booking.id, "participation")
        assert document.invoice_number == 1


class TestRaceResolution:
    def test_conflict_resolves_to_the_stored_document(
        self, lifecycle, service, provider, customer, weekly_offer
    ) -> None:
        winner = lifecycle.create_booking(provider.id, customer.id, weekly_offer.id).document

        with patch.object(service, "_existing", side_effect=[None, winner]), patch.object(
            service, "issue_for_booking", side_effect=ConflictRetryableException()
        ):
            document = service.ensure_document(provider.id, winner.booking_id, "participation")

        assert document is winner

    def test_conflict_without_winner_propagates(
        self, service, provider, weekly_offer, make_booking
    ) -> None:
        booking = make_booking(weekly_offer)
        with patch.object(service, "issue_for_booking", side_effect=ConflictRetryableException()):
            with pytest.raises(ConflictRetryableException):
                service.ensure_document(provider.id, booking.id, "participation")
