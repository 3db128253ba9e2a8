from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from courseledger.core.enums import BookingStatus, DocumentKind
from courseledger.core.exceptions import (
    InvalidTransitionException,
    NotCancellableException,
    NotFoundException,
    ValidationException,
)
from courseledger.repositories.factory import RepositoryFactory
from courseledger.services.booking_lifecycle_service import BookingLifecycleService


@pytest.fixture
def service(db) -> BookingLifecycleService:
    return BookingLifecycleService(db)


@pytest.fixture
def active_weekly(service, provider, customer, weekly_offer):
    return service.create_booking(provider.id, customer.id, weekly_offer.id, "2024-03-16").booking


@pytest.fixture
def active_camp(service, provider, customer, camp_offer):
    return service.create_booking(provider.id, customer.id, camp_offer.id, date(2024, 7, 15)).booking


def _documents(db, booking_id):
    return RepositoryFactory.create_billing_document_repository(db).list_for_booking(booking_id)


class TestCreateBooking:
    def test_weekly_booking_is_prorated_and_invoiced(
        self, service, provider, customer, weekly_offer
    ) -> None:
        result = service.create_booking(provider.id, customer.id, weekly_offer.id, "2024-03-16")

        booking = result.booking
        assert booking.status == BookingStatus.ACTIVE.value
        assert booking.price_snapshot == Decimal("51.61")
        assert booking.category_snapshot == "Weekly"

        document = result.document
        assert document.kind == DocumentKind.PARTICIPATION.value
        assert document.invoice_number == 1
        assert document.issued_at == date(2024, 3, 16)
        assert document.amount == Decimal("51.61")
        assert document.referenced_invoice_number is None
        assert document.title == "Teilnahmebestätigung - Foerdertraining U10"
        assert document.venue == "Sportpark Nord"

    def test_camp_is_billed_flat(self, service, provider, customer, camp_offer) -> None:
        result = service.create_booking(provider.id, customer.id, camp_offer.id, date(2024, 7, 15))
        assert result.booking.price_snapshot == Decimal("249.00")
        assert result.booking.category_snapshot == "Holiday"
        assert result.document.issued_at == date(2024, 7, 15)

    def test_snapshot_survives_offer_edit(
        self, db, service, provider, customer, weekly_offer
    ) -> None:
        booking = service.create_booking(
            provider.id, customer.id, weekly_offer.id, "2024-03-01"
        ).booking
        weekly_offer.monthly_price = Decimal("150.00")
        db.commit()

        assert service.get_booking(provider.id, booking.id).price_snapshot == Decimal("100.00")

    def test_unknown_customer(self, service, provider, weekly_offer) -> None:
        with pytest.raises(NotFoundException) as exc_info:
            service.create_booking(provider.id, "missing", weekly_offer.id)
        assert exc_info.value.details["resource"] == "customer"

    def test_offer_of_another_provider(
        self, db, service, provider, other_provider, customer, make_offer
    ) -> None:
        foreign = make_offer(provider_id=other_provider.id)
        with pytest.raises(NotFoundException) as exc_info:
            service.create_booking(provider.id, customer.id, foreign.id)
        assert exc_info.value.details["resource"] == "offer"

    def test_invalid_start_date(self, service, provider, customer, weekly_offer) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.create_booking(provider.id, customer.id, weekly_offer.id, "2024-02-30")
        assert exc_info.value.field == "start_date"


class TestCancelBooking:
    def test_cancel_issues_confirmation(self, db, service, provider, active_weekly) -> None:
        result = service.cancel_booking(
            provider.id, active_weekly.id, "2024-03-20", "2024-04-30", reason=" Umzug "
        )

        assert result.applied is True
        assert result.booking.status == BookingStatus.CANCELLED.value
        assert result.booking.cancel_received_date == date(2024, 3, 20)
        assert result.booking.cancel_effective_date == date(2024, 4, 30)
        assert result.booking.cancel_reason == "Umzug"

        document = result.document
        assert document.kind == DocumentKind.CANCELLATION.value
        assert document.invoice_number == 2
        assert document.referenced_invoice_number == 1
        assert document.issued_at == date(2024, 4, 30)
        assert document.amount is None

        assert [doc.kind for doc in _documents(db, active_weekly.id)] == [
            "participation",
            "cancellation",
        ]

    def test_same_day_cancellation_is_allowed(self, service, provider, active_weekly) -> None:
        result = service.cancel_booking(provider.id, active_weekly.id, date(2024, 4, 1), "2024-04-01")
        assert result.booking.cancel_effective_date == date(2024, 4, 1)

    def test_cancel_issues_missing_participation_first(
        self, db, service, provider, weekly_offer, make_booking
    ) -> None:
        booking = make_booking(weekly_offer)
        result = service.cancel_booking(provider.id, booking.id, "2024-03-20", "2024-04-30")

        documents = _documents(db, booking.id)
        assert [(doc.kind, doc.invoice_number) for doc in documents] == [
            ("participation", 1),
            ("cancellation", 2),
        ]
        assert result.document.referenced_invoice_number == 1

    def test_camp_is_not_cancellable(self, db, service, provider, active_camp) -> None:
        with pytest.raises(NotCancellableException) as exc_info:
            service.cancel_booking(provider.id, active_camp.id, "2024-07-01", "2024-07-31")

        assert exc_info.value.code == "NOT_CANCELLABLE"
        assert service.get_booking(provider.id, active_camp.id).status == "active"
        assert [doc.kind for doc in _documents(db, active_camp.id)] == ["participation"]

    def test_cancellability_follows_the_live_offer(
        self, db, service, provider, weekly_offer, active_weekly
    ) -> None:
        weekly_offer.title = "Powertraining Ostern"
        db.commit()

        with pytest.raises(NotCancellableException):
            service.cancel_booking(provider.id, active_weekly.id, "2024-03-20", "2024-04-30")

    @pytest.mark.parametrize(
        "received, effective, field",
        [
            (None, "2024-04-30", "received_date"),
            ("2024-03-20", "", "effective_date"),
            ("2024-02-30", "2024-04-30", "received_date"),
        ],
    )
    def test_missing_or_invalid_dates(
        self, service, provider, active_weekly, received, effective, field
    ) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(provider.id, active_weekly.id, received, effective)
        assert exc_info.value.field == field

    def test_effective_before_received(self, service, provider, active_weekly) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(provider.id, active_weekly.id, "2024-04-30", "2024-04-01")
        assert exc_info.value.code == "CANCEL_DATES_ORDER"
        assert exc_info.value.field == "effective_date"

    def test_date_errors_reported_before_status(self, service, provider, active_weekly) -> None:
        service.cancel_booking(provider.id, active_weekly.id, "2024-03-20", "2024-04-30")
        with pytest.raises(ValidationException):
            service.cancel_booking(provider.id, active_weekly.id, None, None)

    def test_cancel_twice(self, service, provider, active_weekly) -> None:
        service.cancel_booking(provider.id, active_weekly.id, "2024-03-20", "2024-04-30")
        with pytest.raises(InvalidTransitionException) as exc_info:
            service.cancel_booking(provider.id, active_weekly.id, "2024-03-21", "2024-05-31")
        assert exc_info.value.details["from_status"] == "cancelled"

    def test_unknown_booking(self, service, provider) -> None:
        with pytest.raises(NotFoundException):
            service.cancel_booking(provider.id, "missing", "2024-03-20", "2024-04-30")

    def test_booking_of_another_provider(self, service, other_provider, active_weekly) -> None:
        with pytest.raises(NotFoundException):
            service.cancel_booking(other_provider.id, active_weekly.id, "2024-03-20", "2024-04-30")


class TestStornoBooking:
    def test_storno_credits_the_booking_price(self, db, service, provider, active_camp) -> None:
        result = service.storno_booking(provider.id, active_camp.id, note="Doppelbuchung")

        assert result.applied is True
        assert result.booking.status == BookingStatus.STORNO.value
        assert result.booking.storno_note == "Doppelbuchung"
        assert result.document.kind == DocumentKind.STORNO.value
        assert result.document.amount == Decimal("249.00")
        assert result.document.invoice_number == 2
        assert result.document.referenced_invoice_number == 1

    def test_storno_with_partial_amount(self, service, provider, active_weekly) -> None:
        result = service.storno_booking(provider.id, active_weekly.id, amount="20,50")
        assert result.document.amount == Decimal("20.50")

    def test_invalid_amount_leaves_booking_active(self, db, service, provider, active_weekly) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.storno_booking(provider.id, active_weekly.id, amount="-1")

        assert exc_info.value.field == "amount"
        assert service.get_booking(provider.id, active_weekly.id).status == "active"
        assert [doc.kind for doc in _documents(db, active_weekly.id)] == ["participation"]

    def test_repeat_storno_is_a_no_op(self, db, service, provider, active_camp) -> None:
        first = service.storno_booking(provider.id, active_camp.id)
        second = service.storno_booking(provider.id, active_camp.id, amount="1.00")

        assert second.applied is False
        assert second.document.id == first.document.id
        assert second.document.invoice_number == first.document.invoice_number
        assert second.document.amount == Decimal("249.00")
        assert len(_documents(db, active_camp.id)) == 2

    def test_storno_of_cancelled_booking_is_rejected(self, service, provider, active_weekly) -> None:
        service.cancel_booking(provider.id, active_weekly.id, "2024-03-20", "2024-04-30")
        with pytest.raises(InvalidTransitionException):
            service.storno_booking(provider.id, active_weekly.id)


class TestRestoreBooking:
    def test_restore_keeps_cancellation_document(self, db, service, provider, active_weekly) -> None:
        cancelled = service.cancel_booking(provider.id, active_weekly.id, "2024-03-20", "2024-04-30")

        result = service.restore_booking(provider.id, active_weekly.id)

        assert result.document is None
        assert result.booking.status == BookingStatus.ACTIVE.value
        assert result.booking.cancel_effective_date is None
        kinds = [doc.kind for doc in _documents(db, active_weekly.id)]
        assert kinds == ["participation", "cancellation"]
        assert cancelled.document.issued_at == date(2024, 4, 30)

    def test_second_cancellation_returns_original_document(
        self, service, provider, active_weekly
    ) -> None:
        first = service.cancel_booking(provider.id, active_weekly.id, "2024-03-20", "2024-04-30")
        service.restore_booking(provider.id, active_weekly.id)

        second = service.cancel_booking(provider.id, active_weekly.id, "2024-05-02", "2024-06-30")

        assert second.booking.cancel_effective_date == date(2024, 6, 30)
        assert second.document.id == first.document.id
        assert second.document.issued_at == date(2024, 4, 30)

    def test_restore_active_booking_is_rejected(self, service, provider, active_weekly) -> None:
        with pytest.raises(InvalidTransitionException) as exc_info:
            service.restore_booking(provider.id, active_weekly.id)
        assert exc_info.value.details["action"] == "restore"


class TestMetrics:
    def test_operations_are_measured(self, service, provider, active_weekly) -> None:
        with pytest.raises(InvalidTransitionException):
            service.restore_booking(provider.id, active_weekly.id)

        metrics = service.get_metrics()
        assert metrics["booking.create"]["success_count"] == 1
        assert metrics["booking.restore"]["failure_count"] == 1
