"""
Concurrent transitions against a file-backed SQLite database.

Each worker gets its own session, as request handlers do; the per-booking
lock and the invoice counter must keep the outcome identical to a serial run.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
import threading

import pytest
from sqlalchemy.orm import sessionmaker

from courseledger.core.exceptions import DomainException, InvalidTransitionException
from courseledger.database import Base, build_engine
from courseledger.models import BillingDocument, Booking, Customer, Offer, Provider
from courseledger.repositories.factory import RepositoryFactory
from courseledger.services.billing_document_service import BillingDocumentService
from courseledger.services.booking_lifecycle_service import BookingLifecycleService

WORKERS = 5
PROVIDER_ID = "01PROVIDER0000000000000001"


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}", echo=False)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with factory() as session:
        # Parent row first: foreign keys are enforced and no relationship orders the inserts
        session.add(Provider(id=PROVIDER_ID, name="Fussballschule Nord"))
        session.commit()
        session.add(Customer(id="C1", provider_id=PROVIDER_ID, first_name="Anna"))
        session.add(
            Offer(
                id="O1",
                provider_id=PROVIDER_ID,
                type="Foerdertraining",
                category="Weekly",
                title="Foerdertraining U10",
                monthly_price=Decimal("100.00"),
            )
        )
        session.commit()

    yield factory
    engine.dispose()


def _run_concurrently(task):
    barrier = threading.Barrier(WORKERS)

    def worker(index):
        barrier.wait()
        try:
            return task(index)
        except DomainException as exc:
            return exc

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(worker, range(WORKERS)))


def _documents(factory, booking_id):
    with factory() as session:
        return (
            session.query(BillingDocument)
            .filter(BillingDocument.booking_id == booking_id)
            .order_by(BillingDocument.invoice_number)
            .all()
        )


def test_only_one_cancellation_wins(session_factory) -> None:
    with session_factory() as session:
        booking_id = (
            BookingLifecycleService(session)
            .create_booking(PROVIDER_ID, "C1", "O1", "2024-03-01")
            .booking.id
        )

    def cancel(index):
        with session_factory() as session:
            return BookingLifecycleService(session).cancel_booking(
                PROVIDER_ID, booking_id, "2024-03-20", date(2024, 4, 1 + index)
            )

    results = _run_concurrently(cancel)

    applied = [result for result in results if not isinstance(result, Exception)]
    rejected = [result for result in results if isinstance(result, InvalidTransitionException)]
    assert len(applied) == 1
    assert len(rejected) == WORKERS - 1

    documents = _documents(session_factory, booking_id)
    assert [(doc.kind, doc.invoice_number) for doc in documents] == [
        ("participation", 1),
        ("cancellation", 2),
    ]
    assert documents[1].issued_at == applied[0].booking.cancel_effective_date


def test_concurrent_ensure_returns_one_document(session_factory) -> None:
    with session_factory() as session:
        session.add(
            Booking(
                id="B1",
                provider_id=PROVIDER_ID,
                customer_id="C1",
                offer_id="O1",
                start_date=date(2024, 3, 1),
                price_snapshot=Decimal("100.00"),
            )
        )
        session.commit()

    def ensure(_index):
        with session_factory() as session:
            document = BillingDocumentService(session).ensure_document(
                PROVIDER_ID, "B1", "participation"
            )
            return document.id, document.invoice_number

    results = _run_concurrently(ensure)

    assert set(results) == {("B1:participation", 1)}
    with session_factory() as session:
        assert RepositoryFactory.create_invoice_counter_repository(session).peek(PROVIDER_ID) == 1
