from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from courseledger.database import Base

# Import models so Base.metadata is populated for create_all.
import courseledger.models  # noqa: F401
from courseledger.models import Booking, Customer, Offer, Provider
from courseledger.services.base import BaseService


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    """
    Session on a fresh in-memory database.

    Services commit for real, so every test gets its own schema instead of a
    rolled-back outer transaction.
    """
    SessionLocal = sessionmaker(
        bind=engine, autoflush=False, expire_on_commit=False, future=True
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_service_metrics() -> Iterator[None]:
    yield
    BaseService._class_metrics.clear()


@pytest.fixture
def provider(db: Session) -> Provider:
    provider = Provider(
        id="01PROVIDER0000000000000001",
        name="Fussballschule Nord",
        street="Sportweg 1",
        zip="20095",
        city="Hamburg",
        tax_number="22/123/45678",
    )
    db.add(provider)
    db.commit()
    return provider


@pytest.fixture
def other_provider(db: Session) -> Provider:
    provider = Provider(id="01PROVIDER0000000000000002", name="Andere Schule")
    db.add(provider)
    db.commit()
    return provider


@pytest.fixture
def customer(db: Session, provider: Provider) -> Customer:
    customer = Customer(
        id="01CUSTOMER0000000000000001",
        provider_id=provider.id,
        first_name="Anna",
        last_name="Schmidt",
        email="anna@example.com",
        child_first_name="Max",
        child_last_name="Schmidt",
        street="Hauptstr.",
        house_no="5",
        zip="20097",
        city="Hamburg",
    )
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def make_offer(db: Session, provider: Provider) -> Callable[..., Offer]:
    counter = {"n": 0}

    def _make(**overrides: Any) -> Offer:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "id": f"01OFFER{counter['n']:019d}",
            "provider_id": provider.id,
            "type": "Foerdertraining",
            "category": "Weekly",
            "title": "Foerdertraining U10",
            "location": "Sportpark Nord",
            "monthly_price": Decimal("100.00"),
        }
        fields.update(overrides)
        offer = Offer(**fields)
        db.add(offer)
        db.commit()
        return offer

    return _make


@pytest.fixture
def weekly_offer(make_offer: Callable[..., Offer]) -> Offer:
    return make_offer()


@pytest.fixture
def camp_offer(make_offer: Callable[..., Offer]) -> Offer:
    return make_offer(
        type="Camp",
        category="Holiday",
        title="Feriencamp Sommer",
        monthly_price=Decimal("249.00"),
    )


@pytest.fixture
def make_booking(db: Session, provider: Provider, customer: Customer) -> Callable[..., Booking]:
    """Insert a booking row directly (no documents issued)."""
    counter = {"n": 0}

    def _make(offer: Offer, **overrides: Any) -> Booking:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "id": f"01BOOKING{counter['n']:017d}",
            "provider_id": provider.id,
            "customer_id": customer.id,
            "offer_id": offer.id,
            "status": "active",
            "start_date": date(2024, 3, 1),
            "price_snapshot": Decimal("100.00"),
            "category_snapshot": "Weekly",
        }
        fields.update(overrides)
        booking = Booking(**fields)
        db.add(booking)
        db.commit()
        return booking

    return _make
