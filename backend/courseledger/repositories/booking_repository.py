# backend/courseledger/repositories/booking_repository.py
"""
Booking Repository for the course ledger.

Handles booking lookups scoped to a provider, including the locking read
used by every status transition.
"""

import logging
from typing import Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def get_for_provider(self, provider_id: str, booking_id: str) -> Optional[Booking]:
        try:
            return cast(
                Optional[Booking],
                self.db.query(Booking)
                .filter(Booking.id == booking_id, Booking.provider_id == provider_id)
                .first(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Error fetching booking %s: %s", booking_id, str(exc))
            raise RepositoryException(f"Failed to fetch booking: {str(exc)}")

    def get_for_update(self, provider_id: str, booking_id: str) -> Optional[Booking]:
        """
        Read a booking with a row lock held until the transaction ends.

        ``populate_existing`` refreshes an instance already in the identity map
        so the caller never decides on a stale status. SQLite ignores
        ``FOR UPDATE``; there the version column and the per-booking lock do
        the work.
        """
        try:
            query = (
                self.db.query(Booking)
                .filter(Booking.id == booking_id, Booking.provider_id == provider_id)
                .populate_existing()
            )
            if self.dialect_name != "sqlite":
                query = query.with_for_update(of=Booking)
            return cast(Optional[Booking], query.first())
        except SQLAlchemyError as exc:
            self.logger.error("Error locking booking %s: %s", booking_id, str(exc))
            raise RepositoryException(f"Failed to lock booking: {str(exc)}")
