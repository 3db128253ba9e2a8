# backend/courseledger/repositories/billing_document_repository.py
"""
Billing Document Repository for the course ledger.

Documents are append-only: this repository creates and reads them, it never
updates or deletes. Listing and export share ``filtered_query`` so the two
can never disagree about which rows match a filter or in which order.
"""

from datetime import date
import logging
from typing import Collection, List, Optional, cast

from sqlalchemy import String, cast as sa_cast, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.config import settings
from ..core.exceptions import RepositoryException
from ..models.billing_document import BillingDocument, document_id_for
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Public sort keys -> model columns
SORTABLE_COLUMNS = {
    "issuedAt": BillingDocument.issued_at,
    "invoiceNumber": BillingDocument.invoice_number,
    "kind": BillingDocument.kind,
    "amount": BillingDocument.amount,
    "title": BillingDocument.title,
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def invoice_number_from_search(term: str) -> Optional[int]:
    """
    Invoice number a search term refers to, if any.

    Accepts the printed reference (``RE-000001``, ``GS-000012``) as well as the
    bare number; the configured prefixes are case insensitive.
    """
    text = term.strip().upper()
    for prefix in (settings.invoice_number_prefix, settings.credit_note_prefix):
        prefix = prefix.upper()
        if prefix and text.startswith(prefix):
            text = text[len(prefix) :]
            break
    if not text.isdigit():
        return None
    return int(text)


class BillingDocumentRepository(BaseRepository[BillingDocument]):
    def __init__(self, db: Session):
        super().__init__(db, BillingDocument)

    def get_by_booking_and_kind(self, booking_id: str, kind: str) -> Optional[BillingDocument]:
        """Fetch the single document of ``kind`` for a booking, if issued."""
        try:
            return cast(
                Optional[BillingDocument],
                self.db.get(
                    BillingDocument,
                    document_id_for(booking_id, kind),
                    populate_existing=True,
                ),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Error fetching %s document for %s: %s", kind, booking_id, exc)
            raise RepositoryException(f"Failed to fetch document: {str(exc)}")

    def list_for_booking(self, booking_id: str) -> List[BillingDocument]:
        query = (
            self._build_query()
            .filter(BillingDocument.booking_id == booking_id)
            .order_by(BillingDocument.invoice_number.asc())
        )
        return self._execute_query(query)

    def filtered_query(
        self,
        provider_id: str,
        *,
        kinds: Optional[Collection[str]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        customer_id: Optional[str] = None,
        search: Optional[str] = None,
        sort_field: str = "issuedAt",
        descending: bool = True,
    ) -> Query:
        """
        Build the provider-scoped, filtered and totally ordered document query.

        ``invoice_number`` is unique per provider and always the last ORDER BY
        term, so equal sort keys still come back in the same order.
        """
        query = self._build_query().filter(BillingDocument.provider_id == provider_id)
        if kinds:
            query = query.filter(BillingDocument.kind.in_(sorted(kinds)))
        if date_from is not None:
            query = query.filter(BillingDocument.issued_at >= date_from)
        if date_to is not None:
            query = query.filter(BillingDocument.issued_at <= date_to)
        if customer_id is not None:
            query = query.filter(BillingDocument.customer_id == customer_id)

        term = (search or "").strip()
        if term:
            pattern = f"%{_escape_like(term)}%"
            matches = [
                BillingDocument.title.ilike(pattern, escape="\\"),
                BillingDocument.offer_title.ilike(pattern, escape="\\"),
                BillingDocument.offer_type.ilike(pattern, escape="\\"),
                BillingDocument.venue.ilike(pattern, escape="\\"),
                BillingDocument.booking_id.ilike(pattern, escape="\\"),
                sa_cast(BillingDocument.invoice_number, String).ilike(pattern, escape="\\"),
            ]
            number = invoice_number_from_search(term)
            if number is not None:
                matches.append(BillingDocument.invoice_number == number)
            query = query.filter(or_(*matches))

        column = SORTABLE_COLUMNS.get(sort_field, BillingDocument.issued_at)
        primary = column.desc() if descending else column.asc()
        tie_break = (
            BillingDocument.invoice_number.desc()
            if descending
            else BillingDocument.invoice_number.asc()
        )
        if column is BillingDocument.invoice_number:
            return query.order_by(primary)
        return query.order_by(primary, tie_break)

    def count_query(self, query: Query) -> int:
        try:
            return int(query.order_by(None).count())
        except SQLAlchemyError as exc:
            self.logger.error("Error counting documents: %s", exc)
            raise RepositoryException(f"Failed to count documents: {str(exc)}")

    def fetch_slice(self, query: Query, offset: int, limit: int) -> List[BillingDocument]:
        return self._execute_query(query.offset(offset).limit(limit))
