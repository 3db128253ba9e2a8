# backend/courseledger/repositories/invoice_counter_repository.py
"""
Repository for per-provider invoice number allocation.

Numbers come from a single counter row per provider that is bumped with an
atomic ``UPDATE ... SET last_number = last_number + 1`` inside the caller's
transaction. The UPDATE takes the row lock on PostgreSQL and the database
write lock on SQLite, so concurrent allocators queue behind each other, and a
rollback of the caller's transaction hands the number back.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.invoice_counter import InvoiceCounter
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class InvoiceCounterRepository(BaseRepository[InvoiceCounter]):
    def __init__(self, db: Session):
        super().__init__(db, InvoiceCounter)

    def _ensure_row(self, provider_id: str) -> None:
        if self.dialect_name == "postgresql":
            stmt = (
                pg_insert(InvoiceCounter)
                .values(provider_id=provider_id, last_number=0)
                .on_conflict_do_nothing(index_elements=["provider_id"])
            )
        else:
            stmt = insert(InvoiceCounter).values(provider_id=provider_id, last_number=0)
            if self.dialect_name == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")
        self.db.execute(stmt)

    def allocate_next(self, provider_id: str) -> int:
        """Reserve and return the next invoice number for ``provider_id``."""
        try:
            self._ensure_row(provider_id)
            self.db.execute(
                update(InvoiceCounter)
                .where(InvoiceCounter.provider_id == provider_id)
                .values(last_number=InvoiceCounter.last_number + 1)
                .execution_options(synchronize_session=False)
            )
            number = self.db.execute(
                select(InvoiceCounter.last_number).where(
                    InvoiceCounter.provider_id == provider_id
                )
            ).scalar_one()
        except SQLAlchemyError as exc:
            self.logger.error("Invoice number allocation failed for %s: %s", provider_id, exc)
            raise
        logger.debug(
            "invoice_number_allocated",
            extra={"provider_id": provider_id, "invoice_number": number},
        )
        return int(number)

    def peek(self, provider_id: str) -> Optional[int]:
        """Last number handed out, or None if the provider never issued one."""
        try:
            return self.db.execute(
                select(InvoiceCounter.last_number).where(
                    InvoiceCounter.provider_id == provider_id
                )
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise RepositoryException(f"Failed to read invoice counter: {str(exc)}")
