# backend/courseledger/repositories/customer_repository.py
"""Customer Repository for the course ledger."""

import logging
from typing import Dict, Iterable, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.customer import Customer
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, db: Session):
        super().__init__(db, Customer)

    def get_for_provider(self, provider_id: str, customer_id: str) -> Optional[Customer]:
        query = self._build_query().filter(
            Customer.id == customer_id, Customer.provider_id == provider_id
        )
        return cast(Optional[Customer], query.first())

    def get_many_by_ids(self, provider_id: str, ids: Iterable[str]) -> Dict[str, Customer]:
        """Batch-load customers keyed by id (one query per export batch)."""
        unique_ids = sorted({customer_id for customer_id in ids if customer_id})
        if not unique_ids:
            return {}
        try:
            rows = (
                self._build_query()
                .filter(Customer.provider_id == provider_id, Customer.id.in_(unique_ids))
                .all()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Error batch-loading customers: %s", str(exc))
            raise RepositoryException(f"Failed to load customers: {str(exc)}")
        return {row.id: row for row in rows}
