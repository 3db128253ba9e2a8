# backend/courseledger/repositories/offer_repository.py
"""Offer Repository for the course ledger."""

import logging
from typing import Optional, cast

from sqlalchemy.orm import Session

from ..models.offer import Offer
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class OfferRepository(BaseRepository[Offer]):
    def __init__(self, db: Session):
        super().__init__(db, Offer)

    def get_for_provider(self, provider_id: str, offer_id: str) -> Optional[Offer]:
        query = self._build_query().filter(Offer.id == offer_id, Offer.provider_id == provider_id)
        return cast(Optional[Offer], query.first())
