"""Offer model: a purchasable course product and its taxonomy tags."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Offer(Base):
    """
    Course offer as maintained in the admin console.

    ``type`` is the legacy taxonomy key, ``sub_type`` the finer one and
    ``category`` the current bucket; legacy records may lack a category and
    are classified from the other fields (see services.offer_taxonomy).
    """

    __tablename__ = "offers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False, index=True)

    type = Column(String(80), nullable=True)
    sub_type = Column(String(80), nullable=True)
    category = Column(String(40), nullable=True)
    title = Column(String(255), nullable=False, default="")
    location = Column(String(255), nullable=True)
    monthly_price = Column(Numeric(10, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "monthly_price IS NULL OR monthly_price >= 0", name="ck_offers_price_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Offer {self.id}: type={self.type} sub_type={self.sub_type} "
            f"category={self.category} title={self.title!r}>"
        )
