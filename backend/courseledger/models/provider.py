"""Provider (tenant) model; also the supplier identity printed on exports."""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Provider(Base):
    __tablename__ = "providers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    name = Column(String(200), nullable=False)
    street = Column(String(200), nullable=True)
    zip = Column(String(20), nullable=True)
    city = Column(String(120), nullable=True)
    email = Column(String(200), nullable=True)
    tax_number = Column(String(64), nullable=True)
    iban = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def address_line(self) -> str:
        locality = " ".join(part for part in (self.zip, self.city) if part)
        return ", ".join(part for part in (self.street, locality) if part)

    def __repr__(self) -> str:
        return f"<Provider {self.id}: {self.name}>"
