"""Customer model: the paying parent plus the participating child."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False, index=True)

    salutation = Column(String(20), nullable=True)
    first_name = Column(String(120), nullable=True)
    last_name = Column(String(120), nullable=True)
    email = Column(String(200), nullable=True)

    child_first_name = Column(String(120), nullable=True)
    child_last_name = Column(String(120), nullable=True)

    street = Column(String(200), nullable=True)
    house_no = Column(String(20), nullable=True)
    zip = Column(String(20), nullable=True)
    city = Column(String(120), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part).strip()

    @property
    def street_line(self) -> str:
        return " ".join(part for part in (self.street, self.house_no) if part).strip()

    def __repr__(self) -> str:
        return f"<Customer {self.id}: {self.full_name or '-'}>"
