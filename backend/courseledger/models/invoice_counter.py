"""Per-provider invoice number counter."""

from sqlalchemy import Column, ForeignKey, Integer, String, text

from ..database import Base


class InvoiceCounter(Base):
    """
    Last invoice number handed out for a provider.

    Incremented inside the transaction that persists the document, so a
    rollback returns the number and the sequence stays gap-free.
    """

    __tablename__ = "invoice_counters"

    provider_id = Column(String(26), ForeignKey("providers.id"), primary_key=True)
    last_number = Column(Integer, nullable=False, default=0, server_default=text("0"))

    def __repr__(self) -> str:
        return f"<InvoiceCounter provider={self.provider_id} last={self.last_number}>"
