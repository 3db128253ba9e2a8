# backend/courseledger/services/document_delivery_service.py
"""
Document Delivery Service for the course ledger.

PDF rendering and e-mail are done by collaborators plugged in through the
``DocumentRenderer`` and ``DocumentMailer`` protocols; this service only
guarantees the document exists, assembles the display data they need, and
interprets their results. A mailer reporting that the document was already
delivered counts as success.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session

from ..core.exceptions import DocumentAlreadySentError, NotFoundException, ValidationException
from ..models.billing_document import BillingDocument
from ..models.customer import Customer
from ..models.provider import Provider
from ..repositories.factory import RepositoryFactory
from ..schemas.documents import ExportRow
from .base import BaseService
from .billing_document_service import BillingDocumentService, format_reference


@dataclass(frozen=True)
class DocumentContext:
    """Display data a renderer needs next to the document itself."""

    reference: str
    referenced_reference: str
    customer: Optional[Customer]
    provider: Provider


class DocumentRenderer(Protocol):
    def render(self, document: BillingDocument, context: DocumentContext) -> bytes:
        ...


class DocumentMailer(Protocol):
    def send(
        self,
        document: BillingDocument,
        pdf: bytes,
        recipient: str,
        context: DocumentContext,
    ) -> None:
        """Deliver the PDF; raise DocumentAlreadySentError if it went out before."""
        ...


@dataclass(frozen=True)
class DeliveryResult:
    document: BillingDocument
    recipient: str
    already_sent: bool = False


class DocumentDeliveryService(BaseService):
    def __init__(
        self,
        db: Session,
        renderer: DocumentRenderer,
        mailer: Optional[DocumentMailer] = None,
    ):
        super().__init__(db)
        self.renderer = renderer
        self.mailer = mailer
        self.documents = BillingDocumentService(db)
        self.document_repository = RepositoryFactory.create_billing_document_repository(db)
        self.customer_repository = RepositoryFactory.create_customer_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_repository(db)

    def build_context(self, document: BillingDocument) -> DocumentContext:
        provider = self.provider_repository.get_by_id(document.provider_id)
        if provider is None:
            raise NotFoundException(
                "Provider not found", resource="provider", resource_id=document.provider_id
            )
        customer = self.customer_repository.get_for_provider(
            document.provider_id, document.customer_id
        )
        return DocumentContext(
            reference=format_reference(document.kind, document.invoice_number),
            referenced_reference=format_reference(
                "participation", document.referenced_invoice_number
            ),
            customer=customer,
            provider=provider,
        )

    @BaseService.measure_operation("document.render")
    def render_document(self, provider_id: str, booking_id: str, kind: Any) -> bytes:
        """Ensure the document exists and return its rendered PDF bytes."""
        document = self.documents.ensure_document(provider_id, booking_id, kind)
        return self.renderer.render(document, self.build_context(document))

    def render_row(self, row: ExportRow) -> bytes:
        """Render an already issued document from an export row (ZIP bundles)."""
        document = self.document_repository.get_by_id(row.document_id)
        if document is None:
            raise NotFoundException(
                "Document not found", resource="document", resource_id=row.document_id
            )
        return self.renderer.render(document, self.build_context(document))

    @BaseService.measure_operation("document.send")
    def send_document(
        self,
        provider_id: str,
        booking_id: str,
        kind: Any,
        *,
        recipient: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Ensure, render and mail a document.

        Without an explicit ``recipient`` the customer's e-mail is used.
        """
        if self.mailer is None:
            raise ValidationException("No mailer configured", code="MAILER_UNAVAILABLE")

        document = self.documents.ensure_document(provider_id, booking_id, kind)
        context = self.build_context(document)
        address = (recipient or (context.customer.email if context.customer else "") or "").strip()
        if not address:
            raise ValidationException(
                "The customer has no e-mail address", field="email", details={"booking_id": booking_id}
            )

        pdf = self.renderer.render(document, context)
        try:
            self.mailer.send(document, pdf, address, context)
        except DocumentAlreadySentError:
            self.logger.info(
                "document_delivery.already_sent",
                extra={"document_id": document.id, "recipient": address},
            )
            return DeliveryResult(document, address, already_sent=True)

        self.logger.info(
            "document_delivery.sent",
            extra={"document_id": document.id, "recipient": address},
        )
        return DeliveryResult(document, address)
