# backend/courseledger/services/document_aggregator_service.py
"""
Document Aggregator Service for the course ledger.

Flattens every billing document of a provider into one list for the admin
invoice screen and for exports. Read-only: it never takes booking locks and
only sees committed rows.

Exports walk the filtered query in fixed-size batches so memory stays bounded
on large ledgers. A scan can be resumed from any row offset, and because the
ordering is total (invoice number breaks ties) the same filter always yields
the same rows in the same order.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, Iterator, List, Optional

from sqlalchemy.orm import Query, Session

from ..core.config import settings
from ..core.enums import DocumentKind
from ..core.exceptions import NotFoundException, ValidationException
from ..models.billing_document import BillingDocument
from ..models.customer import Customer
from ..models.provider import Provider
from ..repositories.factory import RepositoryFactory
from ..schemas.documents import BillingDocumentView, DocumentFilter, DocumentPage, ExportRow
from .base import BaseService
from .billing_document_service import format_reference


class DocumentAggregatorService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.document_repository = RepositoryFactory.create_billing_document_repository(db)
        self.customer_repository = RepositoryFactory.create_customer_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_repository(db)

    def _query(self, provider_id: str, doc_filter: DocumentFilter) -> Query:
        if doc_filter.customer_id is not None:
            customer = self.customer_repository.get_for_provider(provider_id, doc_filter.customer_id)
            if customer is None:
                raise NotFoundException(
                    "Customer not found", resource="customer", resource_id=doc_filter.customer_id
                )
        return self.document_repository.filtered_query(
            provider_id,
            kinds=[kind.value for kind in doc_filter.kinds],
            date_from=doc_filter.date_from,
            date_to=doc_filter.date_to,
            customer_id=doc_filter.customer_id,
            search=doc_filter.query,
            sort_field=doc_filter.sort_field,
            descending=doc_filter.sort_desc,
        )

    @BaseService.measure_operation("documents.list")
    def list_documents(self, provider_id: str, doc_filter: DocumentFilter) -> DocumentPage:
        """One page of documents matching ``doc_filter``."""
        query = self._query(provider_id, doc_filter)
        total = self.document_repository.count_query(query)
        offset = (doc_filter.page - 1) * doc_filter.page_size
        documents = self.document_repository.fetch_slice(query, offset, doc_filter.page_size)
        customers = self.customer_repository.get_many_by_ids(
            provider_id, (doc.customer_id for doc in documents)
        )
        return DocumentPage(
            items=view_many(documents, customers),
            total=total,
            page=doc_filter.page,
            page_size=doc_filter.page_size,
            total_pages=math.ceil(total / doc_filter.page_size) if total else 0,
        )

    def iter_documents(
        self,
        provider_id: str,
        doc_filter: DocumentFilter,
        *,
        start_offset: int = 0,
        batch_size: Optional[int] = None,
    ) -> Iterator[List[BillingDocument]]:
        """Yield matching documents batch by batch, starting at row ``start_offset``."""
        if start_offset < 0:
            raise ValidationException("start_offset cannot be negative", field="start_offset")
        size = batch_size or settings.export_batch_size
        query = self._query(provider_id, doc_filter)
        offset = start_offset
        while True:
            batch = self.document_repository.fetch_slice(query, offset, size)
            if not batch:
                return
            yield batch
            if len(batch) < size:
                return
            offset += size

    def iter_export_rows(
        self,
        provider_id: str,
        doc_filter: DocumentFilter,
        *,
        start_offset: int = 0,
        batch_size: Optional[int] = None,
    ) -> Iterator[ExportRow]:
        """Export rows for every matching document; paging fields of the filter are ignored."""
        provider = self.provider_repository.get_by_id(provider_id)
        if provider is None:
            raise NotFoundException("Provider not found", resource="provider", resource_id=provider_id)

        for batch in self.iter_documents(
            provider_id, doc_filter, start_offset=start_offset, batch_size=batch_size
        ):
            customers = self.customer_repository.get_many_by_ids(
                provider_id, (doc.customer_id for doc in batch)
            )
            for document in batch:
                yield to_export_row(document, customers.get(document.customer_id), provider)

    @BaseService.measure_operation("documents.export")
    def export_rows(self, provider_id: str, doc_filter: DocumentFilter) -> List[ExportRow]:
        rows = list(self.iter_export_rows(provider_id, doc_filter))
        self.logger.info(
            "documents.exported",
            extra={"provider_id": provider_id, "rows": len(rows)},
        )
        return rows


def to_view(document: BillingDocument, customer: Optional[Customer]) -> BillingDocumentView:
    kind = DocumentKind(document.kind)
    return BillingDocumentView(
        id=document.id,
        booking_id=document.booking_id,
        customer_id=document.customer_id,
        customer_name=customer.full_name if customer is not None else None,
        kind=kind.value,
        kind_label=kind.label,
        invoice_number=document.invoice_number,
        reference=format_reference(kind, document.invoice_number),
        issued_at=document.issued_at,
        referenced_invoice_number=document.referenced_invoice_number,
        amount=document.amount,
        currency=document.currency,
        title=document.title,
        offer_title=document.offer_title,
        offer_type=document.offer_type,
        venue=document.venue,
    )


def to_export_row(
    document: BillingDocument, customer: Optional[Customer], provider: Provider
) -> ExportRow:
    kind = DocumentKind(document.kind)
    reference = format_reference(kind, document.invoice_number)
    child_name = ""
    locality: Dict[str, str] = {"street": "", "zip": "", "city": "", "email": ""}
    customer_name = ""
    if customer is not None:
        customer_name = customer.full_name
        child_name = " ".join(
            part for part in (customer.child_first_name, customer.child_last_name) if part
        )
        locality = {
            "street": customer.street_line,
            "zip": customer.zip or "",
            "city": customer.city or "",
            "email": customer.email or "",
        }

    return ExportRow(
        document_id=document.id,
        kind=kind.value,
        invoice_number=document.invoice_number,
        reference=reference,
        credit_note_number=reference if kind is DocumentKind.STORNO else "",
        referenced_invoice_number=document.referenced_invoice_number,
        referenced_reference=format_reference(
            DocumentKind.PARTICIPATION, document.referenced_invoice_number
        ),
        issued_at=document.issued_at,
        booking_id=document.booking_id,
        customer_id=document.customer_id,
        customer_name=customer_name,
        child_name=child_name,
        customer_street=locality["street"],
        customer_zip=locality["zip"],
        customer_city=locality["city"],
        customer_email=locality["email"],
        supplier_name=provider.name or "",
        supplier_address=provider.address_line,
        supplier_tax_number=provider.tax_number or "",
        description=document.title,
        offer_type=document.offer_type or "",
        venue=document.venue or "",
        net_amount=document.amount,
        gross_amount=document.amount,
        currency=document.currency,
    )


def view_many(
    documents: Iterable[BillingDocument], customers: Dict[str, Customer]
) -> List[BillingDocumentView]:
    return [to_view(doc, customers.get(doc.customer_id)) for doc in documents]
