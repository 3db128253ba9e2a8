# backend/courseledger/routes/admin_invoices.py
"""
Admin invoice listing and export routes.

Endpoints:
    GET /invoices       - Paginated document list (type, from, to, q, sort, page, limit)
    GET /invoices/csv   - Same filter, all matching rows as CSV
    GET /datev/export   - DATEV booking batch (EXTF) for a date range
    GET /customers/{id}/documents      - One customer's documents, same filter
    GET /customers/{id}/documents.csv  - One customer's documents as CSV
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Query, Response

from ..api.dependencies import get_document_aggregator_service, get_provider_id
from ..core.enums import DocumentKind
from ..core.exceptions import DomainException
from ..schemas.documents import DocumentFilter, DocumentPage
from ..services.document_aggregator_service import DocumentAggregatorService
from ..services.document_exports import (
    DATEV_ENCODING,
    ExportPeriod,
    rows_to_csv,
    rows_to_datev_extf,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-invoices"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    raise exc.to_http_exception() from exc


def _filter_from_query(
    type: Optional[str],
    date_from: Optional[str],
    date_to: Optional[str],
    q: Optional[str],
    sort: Optional[str],
    page: Optional[int] = None,
    limit: Optional[int] = None,
    customer_id: Optional[str] = None,
) -> DocumentFilter:
    try:
        return DocumentFilter.from_query_params(
            type=type,
            date_from=date_from,
            date_to=date_to,
            q=q,
            sort=sort,
            page=page,
            limit=limit,
            customer_id=customer_id,
        )
    except DomainException as exc:
        handle_domain_exception(exc)


@router.get("/invoices", response_model=DocumentPage)
async def list_invoices(
    type: Optional[str] = Query(default=None, description="Comma separated document kinds"),
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    q: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default=None, description="field:dir, e.g. issuedAt:desc"),
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    provider_id: str = Depends(get_provider_id),
    service: DocumentAggregatorService = Depends(get_document_aggregator_service),
) -> DocumentPage:
    doc_filter = _filter_from_query(type, date_from, date_to, q, sort, page, limit)
    try:
        return await asyncio.to_thread(service.list_documents, provider_id, doc_filter)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.get("/invoices/csv")
async def export_invoices_csv(
    type: Optional[str] = Query(default=None),
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    q: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default=None),
    provider_id: str = Depends(get_provider_id),
    service: DocumentAggregatorService = Depends(get_document_aggregator_service),
) -> Response:
    doc_filter = _filter_from_query(type, date_from, date_to, q, sort)
    return await _csv_response(service, provider_id, doc_filter, "invoices.csv")


async def _csv_response(
    service: DocumentAggregatorService,
    provider_id: str,
    doc_filter: DocumentFilter,
    filename: str,
) -> Response:
    try:
        content = await asyncio.to_thread(
            lambda: rows_to_csv(service.iter_export_rows(provider_id, doc_filter))
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return Response(
        content=content.encode("utf-8-sig"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/datev/export")
async def export_datev(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    provider_id: str = Depends(get_provider_id),
    service: DocumentAggregatorService = Depends(get_document_aggregator_service),
) -> Response:
    """Invoices and credit notes issued in [from, to] as a DATEV EXTF booking batch."""
    doc_filter = _filter_from_query(
        f"{DocumentKind.PARTICIPATION.value},{DocumentKind.STORNO.value}",
        date_from.isoformat(),
        date_to.isoformat(),
        None,
        "issuedAt:asc",
    )
    period = ExportPeriod(date_from, date_to)
    try:
        content = await asyncio.to_thread(
            lambda: rows_to_datev_extf(
                service.iter_export_rows(provider_id, doc_filter), period=period
            )
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    filename = f"EXTF_Buchungsstapel_{date_from.isoformat()}_bis_{date_to.isoformat()}.csv"
    return Response(
        content=content.encode(DATEV_ENCODING, errors="replace"),
        media_type=f"text/csv; charset={DATEV_ENCODING}",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/customers/{customer_id}/documents", response_model=DocumentPage)
async def list_customer_documents(
    customer_id: str,
    type: Optional[str] = Query(default=None, description="Comma separated document kinds"),
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    q: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default=None),
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    provider_id: str = Depends(get_provider_id),
    service: DocumentAggregatorService = Depends(get_document_aggregator_service),
) -> DocumentPage:
    doc_filter = _filter_from_query(type, date_from, date_to, q, sort, page, limit, customer_id)
    try:
        return await asyncio.to_thread(service.list_documents, provider_id, doc_filter)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.get("/customers/{customer_id}/documents.csv")
async def export_customer_documents_csv(
    customer_id: str,
    type: Optional[str] = Query(default=None),
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    q: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default=None),
    provider_id: str = Depends(get_provider_id),
    service: DocumentAggregatorService = Depends(get_document_aggregator_service),
) -> Response:
    doc_filter = _filter_from_query(type, date_from, date_to, q, sort, customer_id=customer_id)
    return await _csv_response(
        service, provider_id, doc_filter, f"customer-{customer_id}-documents.csv"
    )
