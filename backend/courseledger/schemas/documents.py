"""Schemas for the document/invoice listing and export endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import FrozenSet, List, Optional

from pydantic import (
    Field,
    ValidationError as PydanticValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from ..core.config import settings
from ..core.enums import DocumentKind
from ..core.exceptions import ValidationException
from ..repositories.billing_document_repository import SORTABLE_COLUMNS
from ._strict_base import StrictModel

DEFAULT_SORT = "issuedAt:desc"

# Model field -> admin query parameter, for error messages
QUERY_PARAM_NAMES = {
    "date_from": "from",
    "date_to": "to",
    "sort_field": "sort",
    "page": "page",
    "page_size": "limit",
    "customer_id": "customer_id",
}


class DocumentFilter(StrictModel):
    """
    Filter for listing and exporting documents.

    An empty ``kinds`` set means all kinds. ``date_from``/``date_to`` are
    inclusive bounds on the issue date. ``customer_id`` narrows the result to
    one customer's documents. Paging is ignored by exports.
    """

    kinds: FrozenSet[DocumentKind] = frozenset()
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    customer_id: Optional[str] = None
    query: Optional[str] = None
    sort_field: str = "issuedAt"
    sort_desc: bool = True
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=settings.max_page_size)

    @field_validator("sort_field")
    @classmethod
    def validate_sort_field(cls, v: str) -> str:
        if v not in SORTABLE_COLUMNS:
            raise ValueError(f"sort_field must be one of {sorted(SORTABLE_COLUMNS)}")
        return v

    @field_validator("query", "customer_id")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def validate_date_range(self) -> "DocumentFilter":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("The end date cannot be before the start date")
        return self

    @classmethod
    def from_query_params(
        cls,
        *,
        type: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        q: Optional[str] = None,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        customer_id: Optional[str] = None,
    ) -> "DocumentFilter":
        """
        Build a filter from admin query parameters.

        ``type`` is a comma separated kind list, ``sort`` is ``field:dir``
        (``issuedAt:desc`` by default). Failures raise ``ValidationException``
        naming the query parameter at fault.
        """
        kinds: set[DocumentKind] = set()
        for raw in (type or "").split(","):
            token = raw.strip().lower()
            if not token:
                continue
            try:
                kinds.add(DocumentKind(token))
            except ValueError as exc:
                raise ValidationException(
                    f"Unknown document type: {raw.strip()}",
                    field="type",
                    details={"allowed": [kind.value for kind in DocumentKind]},
                ) from exc

        parsed_from = _parse_date_param(date_from, "from")
        parsed_to = _parse_date_param(date_to, "to")

        sort_field, _, direction = (sort or DEFAULT_SORT).partition(":")
        sort_field = sort_field.strip() or "issuedAt"
        direction = (direction or "desc").strip().lower()
        if direction not in ("asc", "desc"):
            raise ValidationException(f"Unknown sort direction: {direction}", field="sort")

        try:
            return cls(
                kinds=frozenset(kinds),
                date_from=parsed_from,
                date_to=parsed_to,
                customer_id=customer_id,
                query=q,
                sort_field=sort_field,
                sort_desc=direction == "desc",
                page=1 if page is None else page,
                page_size=settings.default_page_size if limit is None else limit,
            )
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            location = error["loc"][0] if error["loc"] else "to"
            field = QUERY_PARAM_NAMES.get(str(location), str(location))
            raise ValidationException(error["msg"].removeprefix("Value error, "), field=field) from exc


def _parse_date_param(value: Optional[str], field: str) -> Optional[date]:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationException(
            f"{field} must be an ISO date (YYYY-MM-DD)", field=field, details={"value": value}
        ) from exc


class BillingDocumentView(StrictModel):
    id: str
    booking_id: str
    customer_id: str
    customer_name: Optional[str] = None
    kind: str
    kind_label: str
    invoice_number: int
    reference: str
    issued_at: date
    referenced_invoice_number: Optional[int] = None
    amount: Optional[Decimal] = None
    currency: str
    title: str
    offer_title: Optional[str] = None
    offer_type: Optional[str] = None
    venue: Optional[str] = None

    @field_serializer("amount")
    def serialize_amount(self, value: Optional[Decimal]) -> Optional[str]:
        return f"{value:.2f}" if value is not None else None


class DocumentPage(StrictModel):
    items: List[BillingDocumentView]
    total: int
    page: int
    page_size: int
    total_pages: int


class ExportRow(StrictModel):
    """
    One exported document. Field order is the CSV column order.

    Net equals gross and VAT is zero: course fees are VAT-exempt.
    """

    document_id: str
    kind: str
    invoice_number: int
    reference: str
    credit_note_number: str = ""
    referenced_invoice_number: Optional[int] = None
    referenced_reference: str = ""
    issued_at: date
    booking_id: str
    customer_id: str
    customer_name: str = ""
    child_name: str = ""
    customer_street: str = ""
    customer_zip: str = ""
    customer_city: str = ""
    customer_email: str = ""
    supplier_name: str = ""
    supplier_address: str = ""
    supplier_tax_number: str = ""
    description: str
    offer_type: str = ""
    venue: str = ""
    quantity: int = 1
    net_amount: Optional[Decimal] = None
    vat_rate: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0.00")
    gross_amount: Optional[Decimal] = None
    currency: str
    payment_method: str = ""
    payment_terms: str = ""
    payment_status: str = ""
