# backend/courseledger/services/document_exports.py
"""
Serialization of exported document rows.

- ``rows_to_csv``: flat semicolon separated file, one line per document.
- ``rows_to_datev_extf``: DATEV "Buchungsstapel" (EXTF format 700) for the
  tax advisor. Only invoices and credit notes are booked; cancellation
  confirmations carry no amount and are left out.
- ``build_documents_zip`` / ``build_datev_bundle``: ZIP archives of rendered
  PDFs, optionally together with the booking files.

All output is a pure function of its input rows (plus an explicit creation
timestamp for the DATEV header), so identical rows give identical bytes.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
import io
import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence
import zipfile

from ..core.config import Settings, settings as default_settings
from ..core.enums import DocumentKind
from ..core.timezone_utils import business_now
from ..schemas.documents import ExportRow

logger = logging.getLogger(__name__)

CSV_DELIMITER = ";"
DATEV_FORMAT_VERSION = 700
DATEV_CATEGORY_BOOKINGS = 21
DATEV_CATEGORY_VERSION = 13
DATEV_TEXT_LIMIT = 60
DATEV_ENCODING = "cp1252"

DATEV_COLUMNS = (
    "Umsatz (ohne Soll/Haben-Kz)",
    "Soll/Haben-Kennzeichen",
    "WKZ Umsatz",
    "Kurs",
    "Basis-Umsatz",
    "WKZ Basis-Umsatz",
    "Konto",
    "Gegenkonto (ohne BU-Schlüssel)",
    "BU-Schlüssel",
    "Belegdatum",
    "Belegfeld 1",
    "Belegfeld 2",
    "Skonto",
    "Buchungstext",
)

# Document kinds that are posted, with their debit/credit flag
DATEV_POSTINGS = {
    DocumentKind.PARTICIPATION.value: "S",
    DocumentKind.STORNO.value: "H",
}

Renderer = Callable[[ExportRow], bytes]


@dataclass(frozen=True)
class ExportPeriod:
    date_from: date
    date_to: date

    @classmethod
    def covering(
        cls,
        rows: Sequence[ExportRow],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> "ExportPeriod":
        """Use the given bounds, falling back to the span of the rows (or today)."""
        issued = sorted(row.issued_at for row in rows)
        today = business_now().date()
        start = date_from or (issued[0] if issued else today)
        end = date_to or (issued[-1] if issued else start)
        return cls(start, max(start, end))


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def rows_to_csv(rows: Iterable[ExportRow]) -> str:
    """Flat CSV with a header line; columns follow ``ExportRow`` field order."""
    columns = list(ExportRow.model_fields)
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=CSV_DELIMITER, lineterminator="\r\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_csv_value(getattr(row, column)) for column in columns])
    return buffer.getvalue()


def datev_rows(rows: Iterable[ExportRow]) -> List[ExportRow]:
    """Rows that become DATEV postings (invoices and credit notes with an amount)."""
    return [
        row for row in rows if row.kind in DATEV_POSTINGS and row.gross_amount is not None
    ]


def _datev_text(value: str, limit: Optional[int] = None) -> str:
    text = (value or "").replace("\r", " ").replace("\n", " ")
    if limit is not None:
        text = text[:limit]
    return '"' + text.replace('"', '""') + '"'


def _datev_amount(value: Decimal) -> str:
    return f"{value:.2f}".replace(".", ",")


def _fiscal_year_start(period_start: date, start_month: int) -> date:
    year = period_start.year if period_start.month >= start_month else period_start.year - 1
    return date(year, start_month, 1)


def datev_header(
    period: ExportPeriod,
    config: Settings,
    *,
    created_at: datetime,
    label: str = "Kursgebuehren",
) -> str:
    fields = [
        '"EXTF"',
        str(DATEV_FORMAT_VERSION),
        str(DATEV_CATEGORY_BOOKINGS),
        '"Buchungsstapel"',
        str(DATEV_CATEGORY_VERSION),
        created_at.strftime("%Y%m%d%H%M%S") + f"{created_at.microsecond // 1000:03d}",
        "",
        '""',
        '""',
        '""',
        str(config.datev_consultant_number),
        str(config.datev_client_number),
        _fiscal_year_start(period.date_from, config.datev_fiscal_year_start_month).strftime(
            "%Y%m%d"
        ),
        str(config.datev_account_length),
        period.date_from.strftime("%Y%m%d"),
        period.date_to.strftime("%Y%m%d"),
        _datev_text(label, 30),
        '""',
        "1",
        "0",
        "0",
        _datev_text(config.currency),
    ]
    return CSV_DELIMITER.join(fields)


def datev_line(row: ExportRow, config: Settings) -> str:
    amount = row.gross_amount if row.gross_amount is not None else Decimal("0")
    fields = [
        _datev_amount(amount),
        _datev_text(DATEV_POSTINGS[row.kind]),
        _datev_text(row.currency),
        "",
        "",
        '""',
        str(config.datev_debtor_account),
        str(config.datev_revenue_account),
        '""',
        row.issued_at.strftime("%d%m"),
        _datev_text(row.reference, 36),
        _datev_text(row.referenced_reference if row.kind == DocumentKind.STORNO.value else "", 12),
        "",
        _datev_text(row.description, DATEV_TEXT_LIMIT),
    ]
    return CSV_DELIMITER.join(fields)


def rows_to_datev_extf(
    rows: Iterable[ExportRow],
    config: Optional[Settings] = None,
    period: Optional[ExportPeriod] = None,
    *,
    created_at: Optional[datetime] = None,
) -> str:
    """
    DATEV booking batch for the given rows.

    Invoices are booked debit ("S") debtor against revenue, credit notes
    credit ("H"). ``created_at`` is stamped into the header; pass it to get
    reproducible output.
    """
    cfg = config or default_settings
    postings = datev_rows(rows)
    batch_period = period or ExportPeriod.covering(postings)
    lines = [
        datev_header(batch_period, cfg, created_at=created_at or business_now()),
        CSV_DELIMITER.join(_datev_text(column) for column in DATEV_COLUMNS),
    ]
    lines.extend(datev_line(row, cfg) for row in postings)
    return "\r\n".join(lines) + "\r\n"


def datev_export_filename(period: ExportPeriod) -> str:
    return f"datev-export_{period.date_from.isoformat()}_bis_{period.date_to.isoformat()}.zip"


def _zip_entry(name: str, stamp: date) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=(stamp.year, stamp.month, stamp.day, 0, 0, 0))
    info.compress_type = zipfile.ZIP_DEFLATED
    return info


def build_documents_zip(rows: Iterable[ExportRow], render: Renderer) -> bytes:
    """ZIP of rendered PDFs, one entry per row named ``{reference}_{kind}.pdf``."""
    buffer = io.BytesIO()
    count = 0
    with zipfile.ZipFile(buffer, "w") as archive:
        for row in rows:
            archive.writestr(_zip_entry(f"{row.reference}_{row.kind}.pdf", row.issued_at), render(row))
            count += 1
    logger.info("documents_zip.built", extra={"documents": count})
    return buffer.getvalue()


def build_datev_bundle(
    rows: Iterable[ExportRow],
    render: Renderer,
    period: ExportPeriod,
    config: Optional[Settings] = None,
    *,
    created_at: Optional[datetime] = None,
) -> bytes:
    """
    ZIP for the tax advisor: ``buchungen_extf.csv`` (DATEV), a readable
    ``buchungen_readable.csv`` and ``belege/{reference}.pdf`` receipts.
    Cancellation confirmations are not part of the bundle.
    """
    cfg = config or default_settings
    postings = datev_rows(rows)
    extf = rows_to_datev_extf(postings, cfg, period, created_at=created_at)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(
            _zip_entry("buchungen_extf.csv", period.date_to),
            extf.encode(DATEV_ENCODING, errors="replace"),
        )
        archive.writestr(
            _zip_entry("buchungen_readable.csv", period.date_to),
            rows_to_csv(postings).encode("utf-8-sig"),
        )
        for row in postings:
            archive.writestr(_zip_entry(f"belege/{row.reference}.pdf", row.issued_at), render(row))
    logger.info(
        "datev_bundle.built",
        extra={
            "postings": len(postings),
            "from": period.date_from.isoformat(),
            "to": period.date_to.isoformat(),
        },
    )
    return buffer.getvalue()
