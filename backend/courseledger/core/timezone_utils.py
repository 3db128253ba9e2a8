"""
Business-calendar helpers.

Issued and effective dates are calendar dates in the deployment's fixed
business timezone, never UTC midnight.
"""

from datetime import date, datetime, timezone
from typing import Optional

import pytz

from .config import settings


def get_business_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.business_timezone)


def business_now() -> datetime:
    """Current datetime in the business timezone."""
    return datetime.now(get_business_timezone())


def business_today() -> date:
    """Today's date in the business timezone."""
    return business_now().date()


def to_business_date(value: Optional[datetime]) -> Optional[date]:
    """
    Convert a timestamp to its calendar date in the business timezone.

    Naive datetimes are assumed to be UTC, matching how SQLite returns
    ``DateTime(timezone=True)`` columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_business_timezone()).date()


def parse_calendar_date(value: object) -> Optional[date]:
    """
    Parse a calendar date from a ``date``, ``datetime`` or ISO string.

    Returns None for empty or unparseable input. Datetimes and timestamp
    strings are projected into the business timezone first, so an instant
    keeps its business-calendar day whatever offset it was written in.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_business_date(value)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            # Python < 3.11 does not accept the "Z" suffix
            if text.endswith(("Z", "z")):
                text = f"{text[:-1]}+00:00"
            return to_business_date(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None
