# backend/courseledger/services/proration.py
"""
First-month proration for weekly subscriptions.

A weekly course booked mid-month is billed for the remaining calendar days
of that month, start day included. Amounts are ``Decimal`` and rounded half
up to the cent; days are counted on the business calendar, never in UTC.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from ..core.exceptions import ValidationException
from ..core.timezone_utils import parse_calendar_date
from .offer_taxonomy import is_weekly_recurring

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ProrationResult:
    days_in_month: int
    days_remaining: int
    factor: Decimal
    first_month_price: Decimal
    monthly_price: Decimal


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any) -> Optional[Decimal]:
    """
    Coerce a price to ``Decimal``.

    Returns None for missing, non-numeric, non-finite or negative input.
    Floats go through ``str`` so ``19.99`` stays ``19.99``.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        elif isinstance(value, str) and value.strip():
            amount = Decimal(value.strip().replace(",", "."))
        else:
            return None
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def prorate_first_month(start_date: Any, monthly_price: Any) -> Optional[ProrationResult]:
    """
    Price of the first, partial month.

    Returns None when ``start_date`` is not a calendar date or the price is
    not a finite non-negative number.
    """
    start = parse_calendar_date(start_date)
    price = parse_money(monthly_price)
    if start is None or price is None:
        return None

    days_in_month = monthrange(start.year, start.month)[1]
    days_remaining = min(max(0, days_in_month - start.day + 1), days_in_month)
    factor = min(Decimal(1), max(Decimal(0), Decimal(days_remaining) / Decimal(days_in_month)))
    first_month_price = to_money(price * Decimal(days_remaining) / Decimal(days_in_month))

    return ProrationResult(
        days_in_month=days_in_month,
        days_remaining=days_remaining,
        factor=factor,
        first_month_price=first_month_price,
        monthly_price=to_money(price),
    )


def resolve_booking_price(offer: Any, start_date: Optional[date] = None) -> Decimal:
    """
    Amount a booking of ``offer`` is billed on its participation document.

    Weekly subscriptions starting on ``start_date`` are prorated; everything
    else is charged the flat monthly price. An offer without a price bills
    0.00.
    """
    raw_price = getattr(offer, "monthly_price", None)
    if raw_price is None:
        return ZERO

    price = parse_money(raw_price)
    if price is None:
        raise ValidationException(
            "Offer price must be a finite, non-negative amount",
            field="monthly_price",
            details={"value": str(raw_price)},
        )

    if start_date is None or not is_weekly_recurring(offer):
        return to_money(price)

    proration = prorate_first_month(start_date, price)
    if proration is None:
        raise ValidationException(
            "Start date is not a valid calendar date",
            field="start_date",
            details={"value": str(start_date)},
        )
    return proration.first_month_price
