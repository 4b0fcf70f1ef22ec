"""
Serialization helpers for money and dates.

Money is kept as Decimal end to end and only quantized here, when a value
leaves the service.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal('0.01')


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Optional[str]:
    """Decimal → '12.50'. None stays None."""
    if value is None:
        return None
    return str(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def iso(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def display_date(value, date_format: str) -> Optional[str]:
    """Render a date with the configured display format (caller passes it in)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(date_format)


def format_money(value, currency: str) -> str:
    return f"{currency} {money(value)}"
