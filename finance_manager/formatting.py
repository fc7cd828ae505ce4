"""Presentation helpers registered as template filters."""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Union

Number = Union[int, float, Decimal]
DateLike = Union[date, datetime, str]


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    elif isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime(value.year, value.month, value.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_currency(amount: Number) -> str:
    """Format ``amount`` as US dollars, e.g. ``$1,234.50``."""

    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_date(value: DateLike) -> str:
    parsed = _as_datetime(value)
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_date_short(value: DateLike) -> str:
    parsed = _as_datetime(value)
    return f"{parsed.strftime('%b')} {parsed.day}"


def format_percentage(value: Number) -> str:
    number = float(value)
    sign = "+" if number > 0 else ""
    return f"{sign}{number:.1f}%"


def days_until(value: DateLike, *, now: Optional[datetime] = None) -> int:
    """Whole days until ``value``, rounded up."""

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    seconds = (_as_datetime(value) - current).total_seconds()
    return math.ceil(seconds / 86400)


def utilization(balance: Number, limit: Number) -> int:
    """Credit utilisation as a rounded percentage."""

    if float(limit) == 0:
        return 0
    return math.floor(float(balance) / float(limit) * 100 + 0.5)


def utilization_level(percent: Number) -> str:
    if percent >= 90:
        return "critical"
    if percent >= 70:
        return "high"
    if percent >= 50:
        return "elevated"
    return "ok"


FILTERS = {
    "currency": format_currency,
    "date": format_date,
    "date_short": format_date_short,
    "days_until": days_until,
    "percentage": format_percentage,
    "utilization": utilization,
    "utilization_level": utilization_level,
}


__all__ = [
    "FILTERS",
    "days_until",
    "format_currency",
    "format_date",
    "format_date_short",
    "format_percentage",
    "utilization",
    "utilization_level",
]
