"""
Identifier, money and date helpers.

Small but load-bearing: record matching depends on ids, and every monthly
grouping depends on the YYYY-MM key being derived the same way everywhere.
"""

import calendar
import re
import time
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union
from uuid import uuid4


MAX_TEXT = 80

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MONTH_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}$")

DateLike = Union[date, str]


# =============================================================================
# IDENTIFIERS
# =============================================================================

def new_id(prefix: str) -> str:
    """
    Generate an opaque record id such as ``tx_3f9a1c0b2d4e_1704412800000``.

    The prefix tells a human what kind of record it is; nothing parses it.
    """
    return f"{prefix}_{uuid4().hex[:12]}_{int(time.time() * 1000)}"


# =============================================================================
# MONEY
# =============================================================================

def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Coerce a number or numeric string to a finite Decimal.

    Accepts a comma as decimal separator ("12,5"). Returns None for
    anything else (bools, NaN, infinities, garbage).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def to_positive_amount(value: Any) -> Optional[Decimal]:
    """Coerce to a Decimal strictly greater than zero, or None."""
    amount = to_decimal(value)
    if amount is None or amount <= 0:
        return None
    return amount


def format_money(amount: Union[Decimal, int, float]) -> str:
    """Format as ``$1234.50`` / ``-$12.00``."""
    value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):.2f}"


def money_to_json(value: Decimal) -> Union[int, float]:
    """JSON representation of a money amount: int when integral."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# =============================================================================
# DATES
# =============================================================================

def today() -> date:
    return date.today()


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse a canonical ``YYYY-MM-DD`` string (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def parse_iso_date_or_today(value: Any) -> date:
    return parse_iso_date(value) or today()


def coerce_date(value: DateLike) -> date:
    parsed = parse_iso_date(value)
    if parsed is None:
        raise ValueError(f"Not a YYYY-MM-DD date: {value!r}")
    return parsed


def month_key(value: DateLike) -> str:
    """``date(2024, 1, 5)`` -> ``"2024-01"``. Month keys pass through."""
    if isinstance(value, str) and MONTH_KEY_PATTERN.match(value):
        return value
    day = coerce_date(value)
    return f"{day.year:04d}-{day.month:02d}"


def days_of_month(key: DateLike) -> list[date]:
    """Every calendar day of the month identified by ``key``."""
    year, month = (int(part) for part in month_key(key).split("-"))
    _, last = calendar.monthrange(year, month)
    return [date(year, month, day) for day in range(1, last + 1)]


def clamp_text(value: Any, fallback: str = "", max_length: int = MAX_TEXT) -> str:
    """Trim and truncate free text; non-strings become ``fallback``."""
    if not isinstance(value, str):
        return fallback
    return value.strip()[:max_length]
