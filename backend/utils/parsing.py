"""Shared parsing utilities for user-supplied transaction values.

Centralises the cell parsing that CSV import and form entry both need:
numbers carrying currency symbols or thousands separators, and dates that
may carry a time component which must be truncated to the calendar day.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]+")

_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%d.%m.%Y", "%Y/%m/%d")


def parse_decimal(value) -> Decimal | None:
    """Parse a number that may carry currency symbols or separators.

    Handles:
    - "1,234.50" and "$1,234.50" -> Decimal("1234.50")
    - " 0.25 " -> Decimal("0.25")
    - Decimal/int/float values passed through

    Args:
        value: A string, number, or None.

    Returns:
        The parsed Decimal, or None if the value is empty or not numeric.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        result = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result


def parse_trade_date(value) -> date | None:
    """Parse a trade date, truncating any time component.

    Handles:
    - ISO dates and datetimes ("2024-01-15", "2024-01-15T10:30:00Z",
      "2024-01-15 10:30:00")
    - US and European style dates ("01/15/2024", "15.01.2024")
    - date/datetime objects

    Args:
        value: A string, date, datetime, or None.

    Returns:
        The calendar date, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    value_str = str(value).strip()
    if not value_str:
        return None

    # Keep only the date portion: "2024-01-15 10:30" / "2024-01-15T10:30:00Z"
    day_part = value_str.split(" ")[0].split("T")[0]

    try:
        return date.fromisoformat(day_part)
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(day_part, fmt).date()
        except ValueError:
            continue
    return None
