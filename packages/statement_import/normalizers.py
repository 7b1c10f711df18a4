"""Cell normalizers: signed amounts, calendar dates and description text.

Each function takes one raw CSV cell and returns a typed value, or None when
the cell cannot be interpreted. They never raise on bad input; callers turn
None into a ValidationError on the transaction.
"""

import re
from datetime import date
from typing import Optional

from .config import settings
from .schemas import DateFormat

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATE_SEPARATORS = re.compile(r"[/\-.]")
_DECIMAL = re.compile(r"^(\d+(\.\d+)?|\.\d+)$")
_DEBIT_MARKER = re.compile(r"DR\.?$", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")

# Day/month/year position of each part after splitting on a separator
_PART_ORDER = {
    DateFormat.DD_MM_YYYY: ("day", "month", "year"),
    DateFormat.DD_MM_YYYY_DASH: ("day", "month", "year"),
    DateFormat.D_M_YYYY: ("day", "month", "year"),
    DateFormat.MM_DD_YYYY: ("month", "day", "year"),
    DateFormat.M_D_YYYY: ("month", "day", "year"),
    DateFormat.YYYY_MM_DD: ("year", "month", "day"),
}

TWO_DIGIT_YEAR_PIVOT = 50
MIN_YEAR = 1900
MAX_YEAR = 2100


def parse_amount(value: Optional[str]) -> Optional[float]:
    """Parse a currency cell into a signed float.

    Handles "$1,234.56", "-$12.00", "(45.00)", "45.00-", "12.50 DR" and
    currency codes such as "NZD 10". Returns None when what is left after
    stripping symbols is not a plain decimal number.
    """
    if value is None:
        return None

    normalized = str(value).strip()
    if not normalized:
        return None

    is_negative = (
        normalized.startswith("-")
        or normalized.endswith("-")
        or "(" in normalized
        or ")" in normalized
        or bool(_DEBIT_MARKER.search(normalized))
    )

    # Drop everything that is not a digit or a decimal point
    residue = re.sub(r"[^\d.]", "", normalized)
    # Anything but currency decoration left over means this is not an amount
    leftover = re.sub(r"[\d.,\s()\-+$£€¥₹]|[A-Za-z]", "", normalized)
    if leftover or not _DECIMAL.match(residue):
        return None

    amount = float(residue)
    return -abs(amount) if is_negative else amount


def _to_int(part: str) -> Optional[int]:
    part = part.strip()
    if not part.isdigit():
        return None
    return int(part)


def parse_date(
    value: Optional[str], date_format: DateFormat = DateFormat.DD_MM_YYYY
) -> Optional[str]:
    """Parse a date cell into canonical YYYY-MM-DD.

    ISO dates are accepted regardless of the declared format. Otherwise the
    value is split on "/", "-" or "." and the three parts are read in the
    format's day/month/year order. Two-digit years pivot at 50: 50-99 map
    to the 1900s, 00-49 to the 2000s. An unknown format yields None for
    anything but an ISO date.
    """
    if value is None:
        return None

    trimmed = str(value).strip()
    if not trimmed:
        return None

    if _ISO_DATE.match(trimmed):
        try:
            return date.fromisoformat(trimmed).isoformat()
        except ValueError:
            pass

    parts = _DATE_SEPARATORS.split(trimmed)
    if len(parts) != 3:
        return None

    numbers = [_to_int(p) for p in parts]
    if any(n is None for n in numbers):
        return None

    try:
        order = _PART_ORDER[DateFormat(date_format)]
    except ValueError:
        return None
    fields = dict(zip(order, numbers))
    year, month, day = fields["year"], fields["month"], fields["day"]

    if year < 100:
        year += 1900 if year >= TWO_DIGIT_YEAR_PIVOT else 2000

    if not MIN_YEAR <= year <= MAX_YEAR:
        return None

    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def sanitize_description(value: Optional[str]) -> str:
    """Strip control characters, collapse whitespace, trim and truncate."""
    if not value:
        return ""

    cleaned = _CONTROL_CHARS.sub("", str(value))
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[: settings.MAX_DESCRIPTION_LENGTH]
