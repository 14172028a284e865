"""
Period key normalization.

Every merge in the forecasting core joins on a period key: the ISO string of
the first day of a month ("2025-03-01"). normalize_period_key() turns any
date-bearing value into that key. Unparseable input is returned unchanged;
callers check is_period_key() and report a data-quality warning.
"""

import re
from datetime import date, datetime
from typing import Any, Optional

_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-01$")

# Tried in order after the ISO fast path
_STRING_FORMATS = ("%Y-%m", "%Y/%m/%d", "%Y/%m", "%b %Y", "%B %Y", "%m/%Y")


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if _ISO_PREFIX.match(text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None

    for fmt in _STRING_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_period_key(value: Any) -> Any:
    """
    Canonicalize a date-like value to its first-of-month ISO key.

    >>> normalize_period_key("2025-03-17")
    '2025-03-01'
    >>> normalize_period_key(date(2025, 3, 17))
    '2025-03-01'
    >>> normalize_period_key("2025-03")
    '2025-03-01'
    >>> normalize_period_key("not a date")
    'not a date'
    """
    parsed = _to_date(value)
    if parsed is None:
        return value
    return parsed.replace(day=1).isoformat()


def is_period_key(value: Any) -> bool:
    """True if value is already a well-formed first-of-month key."""
    if not isinstance(value, str) or not _KEY_PATTERN.match(value):
        return False
    return _to_date(value) is not None


def period_key_to_date(key: Any) -> Optional[date]:
    """Parse a key back to a date (first of month), or None."""
    parsed = _to_date(key)
    return parsed.replace(day=1) if parsed else None


def period_sort_key(key: Any) -> tuple:
    """
    Chronological sort key. Malformed keys sort after every real month,
    ordered by their string form so output stays deterministic.
    """
    parsed = period_key_to_date(key)
    if parsed is None:
        return (1, date.max, str(key))
    return (0, parsed, "")


def period_label(key: Any) -> str:
    """Human label for a period key, e.g. 'Mar 2025'."""
    parsed = period_key_to_date(key)
    if parsed is None:
        return str(key)
    return parsed.strftime("%b %Y")
