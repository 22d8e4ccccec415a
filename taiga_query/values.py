"""
Value coercion helpers shared by the parser and the executor.

Helpers (safe conversion of untyped API values and query literals):
  to_numeric(value)              -- int/float or None
  to_datetime(value)             -- timezone-aware datetime or None
  is_time_keyword(value)         -- relative time vocabulary check
  resolve_time_keyword(value, now) -- keyword -> datetime
  is_empty(value)                -- None/blank/empty container check
  js_string(value)               -- stringify the way the Taiga web client does
  collation_key(text)            -- accent- and case-insensitive sort key
"""

import re
import unicodedata
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Tuple, Union

from .grammar import RELATIVE_TIME_PATTERN, RELATIVE_TIME_UNITS, TIME_KEYWORDS


Number = Union[int, float]

_NUMERIC_RE = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')


def is_number(value: Any) -> bool:
    """Return True for real numbers, excluding booleans."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_numeric(value: Any) -> Optional[Number]:
    """Coerce a value to a number.

    Args:
        value: Raw record value or query literal

    Returns:
        The number, or None if the value is not numeric
    """
    if is_number(value):
        if isinstance(value, float) and value != value:
            return None
        return value
    if isinstance(value, str):
        text = value.strip()
        if not _NUMERIC_RE.match(text):
            return None
        number = float(text)
        if number.is_integer() and '.' not in text and 'e' not in text.lower():
            return int(text)
        return number
    return None


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a value to a timezone-aware datetime.

    Naive values are assumed to be UTC. Numbers are read as epoch
    milliseconds, matching the timestamps the Taiga front end emits.

    Args:
        value: datetime, date, ISO-8601 string, or epoch milliseconds

    Returns:
        Aware datetime, or None if the value cannot be read as a date
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text or to_numeric(text) is not None:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            return None
    elif is_number(value):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_time_keyword(value: Any) -> bool:
    """Check whether a literal belongs to the relative time vocabulary."""
    if not isinstance(value, str):
        return False
    text = value.strip().lower()
    return text in TIME_KEYWORDS or RELATIVE_TIME_PATTERN.match(text) is not None


def resolve_time_keyword(value: Any, now: datetime) -> Optional[datetime]:
    """Resolve a relative time keyword against a reference time.

    Named keywords resolve to the start of the period (midnight UTC);
    ``<n><unit>`` keywords resolve to ``now`` minus the duration.

    Args:
        value: Keyword such as ``today``, ``this_week`` or ``7d``
        now: Aware reference time

    Returns:
        The resolved datetime, or None if the value is not a keyword
    """
    if not isinstance(value, str):
        return None
    text = value.strip().lower()

    match = RELATIVE_TIME_PATTERN.match(text)
    if match:
        amount = int(match.group(1))
        hours = RELATIVE_TIME_UNITS[match.group(2)]
        return now - timedelta(hours=amount * hours)

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if text == 'today':
        return midnight
    if text == 'yesterday':
        return midnight - timedelta(days=1)
    if text == 'this_week':
        return midnight - timedelta(days=midnight.weekday())
    if text == 'last_week':
        return midnight - timedelta(days=midnight.weekday() + 7)
    if text == 'this_month':
        return midnight.replace(day=1)
    if text == 'last_month':
        first = midnight.replace(day=1)
        if first.month == 1:
            return first.replace(year=first.year - 1, month=12)
        return first.replace(month=first.month - 1)
    return None


def is_empty(value: Any) -> bool:
    """Check whether a value counts as empty.

    None, blank strings, empty sequences and objects without keys are empty.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def js_string(value: Any) -> str:
    """Stringify a value so that booleans, integral floats and lists
    render the same way they do in the Taiga web client."""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ','.join('' if item is None else js_string(item) for item in value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def collation_key(text: str) -> Tuple[str, str, str]:
    """Sort key approximating a locale-aware, case-insensitive comparison.

    Strings order by their unaccented letters first; accents and then case
    only break ties, lowercase before uppercase.
    """
    decomposed = unicodedata.normalize('NFKD', text)
    base = ''.join(char for char in decomposed if not unicodedata.combining(char))
    return base.casefold(), decomposed.casefold(), text.swapcase()
