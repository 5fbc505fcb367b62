"""Date literal handling for filter values and task timestamps."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta

# Vikunja serializes unset dates as the zero time
VIKUNJA_NULL_DATE_PREFIX = "0001-01-01"

_RELATIVE_RE = re.compile(r"now(?:\s*([+-])\s*(\d+)\s*([smhdw]))?", re.IGNORECASE)
_DATE_ONLY_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def is_date_only(value: object) -> bool:
    """Whether a filter value is a calendar date without a time part."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and _DATE_ONLY_RE.fullmatch(value.strip()) is not None


def parse_filter_date(value: object, now: datetime | None = None) -> datetime | None:
    """Parse a date-like value into an aware UTC datetime.

    Accepts ``datetime``/``date`` objects, ISO 8601 strings (a trailing ``Z`` is
    allowed, naive values are taken as UTC) and relative expressions such as
    ``now``, ``now+7d`` or ``now-2h``.

    Args:
        value: Value to parse
        now: Reference time for relative expressions (defaults to current UTC time)

    Returns:
        datetime | None: Parsed timestamp, or None when the value is not a date
            or is Vikunja's unset zero date
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text or text.startswith(VIKUNJA_NULL_DATE_PREFIX):
            return None
        relative = _RELATIVE_RE.fullmatch(text)
        if relative:
            reference = now or datetime.now(UTC)
            sign, amount, unit = relative.groups()
            if sign is None:
                return reference
            try:
                delta = timedelta(seconds=int(amount) * _UNIT_SECONDS[unit.lower()])
                return reference + delta if sign == "+" else reference - delta
            except OverflowError:
                return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.year == 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError:
        # offsets can push dates near year 9999 out of range
        return None
