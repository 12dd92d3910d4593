"""
Lenient parsing for outcome fields typed by people.

Nothing here raises: anything that does not parse becomes None and the
caller decides what that means.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Optional

from pricecast.outcomes.schemas import DEFAULT_HORIZON_DAYS, OutcomeStatus

_NUMBER_NOISE = re.compile(r"[,\s$€£%]")
_HORIZON = re.compile(r"(\d+(?:\.\d+)?)\s*(day|week|month|year)s?", re.IGNORECASE)
_UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}
MAX_HORIZON_DAYS = 3650

_TRUE = {"true", "yes", "y", "1"}
_FALSE = {"false", "no", "n", "0"}

_STATUS_ALIASES = {
    "in progress": OutcomeStatus.IN_PROGRESS,
    "in-progress": OutcomeStatus.IN_PROGRESS,
    "on track": OutcomeStatus.IN_PROGRESS,
    "success": OutcomeStatus.ACHIEVED,
    "succeeded": OutcomeStatus.ACHIEVED,
    "failed": OutcomeStatus.MISSED,
}


def parse_number(value: Any) -> Optional[float]:
    """'1,200' -> 1200.0, '$99' -> 99.0, '12.5%' -> 12.5."""
    if isinstance(value, bool) or value is None:
        return None
    text = value if isinstance(value, (int, float)) else _NUMBER_NOISE.sub("", str(value))
    try:
        number = float(text)
    except (OverflowError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return None


def parse_status(value: Any) -> Optional[OutcomeStatus]:
    if value is None:
        return None
    text = str(value).strip().lower()
    try:
        return OutcomeStatus(text.replace(" ", "_"))
    except ValueError:
        return _STATUS_ALIASES.get(text)


def parse_horizon_days(value: Any) -> int:
    """
    Days from 90, '90', '12 weeks' or '2.5 months'.

    Anything unparseable, non-positive or beyond MAX_HORIZON_DAYS falls back
    to the default.
    """
    days = None
    number = parse_number(value)
    if number is not None:
        days = number
    elif isinstance(value, str):
        match = _HORIZON.search(value)
        if match:
            days = float(match.group(1)) * _UNIT_DAYS[match.group(2).lower()]
    if days is None or not 1 <= days <= MAX_HORIZON_DAYS:
        return DEFAULT_HORIZON_DAYS
    return int(days)
