"""
Period keys.

A period is a calendar month written as ``YYYY-MM``. Expenses and
settlements are bucketed by period, and every balance is computed for
one period (or a set of them) at a time.
"""

import re
from datetime import date
from typing import Annotated, Iterable, Optional, Union

from pydantic import StringConstraints

PERIOD_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

Period = Annotated[str, StringConstraints(pattern=PERIOD_PATTERN)]

_PERIOD_RE = re.compile(PERIOD_PATTERN)


def month_key(d: Optional[date] = None) -> str:
    """Return the period key for a date (today if omitted)."""
    d = d or date.today()
    return f"{d.year}-{d.month:02d}"


def parse_period(key: str) -> tuple[int, int]:
    """Split a period key into (year, month), rejecting malformed keys."""
    if not isinstance(key, str) or not _PERIOD_RE.match(key):
        raise ValueError(f"Invalid period key: {key!r} (expected YYYY-MM)")
    year, month = key.split("-")
    return int(year), int(month)


def previous_period(key: str) -> str:
    year, month = parse_period(key)
    if month == 1:
        return f"{year - 1}-12"
    return f"{year}-{month - 1:02d}"


def next_period(key: str) -> str:
    year, month = parse_period(key)
    if month == 12:
        return f"{year + 1}-01"
    return f"{year}-{month + 1:02d}"


def last_periods(count: int = 12, today: Optional[date] = None) -> list[str]:
    """
    The ``count`` most recent periods ending with the current one,
    newest first.
    """
    if count < 1:
        return []
    keys = [month_key(today)]
    while len(keys) < count:
        keys.append(previous_period(keys[-1]))
    return keys


def normalize_periods(
    periods: Union[str, Iterable[str], None],
) -> Optional[frozenset[str]]:
    """
    Turn a period filter argument into a set of keys.

    ``None`` means "no filter". A bare string is a single period.
    """
    if periods is None:
        return None
    if isinstance(periods, str):
        return frozenset([periods])
    return frozenset(periods)
