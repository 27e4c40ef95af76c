"""
time_utils.py — Evaluation-instant helpers.

Every age-based classification is evaluated at an explicit instant; nothing in
the derivation rules reads the wall clock. The only clock read lives in
`today()`, which stores use as their default instant.

Usage:
    from rbi_shared.time_utils import age_at, to_date

    age_at(date(2026, 10, 18), date(1966, 10, 19))   # 59
    age_at(date(2026, 10, 19), date(1966, 10, 19))   # 60
    to_date("2026-10-18T08:00:00+08:00")             # date(2026, 10, 18)
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from dateutil.parser import isoparse


def age_at(as_of: date, birth_date: date) -> int:
    """
    Completed years between *birth_date* and *as_of*.

    A person born on 29 February turns a year older on 1 March in common
    years. Returns 0 for birth dates after *as_of*.
    """
    if birth_date > as_of:
        return 0
    had_birthday = (as_of.month, as_of.day) >= (birth_date.month, birth_date.day)
    return as_of.year - birth_date.year - (0 if had_birthday else 1)


def to_date(value: date | datetime | str) -> date:
    """
    Normalize an evaluation instant to a calendar date.

    Accepts a date, a datetime (timezone-aware values are taken in their own
    zone), or an ISO-8601 date / datetime string.

    Raises:
        ValueError: the string is not ISO-8601.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return isoparse(value.strip()).date()


def today() -> date:
    """Current UTC calendar date."""
    return datetime.now(timezone.utc).date()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
