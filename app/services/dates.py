"""
Calendar-day comparisons used by the streak logic.

Aware datetimes are converted to the activity zone (server local time when
no zone is given). Naive datetimes are taken as local wall-clock time.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Optional


def local_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of `moment` in `tz` (or the server's local zone)."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def is_same_day(a: datetime, b: datetime, tz: Optional[tzinfo] = None) -> bool:
    return local_date(a, tz) == local_date(b, tz)


def are_consecutive_days(a: datetime, b: datetime, tz: Optional[tzinfo] = None) -> bool:
    """True if `a` falls on the calendar day right after `b`."""
    return local_date(a, tz) == local_date(b, tz) + timedelta(days=1)
