"""Calendar-month time buckets.

Every response is attributed to the calendar month containing the moment it
was submitted, evaluated in UTC so that server and client timezones never
disagree about which month is "current".
"""

from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


class Period(NamedTuple):
    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def display(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    def next(self) -> "Period":
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> "Period":
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    @classmethod
    def of(cls, year: int, month: int) -> "Period":
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        if year < 1:
            raise ValueError(f"year must be positive, got {year}")
        return cls(year, month)

    @classmethod
    def parse(cls, label: str) -> "Period":
        """Parse a ``YYYY-MM`` label."""
        try:
            year_str, month_str = label.strip().split("-")
            return cls.of(int(year_str), int(month_str))
        except ValueError as e:
            raise ValueError(f"invalid period label {label!r}") from e


def _as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        # naive datetimes are taken to already be UTC
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def current_period(now: Optional[datetime] = None) -> Period:
    utc_now = _as_utc(now)
    return Period(utc_now.year, utc_now.month)


def is_future(period: Period, now: Optional[datetime] = None) -> bool:
    return period > current_period(now)


def periods_between(start: Period, end: Period) -> List[Period]:
    """All months from ``start`` to ``end``, both inclusive."""
    periods = []
    cursor = start
    while cursor <= end:
        periods.append(cursor)
        cursor = cursor.next()
    return periods
