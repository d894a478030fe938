from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Tuple

# Day-of-year of Feb 29 in a leap year.
LEAP_DAY_OF_YEAR = 60

# Anchor year for recurring windows that never touch a leap year; 2001 and
# 2002 are both common years so a wrapped window stays 365-day aligned.
COMMON_ANCHOR_YEAR = 2001


def iter_days(start: dt.date, end: dt.date) -> Iterable[dt.date]:
    """Yield every date between start and end (inclusive)."""
    cursor = start
    while cursor <= end:
        yield cursor
        cursor += dt.timedelta(days=1)


def iter_date_windows(start: dt.date, end: dt.date, window_days: int) -> Iterable[Tuple[dt.date, dt.date]]:
    """Yield (start, end) pairs walking forward in ``window_days`` increments."""
    if window_days <= 0:
        window_days = 1
    current = start
    while current <= end:
        window_end = min(end, current + dt.timedelta(days=window_days - 1))
        yield current, window_end
        current = window_end + dt.timedelta(days=1)


def date_span_days(start: dt.date, end: dt.date) -> int:
    """Return the number of calendar days covered by the inclusive span."""
    return (end - start).days + 1


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range; ``end`` defaults to ``start`` for single-day requests."""

    start: dt.date
    end: Optional[dt.date] = None

    def __post_init__(self) -> None:
        if self.end is None:
            object.__setattr__(self, "end", self.start)
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} is before start {self.start}.")

    def __len__(self) -> int:
        return date_span_days(self.start, self.end)

    def __contains__(self, day: dt.date) -> bool:
        return self.start <= day <= self.end

    def days(self) -> List[dt.date]:
        return list(iter_days(self.start, self.end))

    def month_days(self) -> Tuple[str, str]:
        """Return the ``MM-DD`` pair used by the recurring (norms) endpoints."""
        return self.start.strftime("%m-%d"), self.end.strftime("%m-%d")


def plan_chunks(date_range: DateRange, page_size: int) -> List[DateRange]:
    """
    Split ``date_range`` into contiguous chunks of at most ``page_size`` days.

    All chunks but the last hold exactly ``page_size`` days; the last holds the
    remainder. The plan is pure and can be recomputed from any position.
    """
    if page_size < 1:
        raise ValueError("page_size must be a positive number of days.")
    return [
        DateRange(window_start, window_end)
        for window_start, window_end in iter_date_windows(date_range.start, date_range.end, page_size)
    ]


def _parse_month_day(value: str, year: int) -> dt.date:
    month, day = (int(part) for part in value.split("-"))
    return dt.date(year, month, day)


@dataclass(frozen=True)
class RecurringWindow:
    """
    A yearless ``MM-DD`` window requested over a span of years.

    Used by the norms endpoints: the server averages every requested year for
    each calendar day inside the window.
    """

    month_day_start: str
    month_day_end: str
    year_start: int
    year_end: int
    exclude_years: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "exclude_years", frozenset(int(year) for year in self.exclude_years))

    @property
    def years(self) -> List[int]:
        return [
            year
            for year in range(int(self.year_start), int(self.year_end) + 1)
            if year not in self.exclude_years
        ]

    @property
    def wraps_year(self) -> bool:
        return self.month_day_end < self.month_day_start

    @property
    def includes_leap_year(self) -> bool:
        return any(is_leap_year(year) for year in self.years)

    def anchor_year(self) -> int:
        leap_years = [year for year in self.years if is_leap_year(year)]
        return leap_years[-1] if leap_years else COMMON_ANCHOR_YEAR

    def anchor(self) -> DateRange:
        return anchor_recurring_window(self)


def anchor_recurring_window(window: RecurringWindow) -> DateRange:
    """
    Pin a recurring window to concrete dates so it can be chunked.

    Both month-days are placed in the anchor year (a requested leap year when
    there is one). A window that wraps the year boundary is then stretched by
    one year: when the start falls after Feb 29 the start moves back 366 days,
    otherwise the end moves forward 366 days. Either way the span crosses Feb 29
    of the anchor year exactly once. Without a leap year the shift is 365 days.
    """
    year = window.anchor_year()
    start = _parse_month_day(window.month_day_start, year)
    end = _parse_month_day(window.month_day_end, year)

    if end < start:
        if window.includes_leap_year:
            if start.timetuple().tm_yday > LEAP_DAY_OF_YEAR:
                start = start - dt.timedelta(days=366)
            else:
                end = end + dt.timedelta(days=366)
        else:
            end = end.replace(year=year + 1)

    return DateRange(start, end)
