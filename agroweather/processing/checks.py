"""Post-hoc completeness checks; problems are reported as warnings, never raised."""

from __future__ import annotations

import warnings
from typing import Iterable, Optional

import pandas as pd

from ..core.dates import DateRange, RecurringWindow


class DataQualityWarning(UserWarning):
    """Emitted when a returned table does not match the request."""


def _warn_incomplete_rows(df: pd.DataFrame, ignore: Iterable[str] = ()) -> None:
    columns = [column for column in df.columns if column not in set(ignore)]
    if not columns or df.empty:
        return
    incomplete = df[columns].isna().any(axis=1)
    if incomplete.any():
        rows = ", ".join(str(index) for index in df.index[incomplete])
        warnings.warn(f"Missing data in rows {rows}; check data before continuing.", DataQualityWarning, stacklevel=3)


def _warn_row_count(df: pd.DataFrame, expected: int) -> None:
    if len(df) != expected:
        warnings.warn(
            f"Incorrect number of rows returned: expected {expected}, got {len(df)}.",
            DataQualityWarning,
            stacklevel=3,
        )


def check_daily_return(df: pd.DataFrame, date_range: DateRange, *, dropped_leap_days: int = 0) -> None:
    _warn_row_count(df, len(date_range) - dropped_leap_days)
    _warn_incomplete_rows(df)


def expected_norm_rows(window: RecurringWindow, include_feb29: bool = True) -> int:
    """One row per calendar day of the window, counting Feb 29 only when it is kept."""
    anchored = window.anchor()
    days = len(anchored)
    if not include_feb29:
        days -= sum(1 for day in anchored.days() if day.month == 2 and day.day == 29)
    return days


def check_norms_return(df: pd.DataFrame, window: RecurringWindow, include_feb29: bool = True) -> None:
    _warn_row_count(df, expected_norm_rows(window, include_feb29))
    _warn_incomplete_rows(df)


def check_forecast_return(
    df: pd.DataFrame,
    date_range: DateRange,
    block_size: int,
    ignore: Optional[Iterable[str]] = None,
) -> None:
    _warn_row_count(df, len(date_range) * (24 // block_size))
    if ignore is None and block_size == 1:
        # hourly blocks never carry min/max humidity or wind
        ignore = [
            column
            for column in df.columns
            if column.startswith("relativeHumidity.m") or column.startswith("wind.m")
        ]
    _warn_incomplete_rows(df, ignore or ())
