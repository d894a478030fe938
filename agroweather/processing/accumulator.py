"""Stitch per-chunk API fragments into one table."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

ACCUMULATED_MARKER = "accumulated"
METADATA_MARKERS = ("_links", ".units")
NESTED_COLUMNS = ("soilTemperatures", "soilMoisture")
LEAP_DAY_SUFFIX = "02-29"


def strip_metadata_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Drop pagination links, unit annotations and nested list columns."""
    drop = [
        column
        for column in df.columns
        if any(marker in str(column) for marker in METADATA_MARKERS) or column in NESTED_COLUMNS
    ]
    return df.drop(columns=drop) if drop else df


def accumulated_columns(df: pd.DataFrame) -> List[str]:
    return [
        column
        for column in df.columns
        if ACCUMULATED_MARKER in str(column) and not any(marker in str(column) for marker in METADATA_MARKERS)
    ]


def recalculate_accumulations(fragments: Sequence[pd.DataFrame]) -> List[pd.DataFrame]:
    """
    Turn per-chunk running totals into one continuous running total.

    The server restarts every accumulation at the first day of each request,
    so each fragment after the first is offset by the last row of the
    (already corrected) fragment before it.
    """
    corrected: List[pd.DataFrame] = []
    last_values: Optional[pd.Series] = None

    for fragment in fragments:
        fragment = fragment.copy()
        columns = accumulated_columns(fragment)
        if last_values is not None:
            for column in columns:
                offset = last_values.get(column)
                if offset is not None and pd.notna(offset):
                    fragment[column] = fragment[column] + offset
        if not fragment.empty and columns:
            last_values = fragment[columns].iloc[-1]
        corrected.append(fragment)

    return corrected


def drop_leap_days(df: pd.DataFrame, column: str) -> pd.DataFrame:
    if column not in df.columns or df.empty:
        return df
    mask = df[column].astype(str).str.endswith(LEAP_DAY_SUFFIX)
    return df.loc[~mask].reset_index(drop=True)


def _hashable_columns(df: pd.DataFrame) -> List[str]:
    columns = []
    for column in df.columns:
        values = df[column].dropna()
        if values.map(lambda value: isinstance(value, (list, dict))).any():
            continue
        columns.append(column)
    return columns


def accumulate(
    fragments: Sequence[pd.DataFrame],
    *,
    stitch_accumulations: bool = True,
    drop_leap_day: bool = False,
    date_column: str = "date",
) -> pd.DataFrame:
    """
    Combine chunk fragments into the final table.

    Fragments are corrected for accumulation resets (when requested), then
    concatenated in order, exact duplicate rows removed, metadata columns
    dropped and, on request, Feb 29 rows removed.
    """
    frames = [fragment for fragment in fragments if fragment is not None]
    if not frames:
        return pd.DataFrame()

    if stitch_accumulations and len(frames) > 1 and any(accumulated_columns(frame) for frame in frames):
        frames = recalculate_accumulations(frames)

    table = pd.concat(frames, ignore_index=True, sort=False)
    table = strip_metadata_columns(table)

    before = len(table)
    table = table.drop_duplicates(subset=_hashable_columns(table) or None).reset_index(drop=True)
    if len(table) != before:
        logger.debug("Dropped %d duplicate rows across chunk boundaries", before - len(table))

    if drop_leap_day:
        table = drop_leap_days(table, date_column)

    return table
