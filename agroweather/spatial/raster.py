"""Reshape a merged area table into a gridded dataset."""

from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd
import xarray as xr

TIME_COLUMNS = ("startTime", "date", "day", "time")


def _time_column(table: pd.DataFrame) -> Optional[str]:
    for column in TIME_COLUMNS:
        if column in table.columns:
            return column
    return None


def to_spatial_grid(
    table: pd.DataFrame,
    value_columns: Optional[Sequence[str]] = None,
    *,
    time_column: Optional[str] = None,
) -> xr.Dataset:
    """
    Return ``table`` as an ``xarray.Dataset`` indexed by (time, latitude, longitude).

    Only numeric value columns are carried by default; cells missing a
    (time, cell) combination hold NaN. No data is fetched. Forecast blocks
    use ``startTime`` as the time axis. A table with more than one row per
    (time, cell) raises ``ValueError``.
    """
    time_column = time_column or _time_column(table)
    index = ([time_column] if time_column else []) + ["latitude", "longitude"]
    missing = [column for column in index if column not in table.columns]
    if missing:
        raise ValueError(f"Table is missing index columns: {', '.join(missing)}")

    if value_columns is None:
        skip = set(index) | {"grid_x", "grid_y"}
        value_columns = [
            column
            for column in table.select_dtypes("number").columns
            if column not in skip
        ]

    frame = table[list(index) + list(value_columns)].copy()
    if time_column:
        frame = frame.rename(columns={time_column: "time"})
        index = ["time", "latitude", "longitude"]
        if time_column != "day":
            frame["time"] = pd.to_datetime(frame["time"])

    duplicated = frame.duplicated(subset=index)
    if duplicated.any():
        raise ValueError(
            f"{int(duplicated.sum())} rows share a ({', '.join(index)}) key; pass a finer time_column."
        )
    dataset = frame.set_index(index).sort_index().to_xarray()
    dataset["latitude"].attrs["units"] = "degrees_north"
    dataset["longitude"].attrs["units"] = "degrees_east"
    return dataset
