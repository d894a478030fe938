"""Spatial reshape and CSV export of area tables."""

import numpy as np
import pandas as pd
import pytest

from agroweather.exporters import TableExporter
from agroweather.spatial.raster import to_spatial_grid


def area_table():
    rows = []
    for lat, lon, gy, gx in [(0.04, 0.04, 1, 1), (0.04, 0.125, 1, 2), (0.125, 0.04, 2, 1)]:
        for day, value in (("2024-06-01", 1.0), ("2024-06-02", 2.0)):
            rows.append(
                {"latitude": lat, "longitude": lon, "grid_y": gy, "grid_x": gx, "date": day, "precip": value * gx, "note": "ok"}
            )
    return pd.DataFrame(rows)


def test_table_reshaped_to_grid():
    dataset = to_spatial_grid(area_table())

    assert dict(dataset.sizes) == {"time": 2, "latitude": 2, "longitude": 2}
    assert list(dataset.data_vars) == ["precip"]
    assert dataset["precip"].sel(time=pd.Timestamp("2024-06-02"), latitude=0.04, longitude=0.125).item() == 4.0
    assert np.isnan(dataset["precip"].sel(time=pd.Timestamp("2024-06-01"), latitude=0.125, longitude=0.125).item())
    assert dataset["latitude"].attrs["units"] == "degrees_north"


def test_table_without_time_column():
    table = area_table().drop(columns="date").drop_duplicates(["latitude", "longitude"])

    dataset = to_spatial_grid(table, ["precip"])

    assert set(dataset.dims) == {"latitude", "longitude"}


def test_missing_coordinates_rejected():
    with pytest.raises(ValueError, match="latitude"):
        to_spatial_grid(pd.DataFrame({"date": ["2024-06-01"], "precip": [1.0]}))


def test_table_exporter_writes_csv(tmp_path):
    exporter = TableExporter(tmp_path / "out")

    target = exporter.save("area", area_table())

    assert target == tmp_path / "out" / "area.csv"
    assert len(pd.read_csv(target)) == 6
    assert exporter.save("empty.csv", pd.DataFrame()) is None
    with pytest.raises(ValueError):
        exporter.save("", area_table())


def hourly_forecast_table():
    return pd.DataFrame(
        {
            "latitude": [0.04] * 24,
            "longitude": [0.04] * 24,
            "grid_y": [1] * 24,
            "grid_x": [1] * 24,
            "date": ["2024-06-15"] * 24,
            "startTime": [f"2024-06-15T{hour:02d}:00:00" for hour in range(24)],
            "temperatures.value": [float(hour) for hour in range(24)],
        }
    )


def test_forecast_blocks_keep_every_hour():
    dataset = to_spatial_grid(hourly_forecast_table())

    assert dataset.sizes["time"] == 24
    assert dataset["temperatures.value"].values.ravel().tolist() == [float(hour) for hour in range(24)]


def test_ambiguous_rows_rejected():
    with pytest.raises(ValueError, match="23 rows share"):
        to_spatial_grid(hourly_forecast_table(), time_column="date")
