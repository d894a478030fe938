"""Area fan-out: partitioning, confirmation and merging."""

import threading
import time

import pandas as pd
import pytest

from agroweather.spatial.fanout import (
    AreaFanoutCoordinator,
    CallsDeclinedError,
    partition_cells,
    resolve_cells,
)
from agroweather.spatial.grid import GridCell

SIX_POINTS = [(0.01 + 0.1 * i, 0.01) for i in range(6)]


def daily_rows(cell, days=3):
    return pd.DataFrame({"date": [f"2021-01-0{d + 1}" for d in range(days)], "temp": [cell.grid_x * 1.0] * days})


def test_partition_is_contiguous_and_balanced():
    cells = [GridCell.from_index(i, 0) for i in range(7)]

    groups = partition_cells(cells, 3)

    assert [len(group) for group in groups] == [3, 2, 2]
    assert [cell for group in groups for cell in group] == cells
    assert partition_cells(cells[:2], 4) == [[cells[0]], [cells[1]]]
    with pytest.raises(ValueError):
        partition_cells(cells, 0)


def test_six_cells_two_workers():
    calls = []
    threads = set()
    lock = threading.Lock()

    def query(cell):
        with lock:
            calls.append((cell.grid_x, cell.grid_y))
            threads.add(threading.current_thread().name)
        return daily_rows(cell)

    table = AreaFanoutCoordinator(2, bypass_confirmation=True).run(SIX_POINTS, query)

    cells = resolve_cells(SIX_POINTS)
    assert len(cells) == 6
    assert sorted(calls) == sorted((c.grid_x, c.grid_y) for c in cells)
    assert len(threads) <= 2
    assert len(table) == 6 * 3
    assert table.columns.tolist()[:4] == ["latitude", "longitude", "grid_y", "grid_x"]
    assert table.groupby(["grid_x", "grid_y"]).size().tolist() == [3] * 6
    assert (table["temp"] == table["grid_x"]).all()


def test_results_merge_in_cell_order():
    table = AreaFanoutCoordinator(3, bypass_confirmation=True).run(SIX_POINTS, lambda cell: daily_rows(cell, 1))

    assert table["grid_x"].tolist() == sorted(table["grid_x"].tolist())


def test_confirmation_receives_call_count():
    seen = []

    def confirm(count):
        seen.append(count)
        return True

    AreaFanoutCoordinator(2, confirm=confirm).run(SIX_POINTS, daily_rows)

    assert seen == [6]


def test_declined_confirmation_makes_no_calls():
    calls = []

    with pytest.raises(CallsDeclinedError):
        AreaFanoutCoordinator(2, confirm=lambda count: False).run(SIX_POINTS, lambda cell: calls.append(cell))

    assert calls == []


def test_console_prompt_requires_yes(monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt: "no")

    with pytest.raises(CallsDeclinedError):
        AreaFanoutCoordinator(1).run(SIX_POINTS[:1], daily_rows)

    monkeypatch.setattr("builtins.input", lambda prompt: "yes")
    assert len(AreaFanoutCoordinator(1).run(SIX_POINTS[:1], daily_rows)) == 3


def test_differing_columns_are_aligned():
    def query(cell):
        table = daily_rows(cell, 1)
        if cell.grid_x % 2:
            table["extra"] = 1.5
        return table

    table = AreaFanoutCoordinator(2, bypass_confirmation=True).run(SIX_POINTS, query)

    assert "extra" in table.columns
    assert table["extra"].isna().sum() == 2


def test_cell_failure_propagates():
    def query(cell):
        if cell.grid_x == resolve_cells(SIX_POINTS)[3].grid_x:
            raise RuntimeError("boom")
        return daily_rows(cell)

    with pytest.raises(RuntimeError, match="boom"):
        AreaFanoutCoordinator(2, bypass_confirmation=True).run(SIX_POINTS, query)


def test_empty_area_rejected():
    with pytest.raises(ValueError):
        AreaFanoutCoordinator(2, bypass_confirmation=True).run([], daily_rows)


def test_cell_failure_stops_other_workers():
    cells = resolve_cells(SIX_POINTS)
    calls = []
    failing = threading.Event()
    sibling_started = threading.Event()

    def query(cell):
        calls.append(cell.grid_x)
        if cell == cells[0]:
            sibling_started.wait(timeout=5)
            failing.set()
            raise RuntimeError("boom")
        sibling_started.set()
        failing.wait(timeout=5)
        time.sleep(0.2)
        return daily_rows(cell)

    with pytest.raises(RuntimeError, match="boom"):
        AreaFanoutCoordinator(2, bypass_confirmation=True).run(SIX_POINTS, query)

    assert sorted(calls) == sorted([cells[0].grid_x, cells[3].grid_x])
