"""Run a point query for every grid cell of an area and merge the results."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from ..clients.base import BatchExecutorMixin
from .grid import AreaLike, GridCell, build_grid, cells_from_points

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 2

ConfirmFn = Callable[[int], bool]
CellQuery = Callable[[GridCell], pd.DataFrame]


class CallsDeclinedError(RuntimeError):
    """Raised when the user declines to make the API calls an area query needs."""


def prompt_for_confirmation(call_count: int) -> bool:
    """Ask on the console; only an explicit ``yes`` proceeds."""
    print(f"This query will require {call_count} API calls.")
    answer = input("Do you wish to proceed? Type yes to begin API calls: ")
    return answer.strip().lower() == "yes"


def partition_cells(cells: Sequence[GridCell], worker_count: int) -> List[List[GridCell]]:
    """Split cells into ``worker_count`` contiguous groups whose sizes differ by at most one."""
    if worker_count < 1:
        raise ValueError("worker_count must be at least 1.")
    cells = list(cells)
    base, extra = divmod(len(cells), worker_count)
    groups: List[List[GridCell]] = []
    start = 0
    for index in range(worker_count):
        size = base + (1 if index < extra else 0)
        if size:
            groups.append(cells[start : start + size])
        start += size
    return groups


def _is_point_list(area) -> bool:
    if isinstance(area, (str, dict)) or not isinstance(area, (list, tuple)):
        return False
    return all(isinstance(item, (list, tuple)) and len(item) == 2 for item in area)


def resolve_cells(area: Union[AreaLike, Iterable[Tuple[float, float]]]) -> List[GridCell]:
    if _is_point_list(area):
        return cells_from_points(area)
    return build_grid(area)


def tag_cell(table: pd.DataFrame, cell: GridCell) -> pd.DataFrame:
    """Prefix the cell coordinates and indices so merged rows stay traceable."""
    table = table.copy()
    for column in ("latitude", "longitude", "grid_y", "grid_x"):
        if column in table.columns:
            table = table.drop(columns=column)
    table.insert(0, "grid_x", cell.grid_x)
    table.insert(0, "grid_y", cell.grid_y)
    table.insert(0, "longitude", cell.lon)
    table.insert(0, "latitude", cell.lat)
    return table


class AreaFanoutCoordinator(BatchExecutorMixin):
    """
    Fan a per-cell query out over a fixed-size thread pool.

    Cells are split statically into ``worker_count`` contiguous groups; each
    worker handles its group sequentially. Before any call is made the total
    call count must be confirmed, unless ``bypass_confirmation`` is set.
    """

    def __init__(
        self,
        worker_count: int = DEFAULT_WORKERS,
        *,
        bypass_confirmation: bool = False,
        confirm: Optional[ConfirmFn] = None,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1.")
        self.worker_count = worker_count
        self.bypass_confirmation = bypass_confirmation
        self.confirm = confirm

    def _confirm(self, call_count: int) -> None:
        if self.bypass_confirmation:
            return
        confirm = self.confirm or prompt_for_confirmation
        if not confirm(call_count):
            raise CallsDeclinedError("User declined to proceed with the API calls.")

    def run(
        self,
        area: Union[AreaLike, Iterable[Tuple[float, float]]],
        per_cell_query: CellQuery,
    ) -> pd.DataFrame:
        cells = resolve_cells(area)
        if not cells:
            raise ValueError("The area does not cover any grid cell.")
        self._confirm(len(cells))

        groups = partition_cells(cells, self.worker_count)
        logger.info("Requesting %d cells across %d workers", len(cells), len(groups))

        def query_cell(cell: GridCell) -> pd.DataFrame:
            try:
                return tag_cell(per_cell_query(cell), cell)
            except Exception:
                logger.error("Query failed for cell (%d, %d)", cell.grid_x, cell.grid_y)
                raise

        results = self._run_partitioned(groups, query_cell, max_workers=self.worker_count)
        tables = [table for group in results for table in group]
        return pd.concat(tables, ignore_index=True, sort=False)
