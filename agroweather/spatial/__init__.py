"""Area discretisation and parallel area queries."""

from .fanout import AreaFanoutCoordinator, CallsDeclinedError
from .grid import GridCell, build_grid, grid_latitude, grid_longitude, grid_x, grid_y
from .raster import to_spatial_grid

__all__ = [
    "AreaFanoutCoordinator",
    "CallsDeclinedError",
    "GridCell",
    "build_grid",
    "grid_latitude",
    "grid_longitude",
    "grid_x",
    "grid_y",
    "to_spatial_grid",
]
