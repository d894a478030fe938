"""
Global 5 arc-minute grid used to discretise areas into point queries.

Cells are indexed by ``grid_x`` in [-2160, 2160] and ``grid_y`` in
[-1080, 1080]. Index 0 only occurs on the prime meridian / equator; any other
coordinate rounds away from zero (ceiling when positive, floor when
negative), so cell 1 spans (0, 1/12] and cell -1 spans [-1/12, 0).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

import numpy as np
import shapely
from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

MAX_LON, MIN_LON = 180, -180
MAX_LAT, MIN_LAT = 90, -90
MAX_GRID_X, MIN_GRID_X = 2160, -2160
MAX_GRID_Y, MIN_GRID_Y = 1080, -1080

BUFFER_DEGREES = 0.5
SAMPLE_SPACING_DEGREES = 0.08

AreaLike = Union[BaseGeometry, str, Sequence[float], Mapping[str, Any]]


def _round_away(values: np.ndarray) -> np.ndarray:
    return np.where(values > 0, np.ceil(values), np.where(values < 0, np.floor(values), 0.0))


def grid_x(longitude):
    """Return the grid column for one or more longitudes."""
    scaled = (np.asarray(longitude, dtype=float) / ((MAX_LON - MIN_LON) / 2)) * ((MAX_GRID_X - MIN_GRID_X) / 2)
    result = _round_away(scaled).astype(int)
    return int(result) if result.ndim == 0 else result


def grid_y(latitude):
    """Return the grid row for one or more latitudes."""
    scaled = (np.asarray(latitude, dtype=float) / ((MAX_LAT - MIN_LAT) / 2)) * ((MAX_GRID_Y - MIN_GRID_Y) / 2)
    result = _round_away(scaled).astype(int)
    return int(result) if result.ndim == 0 else result


def _cell_center(index, span: float, max_index: int):
    index = np.asarray(index, dtype=float)
    step = span / max_index
    half = span / (max_index * 2)
    center = np.where(index > 0, step * index - half, np.where(index < 0, step * index + half, 0.0))
    return float(center) if center.ndim == 0 else center


def grid_longitude(gx):
    """Longitude of the center of grid column ``gx``."""
    return _cell_center(gx, (MAX_LON - MIN_LON) / 2, MAX_GRID_X)


def grid_latitude(gy):
    """Latitude of the center of grid row ``gy``."""
    return _cell_center(gy, (MAX_LAT - MIN_LAT) / 2, MAX_GRID_Y)


@dataclass(frozen=True)
class GridCell:
    grid_x: int
    grid_y: int
    lon: float
    lat: float

    @classmethod
    def from_index(cls, gx: int, gy: int) -> "GridCell":
        return cls(int(gx), int(gy), grid_longitude(gx), grid_latitude(gy))

    @classmethod
    def containing(cls, lon: float, lat: float) -> "GridCell":
        return cls.from_index(grid_x(lon), grid_y(lat))


def to_geometry(area: AreaLike) -> BaseGeometry:
    """Accept a shapely geometry, WKT, ``(minx, miny, maxx, maxy)`` extent or GeoJSON mapping."""
    if isinstance(area, BaseGeometry):
        geometry = area
    elif isinstance(area, str):
        try:
            geometry = wkt.loads(area)
        except ShapelyError as exc:
            raise ValueError(f"Could not parse area as WKT: {exc}") from exc
    elif isinstance(area, Mapping):
        geometry = shape(area)
    elif isinstance(area, (tuple, list)) and len(area) == 4 and all(isinstance(v, (int, float)) for v in area):
        minx, miny, maxx, maxy = (float(v) for v in area)
        if minx > maxx or miny > maxy:
            raise ValueError("Extent must be ordered as (minx, miny, maxx, maxy).")
        geometry = box(minx, miny, maxx, maxy)
    else:
        raise TypeError("Area must be a shapely geometry, WKT string, extent tuple or GeoJSON mapping.")

    if geometry.is_empty:
        raise ValueError("Area geometry is empty.")
    if not geometry.is_valid:
        geometry = shapely.make_valid(geometry)
    return geometry


def _cells_from_samples(lons: np.ndarray, lats: np.ndarray) -> List[GridCell]:
    if lons.size == 0:
        return []
    pairs = np.unique(np.column_stack([grid_x(lons), grid_y(lats)]), axis=0)
    return [GridCell.from_index(gx, gy) for gx, gy in pairs]


def build_grid(
    area: AreaLike,
    *,
    buffer_degrees: float = BUFFER_DEGREES,
    spacing: float = SAMPLE_SPACING_DEGREES,
) -> List[GridCell]:
    """
    Return every grid cell sampled inside ``area``.

    A lattice of points ``spacing`` degrees apart (finer than the 1/12 degree
    cells, so every cell the area covers gets a sample) is laid over the area
    buffered by ``buffer_degrees``. Only points inside the unbuffered area are
    kept, mapped to their cell, de-duplicated, and returned with the cell's
    canonical centroid, sorted by (grid_x, grid_y).
    """
    geometry = to_geometry(area)
    minx, miny, maxx, maxy = geometry.buffer(buffer_degrees).bounds

    xs = np.arange(math.ceil(minx / spacing), math.floor(maxx / spacing) + 1) * spacing
    ys = np.arange(math.ceil(miny / spacing), math.floor(maxy / spacing) + 1) * spacing
    xx, yy = np.meshgrid(xs, ys)
    lons, lats = xx.ravel(), yy.ravel()

    inside = shapely.intersects_xy(geometry, lons, lats)
    cells = _cells_from_samples(lons[inside], lats[inside])
    logger.info("Area covers %d grid cells (%d lattice samples inside)", len(cells), int(inside.sum()))
    return cells


def cells_from_points(points: Iterable[Tuple[float, float]]) -> List[GridCell]:
    """Map explicit ``(lon, lat)`` points onto their unique grid cells."""
    coords = np.asarray(list(points), dtype=float)
    if coords.size == 0:
        return []
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise ValueError("Points must be (lon, lat) pairs.")
    return _cells_from_samples(coords[:, 0], coords[:, 1])
