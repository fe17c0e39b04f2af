"""
Coordinate system transformations for GMRF grids.

This module provides tools for converting between grid coordinates
(row, column) and world coordinates (x, y in dataset units).

Unlike raster images, row 0 is the *southernmost* row: row indices grow
with y and column indices grow with x. Fractional grid coordinates are
measured from cell centres, so the centre of cell (r, c) is exactly
(float(r), float(c)).
"""

from dataclasses import dataclass
from typing import Tuple, Union
import numpy as np

from demgmrf.errors import ConfigError


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned rectangle covered by a grid.

    Attributes:
        min_x: Western edge
        max_x: Eastern edge
        min_y: Southern edge
        max_y: Northern edge
    """
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def __post_init__(self):
        if not (self.max_x >= self.min_x and self.max_y >= self.min_y):
            raise ConfigError(
                f"Invalid bounding box: x=[{self.min_x}, {self.max_x}] "
                f"y=[{self.min_y}, {self.max_y}]"
            )

    @property
    def width(self) -> float:
        """Extent along x."""
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        """Extent along y."""
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        return 0.5 * (self.min_x + self.max_x), 0.5 * (self.min_y + self.max_y)

    def expanded(self, margin: float) -> "BoundingBox":
        """Return a copy grown by ``margin`` on every side."""
        return BoundingBox(
            self.min_x - margin,
            self.max_x + margin,
            self.min_y - margin,
            self.max_y + margin,
        )

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "min_x": self.min_x,
            "max_x": self.max_x,
            "min_y": self.min_y,
            "max_y": self.max_y,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BoundingBox":
        """Create from dictionary."""
        return cls(
            min_x=data["min_x"],
            max_x=data["max_x"],
            min_y=data["min_y"],
            max_y=data["max_y"],
        )


def grid_to_world(
    row: Union[float, np.ndarray],
    col: Union[float, np.ndarray],
    origin: Tuple[float, float],
    resolution: float,
) -> Tuple[Union[float, np.ndarray], Union[float, np.ndarray]]:
    """
    Convert fractional grid coordinates (row, col) to world coordinates (x, y).

    Args:
        row: Row index (or array of row indices)
        col: Column index (or array of column indices)
        origin: (min_x, min_y) corner of the grid
        resolution: Cell side length

    Returns:
        x: X coordinate(s) of the cell centre(s)
        y: Y coordinate(s) of the cell centre(s)

    Example:
        >>> x, y = grid_to_world(0, 0, origin=(10.0, 20.0), resolution=2.0)
        >>> print(x, y)
        11.0 21.0
    """
    x = origin[0] + (col + 0.5) * resolution
    y = origin[1] + (row + 0.5) * resolution
    return x, y


def world_to_grid(
    x: Union[float, np.ndarray],
    y: Union[float, np.ndarray],
    origin: Tuple[float, float],
    resolution: float,
) -> Tuple[Union[float, np.ndarray], Union[float, np.ndarray]]:
    """
    Convert world coordinates (x, y) to fractional grid coordinates (row, col).

    The result is relative to cell centres: a point in the middle of cell
    (3, 5) maps to (3.0, 5.0), a point on its south-west corner to
    (2.5, 4.5).

    Args:
        x: X coordinate(s)
        y: Y coordinate(s)
        origin: (min_x, min_y) corner of the grid
        resolution: Cell side length

    Returns:
        row: Fractional row index (or array)
        col: Fractional column index (or array)
    """
    col = (x - origin[0]) / resolution - 0.5
    row = (y - origin[1]) / resolution - 0.5
    return row, col


def world_to_cell(
    x: Union[float, np.ndarray],
    y: Union[float, np.ndarray],
    origin: Tuple[float, float],
    resolution: float,
) -> Tuple[Union[int, np.ndarray], Union[int, np.ndarray]]:
    """
    Integer (row, col) of the cell containing each point.

    No bounds checking is done here; see GridStore.cell_index_of.
    """
    col = np.floor((np.asarray(x, dtype=np.float64) - origin[0]) / resolution).astype(np.int64)
    row = np.floor((np.asarray(y, dtype=np.float64) - origin[1]) / resolution).astype(np.int64)
    if col.ndim == 0:
        return int(row), int(col)
    return row, col


def compute_grid_shape(bbox: BoundingBox, resolution: float) -> Tuple[int, int]:
    """
    Number of (rows, cols) needed to cover a bounding box.

    Args:
        bbox: Area to cover
        resolution: Cell side length (> 0)

    Returns:
        (rows, cols), each at least 1
    """
    if not resolution > 0:
        raise ConfigError(f"Resolution must be positive, got {resolution}")

    cols = max(1, int(np.ceil(bbox.width / resolution)))
    rows = max(1, int(np.ceil(bbox.height / resolution)))
    return rows, cols
