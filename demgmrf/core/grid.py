"""
Grid store for GMRF terrain estimation.

The grid owns four per-cell layers stored as float64 arrays of shape
(rows, cols):

    - mean: current best-estimate height
    - variance: current uncertainty estimate
    - information_sum: accumulated observation precision
    - information_weighted_mean: accumulated precision-weighted heights

Only the last two are touched by observation insertion. mean and variance
are written exclusively by the solver.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union
import numpy as np

from demgmrf.core.coordinates import (
    BoundingBox,
    compute_grid_shape,
    grid_to_world,
    world_to_cell,
)
from demgmrf.errors import OutOfBoundsError


@dataclass(frozen=True)
class Cell:
    """
    Initial contents of a grid cell.

    Attributes:
        mean: Initial height estimate
        variance: Initial (prior) variance, must be >= 0
    """
    mean: float = 0.0
    variance: float = 0.0


class GridCell:
    """Mutable view of one cell; reads and writes go to the owning grid's arrays."""

    __slots__ = ("_grid", "row", "col")

    def __init__(self, grid: "GridStore", row: int, col: int):
        self._grid = grid
        self.row = row
        self.col = col

    @property
    def mean(self) -> float:
        return float(self._grid.mean[self.row, self.col])

    @mean.setter
    def mean(self, value: float) -> None:
        self._grid.mean[self.row, self.col] = value

    @property
    def variance(self) -> float:
        return float(self._grid.variance[self.row, self.col])

    @variance.setter
    def variance(self, value: float) -> None:
        self._grid.variance[self.row, self.col] = value

    @property
    def std(self) -> float:
        return float(np.sqrt(max(self.variance, 0.0)))

    @property
    def information_sum(self) -> float:
        return float(self._grid.information_sum[self.row, self.col])

    @information_sum.setter
    def information_sum(self, value: float) -> None:
        self._grid.information_sum[self.row, self.col] = value

    @property
    def information_weighted_mean(self) -> float:
        return float(self._grid.information_weighted_mean[self.row, self.col])

    @information_weighted_mean.setter
    def information_weighted_mean(self, value: float) -> None:
        self._grid.information_weighted_mean[self.row, self.col] = value

    def __repr__(self) -> str:
        return (
            f"GridCell(row={self.row}, col={self.col}, mean={self.mean:.4f}, "
            f"variance={self.variance:.4f}, information_sum={self.information_sum:.4f})"
        )


class GridStore:
    """
    Fixed-size regular grid covering a bounding box.

    The grid is sized once at construction and never resized.

    Args:
        bbox: Area to cover (already expanded by any margin)
        resolution: Cell side length, > 0
        default_cell: Initial mean/variance of every cell

    Example:
        >>> grid = GridStore(BoundingBox(0, 10, 0, 5), resolution=1.0)
        >>> grid.shape
        (5, 10)
        >>> grid.cell_index_of(3.2, 4.9)
        (4, 3)
    """

    def __init__(
        self,
        bbox: BoundingBox,
        resolution: float,
        default_cell: Optional[Cell] = None,
    ):
        self.rows, self.cols = compute_grid_shape(bbox, resolution)
        self.resolution = float(resolution)
        self.bbox = bbox
        self.default_cell = default_cell if default_cell is not None else Cell()

        shape = (self.rows, self.cols)
        self.mean = np.full(shape, self.default_cell.mean, dtype=np.float64)
        self.variance = np.full(shape, self.default_cell.variance, dtype=np.float64)
        self.information_sum = np.zeros(shape, dtype=np.float64)
        self.information_weighted_mean = np.zeros(shape, dtype=np.float64)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def num_cells(self) -> int:
        return self.rows * self.cols

    @property
    def origin(self) -> Tuple[float, float]:
        """(min_x, min_y) corner of the grid."""
        return (self.bbox.min_x, self.bbox.min_y)

    @property
    def extent(self) -> BoundingBox:
        """
        Area actually covered by the cells.

        This can be slightly larger than the requested bbox because the
        cell count is rounded up.
        """
        return BoundingBox(
            self.bbox.min_x,
            self.bbox.min_x + self.cols * self.resolution,
            self.bbox.min_y,
            self.bbox.min_y + self.rows * self.resolution,
        )

    def contains(self, x: float, y: float) -> bool:
        """Whether (x, y) lies inside the grid extent (edges included)."""
        return self.extent.contains(x, y)

    def cell_index_of(self, x: float, y: float) -> Tuple[int, int]:
        """
        Integer (row, col) of the cell containing (x, y).

        Raises:
            OutOfBoundsError: If the point lies outside the grid extent
        """
        if not self.contains(x, y):
            raise OutOfBoundsError(
                f"Point ({x}, {y}) outside grid extent {self.extent.to_dict()}"
            )
        row, col = world_to_cell(x, y, self.origin, self.resolution)
        # Points on the far edge belong to the last cell
        return min(row, self.rows - 1), min(col, self.cols - 1)

    def cell_indices_of(
        self,
        x: np.ndarray,
        y: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized version of cell_index_of.

        Returns:
            rows: Row index per point (clipped into range)
            cols: Column index per point (clipped into range)
            inside: Boolean mask of points inside the grid extent
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        ext = self.extent
        inside = (x >= ext.min_x) & (x <= ext.max_x) & (y >= ext.min_y) & (y <= ext.max_y)

        rows, cols = world_to_cell(
            np.where(inside, x, ext.min_x),
            np.where(inside, y, ext.min_y),
            self.origin,
            self.resolution,
        )
        rows = np.clip(rows, 0, self.rows - 1)
        cols = np.clip(cols, 0, self.cols - 1)
        return rows, cols, inside

    def cell_at(self, row: int, col: int) -> GridCell:
        """
        Mutable view of cell (row, col).

        Raises:
            OutOfBoundsError: For indices outside [0, rows) x [0, cols)
        """
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise OutOfBoundsError(
                f"Cell ({row}, {col}) outside grid of shape {self.shape}"
            )
        return GridCell(self, row, col)

    def cell_center(
        self,
        row: Union[int, np.ndarray],
        col: Union[int, np.ndarray],
    ) -> Tuple[Union[float, np.ndarray], Union[float, np.ndarray]]:
        """World coordinates of the centre of cell (row, col)."""
        return grid_to_world(row, col, self.origin, self.resolution)

    def flat_index(self, row: int, col: int) -> int:
        """Index of cell (row, col) in the flattened (row-major) system vector."""
        return row * self.cols + col

    @property
    def std(self) -> np.ndarray:
        """Per-cell standard deviation."""
        return np.sqrt(np.maximum(self.variance, 0.0))

    @property
    def observed_mask(self) -> np.ndarray:
        """Cells that received at least some observation information."""
        return self.information_sum > 0

    def reset_accumulators(self) -> None:
        """Forget all fused observations; mean and variance are kept."""
        self.information_sum.fill(0.0)
        self.information_weighted_mean.fill(0.0)

    def to_dict(self) -> dict:
        """Grid geometry for serialization (no cell data)."""
        return {
            "bbox": self.bbox.to_dict(),
            "resolution": self.resolution,
            "rows": self.rows,
            "cols": self.cols,
            "default_cell": {
                "mean": self.default_cell.mean,
                "variance": self.default_cell.variance,
            },
        }

    def __repr__(self) -> str:
        return (
            f"GridStore(shape={self.shape}, resolution={self.resolution}, "
            f"bbox={self.bbox.to_dict()})"
        )
