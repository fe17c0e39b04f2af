"""
Point queries against a fitted grid.

Two sampling modes:
    - "nearest": mean and std of the cell containing the point
    - "bilinear": weighted combination of the 4 cells whose centres
      surround the point. Cell errors are treated as independent, so the
      variance is sum(w_i**2 * var_i).

Points within half a cell of the grid border have no full stencil on
that side; their stencil is clamped to the border cells instead of
failing. Points outside the grid extent raise OutOfBoundsError.
"""

from dataclasses import dataclass
from typing import Tuple
import numpy as np

from demgmrf.core.coordinates import world_to_grid
from demgmrf.core.grid import GridStore
from demgmrf.errors import OutOfBoundsError

INTERPOLATION_MODES = ("nearest", "bilinear")


@dataclass(frozen=True)
class Prediction:
    """Predicted height and its standard deviation at a query point."""
    mean: float
    std: float


def _check_mode(mode: str) -> None:
    if mode not in INTERPOLATION_MODES:
        raise ValueError(f"Unknown interpolation mode: {mode}. Choose from: {INTERPOLATION_MODES}")


def _axis_stencil(frac: np.ndarray, size: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Lower index, upper index and upper weight along one axis.

    frac is the fractional index relative to cell centres, already known to
    lie in [-0.5, size - 0.5].
    """
    if size == 1:
        zeros = np.zeros_like(frac, dtype=np.int64)
        return zeros, zeros, np.zeros_like(frac, dtype=np.float64)

    lo = np.floor(frac).astype(np.int64)
    t = frac - lo

    below = lo < 0
    lo = np.where(below, 0, lo)
    t = np.where(below, 0.0, t)

    above = lo >= size - 1
    lo = np.where(above, size - 2, lo)
    t = np.where(above, 1.0, t)

    return lo, lo + 1, t


def bilinear_weights(
    grid: GridStore,
    x: np.ndarray,
    y: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Bilinear stencil for in-bounds query points.

    Returns:
        rows: (N, 4) row indices of the stencil cells
        cols: (N, 4) column indices
        weights: (N, 4) weights, each row summing to 1
    """
    frow, fcol = world_to_grid(
        np.asarray(x, dtype=np.float64),
        np.asarray(y, dtype=np.float64),
        grid.origin,
        grid.resolution,
    )
    r0, r1, ty = _axis_stencil(np.atleast_1d(frow), grid.rows)
    c0, c1, tx = _axis_stencil(np.atleast_1d(fcol), grid.cols)

    rows = np.stack([r0, r0, r1, r1], axis=1)
    cols = np.stack([c0, c1, c0, c1], axis=1)
    weights = np.stack([
        (1 - ty) * (1 - tx),
        (1 - ty) * tx,
        ty * (1 - tx),
        ty * tx,
    ], axis=1)
    return rows, cols, weights


def predict(grid: GridStore, x: float, y: float, mode: str = "bilinear") -> Prediction:
    """
    Predict the terrain height at (x, y).

    Args:
        grid: Solved grid
        x: Query X coordinate
        y: Query Y coordinate
        mode: "nearest" or "bilinear"

    Returns:
        Prediction with mean height and standard deviation

    Raises:
        OutOfBoundsError: If (x, y) is outside the grid extent
        ValueError: For an unknown mode

    Example:
        >>> p = predict(grid, 12.5, 40.0, mode="nearest")
        >>> print(f"{p.mean:.2f} +- {p.std:.2f}")
    """
    _check_mode(mode)

    if mode == "nearest":
        row, col = grid.cell_index_of(x, y)
        return Prediction(
            mean=float(grid.mean[row, col]),
            std=float(np.sqrt(max(grid.variance[row, col], 0.0))),
        )

    if not grid.contains(x, y):
        raise OutOfBoundsError(f"Point ({x}, {y}) outside grid extent {grid.extent.to_dict()}")

    rows, cols, weights = bilinear_weights(grid, x, y)
    rows, cols, weights = rows[0], cols[0], weights[0]
    mean = float(np.dot(weights, grid.mean[rows, cols]))
    var = float(np.dot(weights ** 2, np.maximum(grid.variance[rows, cols], 0.0)))
    return Prediction(mean=mean, std=float(np.sqrt(var)))


def predict_points(
    grid: GridStore,
    x: np.ndarray,
    y: np.ndarray,
    mode: str = "bilinear",
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vectorized prediction for many query points.

    Out-of-bounds queries do not raise; their mean and std are NaN.

    Args:
        grid: Solved grid
        x: Query X coordinates
        y: Query Y coordinates
        mode: "nearest" or "bilinear"

    Returns:
        mean: Predicted heights
        std: Predicted standard deviations
    """
    _check_mode(mode)

    x = np.atleast_1d(np.asarray(x, dtype=np.float64))
    y = np.atleast_1d(np.asarray(y, dtype=np.float64))
    mean = np.full(x.shape, np.nan)
    std = np.full(x.shape, np.nan)

    rows, cols, inside = grid.cell_indices_of(x, y)
    if not inside.any():
        return mean, std

    variance = np.maximum(grid.variance, 0.0)

    if mode == "nearest":
        mean[inside] = grid.mean[rows[inside], cols[inside]]
        std[inside] = np.sqrt(variance[rows[inside], cols[inside]])
        return mean, std

    srows, scols, weights = bilinear_weights(grid, x[inside], y[inside])
    mean[inside] = np.sum(weights * grid.mean[srows, scols], axis=1)
    std[inside] = np.sqrt(np.sum(weights ** 2 * variance[srows, scols], axis=1))
    return mean, std
