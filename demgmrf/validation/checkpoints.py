"""
Checkpoint selection and evaluation.

A random subset of the input points is withheld from the map and used to
measure how well the fitted surface predicts unseen heights.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import numpy as np

from demgmrf.core.grid import GridStore
from demgmrf.core.interpolation import predict_points
from demgmrf.errors import ConfigError
from demgmrf.validation.residuals import ResidualStats, compute_stats

logger = logging.getLogger(__name__)


def num_checkpoints(num_points: int, ratio: float) -> int:
    """round(ratio * num_points), with halves rounded up."""
    return int(np.floor(ratio * num_points + 0.5))


def split_checkpoints(
    num_points: int,
    ratio: float,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Randomly split point indices into inserted points and checkpoints.

    Args:
        num_points: Total number of points
        ratio: Fraction in [0, 1] to withhold as checkpoints
        rng: Random generator; pass a seeded one for reproducible splits

    Returns:
        insert_indices: Indices of points to fuse into the map
        checkpoint_indices: Indices of withheld points

    Example:
        >>> ins, chk = split_checkpoints(100, 0.1, np.random.default_rng(0))
        >>> len(ins), len(chk)
        (90, 10)
    """
    if not 0.0 <= ratio <= 1.0:
        raise ConfigError(f"Checkpoint ratio must be in [0, 1], got {ratio}")
    if rng is None:
        rng = np.random.default_rng()

    order = rng.permutation(num_points)
    n_insert = num_points - num_checkpoints(num_points, ratio)
    return order[:n_insert], order[n_insert:]


@dataclass
class CheckpointEvaluation:
    """
    Residuals of the fitted surface at the checkpoints.

    Attributes:
        residuals_nn: observed - predicted, nearest-cell sampling
        residuals_bilinear: observed - predicted, bilinear sampling
        stats_nn: Summary of residuals_nn
        stats_bilinear: Summary of residuals_bilinear
        num_out_of_bounds: Checkpoints outside the grid (NaN residuals)
    """
    residuals_nn: np.ndarray
    residuals_bilinear: np.ndarray
    stats_nn: ResidualStats
    stats_bilinear: ResidualStats
    num_out_of_bounds: int = 0

    @property
    def num_checkpoints(self) -> int:
        return int(self.residuals_nn.size)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (stats only)."""
        return {
            "num_checkpoints": self.num_checkpoints,
            "num_out_of_bounds": self.num_out_of_bounds,
            "stats_nn": self.stats_nn.to_dict(),
            "stats_bilinear": self.stats_bilinear.to_dict(),
        }


def evaluate(checkpoints: np.ndarray, grid: GridStore) -> CheckpointEvaluation:
    """
    Compare checkpoint heights against the solved grid.

    Checkpoints outside the grid get NaN residuals and are excluded from
    the statistics; the rest are still evaluated.

    Args:
        checkpoints: (N, 3) array of x, y, z_true
        grid: Solved grid

    Returns:
        CheckpointEvaluation for both interpolation modes
    """
    checkpoints = np.asarray(checkpoints, dtype=np.float64).reshape(-1, 3)
    x, y, z = checkpoints[:, 0], checkpoints[:, 1], checkpoints[:, 2]

    z_nn, _ = predict_points(grid, x, y, mode="nearest")
    z_bi, _ = predict_points(grid, x, y, mode="bilinear")

    residuals_nn = z - z_nn
    residuals_bi = z - z_bi

    out_of_bounds = int(np.isnan(z_nn).sum())
    if out_of_bounds:
        logger.warning("%d checkpoints fall outside the grid and were not evaluated", out_of_bounds)

    return CheckpointEvaluation(
        residuals_nn=residuals_nn,
        residuals_bilinear=residuals_bi,
        stats_nn=compute_stats(residuals_nn),
        stats_bilinear=compute_stats(residuals_bi),
        num_out_of_bounds=out_of_bounds,
    )
