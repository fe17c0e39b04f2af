"""
Per-cell posterior variance estimators.

The marginal variance of cell i is the i-th diagonal entry of the inverse
information matrix, diag(Lambda^-1). Computing the full inverse is out of
reach for realistic grids, so estimators are pluggable:

    - "diagonal":   1 / Lambda_ii. Cheap, approximate. Always a lower bound
                    of the true marginal variance (it ignores the
                    uncertainty of the neighbours).
    - "hutchinson": Stochastic diagonal probing with Rademacher vectors,
                    one conjugate-gradient solve per probe. Approximate,
                    unbiased before clipping; noise shrinks as 1/sqrt(probes).
    - "exact":      Sparse LU of Lambda and one solve per cell. Exact, but
                    only allowed for small grids.
"""

from typing import Optional
import logging
import warnings
import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import splu

from demgmrf.core.linalg import solve_cg
from demgmrf.errors import ConfigError, ConvergenceWarning

logger = logging.getLogger(__name__)


class VarianceEstimator:
    """
    Interface: estimate(information_matrix) -> per-cell variance vector.

    Attributes:
        name: Identifier used in configuration and solve reports
        exact: Whether the estimator returns exact marginals
    """
    name = "base"
    exact = False

    def check_grid(self, num_cells: int) -> None:
        """Raise ConfigError if a grid of ``num_cells`` cannot be handled."""

    def estimate(self, information_matrix: sp.spmatrix) -> np.ndarray:
        raise NotImplementedError


def _diagonal_bound(information_matrix: sp.spmatrix) -> np.ndarray:
    d = information_matrix.diagonal().astype(np.float64)
    out = np.full(d.shape, np.inf)
    np.divide(1.0, d, out=out, where=d > 0)
    return out


class DiagonalVarianceEstimator(VarianceEstimator):
    """Approximate variance 1 / Lambda_ii (a lower bound of the true marginal)."""
    name = "diagonal"

    def estimate(self, information_matrix: sp.spmatrix) -> np.ndarray:
        return _diagonal_bound(information_matrix)


class HutchinsonVarianceEstimator(VarianceEstimator):
    """
    Approximate variance by stochastic diagonal probing.

    For Rademacher vectors v_k, E[v_k * (Lambda^-1 v_k)] = diag(Lambda^-1).
    The sample average over ``num_probes`` probes is clipped from below by
    1 / Lambda_ii, which the true marginal variance can never undercut.

    Args:
        num_probes: Number of probe vectors (one CG solve each)
        seed: Seed for the probe generator
        rng: Explicit generator (overrides seed)
        tolerance: CG relative tolerance per probe
        max_iterations: CG iteration cap per probe
    """
    name = "hutchinson"

    def __init__(
        self,
        num_probes: int = 16,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        tolerance: float = 1e-6,
        max_iterations: Optional[int] = None,
    ):
        if num_probes < 1:
            raise ValueError(f"num_probes must be >= 1, got {num_probes}")
        self.num_probes = num_probes
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.tolerance = tolerance
        self.max_iterations = max_iterations

    def estimate(self, information_matrix: sp.spmatrix) -> np.ndarray:
        n = information_matrix.shape[0]
        acc = np.zeros(n, dtype=np.float64)
        not_converged = 0

        for _ in range(self.num_probes):
            v = self.rng.choice(np.array([-1.0, 1.0]), size=n)
            result = solve_cg(
                information_matrix, v,
                tolerance=self.tolerance,
                max_iterations=self.max_iterations,
            )
            if not result.converged:
                not_converged += 1
            acc += v * result.x

        if not_converged:
            msg = f"{not_converged}/{self.num_probes} variance probes did not converge"
            logger.warning(msg)
            warnings.warn(msg, ConvergenceWarning, stacklevel=2)

        return np.maximum(acc / self.num_probes, _diagonal_bound(information_matrix))


class ExactVarianceEstimator(VarianceEstimator):
    """
    Exact marginal variances from a sparse LU factorization.

    Cost grows with the square of the cell count, so grids larger than
    ``max_cells`` are refused.

    Args:
        max_cells: Largest grid accepted
        block_size: Number of unit vectors solved per batch
    """
    name = "exact"
    exact = True

    def __init__(self, max_cells: int = 2500, block_size: int = 256):
        self.max_cells = max_cells
        self.block_size = block_size

    def check_grid(self, num_cells: int) -> None:
        if num_cells > self.max_cells:
            raise ConfigError(
                f"Exact variance refused for {num_cells} cells (max_cells={self.max_cells}); "
                f"use the 'hutchinson' or 'diagonal' estimator"
            )

    def estimate(self, information_matrix: sp.spmatrix) -> np.ndarray:
        n = information_matrix.shape[0]
        self.check_grid(n)

        lu = splu(sp.csc_matrix(information_matrix))
        out = np.empty(n, dtype=np.float64)
        for start in range(0, n, self.block_size):
            stop = min(start + self.block_size, n)
            rhs = np.zeros((n, stop - start), dtype=np.float64)
            rhs[np.arange(start, stop), np.arange(stop - start)] = 1.0
            cols = lu.solve(rhs)
            out[start:stop] = cols[np.arange(start, stop), np.arange(stop - start)]
        return out


VARIANCE_ESTIMATORS = {
    "diagonal": DiagonalVarianceEstimator,
    "hutchinson": HutchinsonVarianceEstimator,
    "exact": ExactVarianceEstimator,
}


def make_variance_estimator(name: str = "hutchinson", **kwargs) -> VarianceEstimator:
    """
    Create a variance estimator by name.

    Args:
        name: One of "diagonal", "hutchinson", "exact"
        **kwargs: Constructor arguments for the chosen estimator

    Example:
        >>> est = make_variance_estimator("hutchinson", num_probes=32, seed=0)
    """
    if name not in VARIANCE_ESTIMATORS:
        raise ValueError(
            f"Unknown variance estimator: {name}. Available: {list(VARIANCE_ESTIMATORS.keys())}"
        )
    return VARIANCE_ESTIMATORS[name](**kwargs)
