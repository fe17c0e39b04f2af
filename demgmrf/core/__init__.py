"""
Core GMRF terrain estimation.

This module provides:
    - GridStore and BoundingBox for the regular cell grid
    - ObservationAccumulator for fusing noisy height readings
    - The 4-connected smoothness prior and the sparse solver
    - Pluggable variance estimators
    - Nearest and bilinear point queries
    - GMRFDemMap, the accumulate-then-update facade over all of the above
"""

from demgmrf.core.coordinates import (
    BoundingBox,
    grid_to_world,
    world_to_grid,
)
from demgmrf.core.grid import Cell, GridCell, GridStore
from demgmrf.core.observations import Observation, ObservationAccumulator
from demgmrf.core.prior import build_prior_terms, prior_edges
from demgmrf.core.solver import SolveReport, assemble_system, solve
from demgmrf.core.variance import (
    VarianceEstimator,
    DiagonalVarianceEstimator,
    HutchinsonVarianceEstimator,
    ExactVarianceEstimator,
    make_variance_estimator,
)
from demgmrf.core.interpolation import Prediction, predict, predict_points
from demgmrf.core.estimator import GMRFDemMap, GMRFOptions

__all__ = [
    # Grid
    "BoundingBox",
    "Cell",
    "GridCell",
    "GridStore",
    "grid_to_world",
    "world_to_grid",
    # Observations
    "Observation",
    "ObservationAccumulator",
    # Prior and solver
    "build_prior_terms",
    "prior_edges",
    "SolveReport",
    "assemble_system",
    "solve",
    # Variance
    "VarianceEstimator",
    "DiagonalVarianceEstimator",
    "HutchinsonVarianceEstimator",
    "ExactVarianceEstimator",
    "make_variance_estimator",
    # Queries
    "Prediction",
    "predict",
    "predict_points",
    # Facade
    "GMRFDemMap",
    "GMRFOptions",
]
