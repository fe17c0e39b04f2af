"""
DEM-GMRF - terrain reconstruction with Gaussian Markov random fields.

This package turns an irregular, noisy cloud of x, y, z samples into a
regular elevation grid with a per-cell mean height and uncertainty.

Main modules:
    - demgmrf.core: grid, observation fusion, smoothness prior, sparse solver,
      variance estimators and point queries
    - demgmrf.dem: dataset loading, output writers, synthetic surveys
    - demgmrf.validation: checkpoint selection and residual statistics
    - demgmrf.pipeline: end-to-end batch runner
    - demgmrf.config: configuration management

Quick start:
    >>> from demgmrf import run_dem_gmrf
    >>> from demgmrf.dem import generate_synthetic_dem, sample_point_cloud, PointCloud
    >>>
    >>> truth = generate_synthetic_dem(64, 64, mode='hills', seed=1)
    >>> cloud = PointCloud.from_array(sample_point_cloud(truth, 2000, seed=1))
    >>> result = run_dem_gmrf(cloud, verbose=False)
    >>> print(f"RMSE: {result.evaluation.stats_bilinear.rmse:.3f}")
"""

__version__ = "0.1.0"

# Core exports
from demgmrf.core.coordinates import BoundingBox
from demgmrf.core.grid import Cell, GridStore
from demgmrf.core.observations import Observation, ObservationAccumulator
from demgmrf.core.solver import SolveReport, solve
from demgmrf.core.interpolation import Prediction, predict
from demgmrf.core.estimator import GMRFDemMap, GMRFOptions

# Validation exports
from demgmrf.validation.checkpoints import evaluate, split_checkpoints
from demgmrf.validation.residuals import ResidualStats, compute_stats

# Pipeline exports
from demgmrf.pipeline.runner import DemGmrfResult, run_dem_gmrf, save_outputs

# Config exports
from demgmrf.config.settings import DemGmrfConfig, load_config

# Errors
from demgmrf.errors import (
    DemGmrfError,
    InputError,
    ConfigError,
    InvalidObservationError,
    OutOfBoundsError,
    ConvergenceWarning,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "BoundingBox",
    "Cell",
    "GridStore",
    "Observation",
    "ObservationAccumulator",
    "SolveReport",
    "solve",
    "Prediction",
    "predict",
    "GMRFDemMap",
    "GMRFOptions",
    # Validation
    "evaluate",
    "split_checkpoints",
    "ResidualStats",
    "compute_stats",
    # Pipeline
    "DemGmrfResult",
    "run_dem_gmrf",
    "save_outputs",
    # Config
    "DemGmrfConfig",
    "load_config",
    # Errors
    "DemGmrfError",
    "InputError",
    "ConfigError",
    "InvalidObservationError",
    "OutOfBoundsError",
    "ConvergenceWarning",
]
