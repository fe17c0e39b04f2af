"""
GMRF height map: the accumulate-then-update facade.

Readings are fused into the grid as they arrive (cheap), and the surface
is only recomputed when update_map_estimation() is called explicitly
(expensive). Calling the update twice without new readings gives the
same surface.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union
import numpy as np

from demgmrf.core.coordinates import BoundingBox
from demgmrf.core.grid import Cell, GridStore
from demgmrf.core.interpolation import Prediction, predict, predict_points
from demgmrf.core.observations import Observation, ObservationAccumulator
from demgmrf.core.solver import SOLVER_METHODS, SolveReport, solve
from demgmrf.core.variance import (
    VARIANCE_ESTIMATORS,
    VarianceEstimator,
    make_variance_estimator,
)
from demgmrf.errors import ConfigError


@dataclass
class GMRFOptions:
    """
    Estimator options.

    Attributes:
        std_prior: Std-dev of height differences between neighbouring
            cells (terrain "tolerance"); lambda_prior = 1 / std_prior**2
        std_obs: Default std-dev of a reading when none is given
        observation_scale: Global precision scale factor lambda_obs
        transient_decay: Information kept by time-variant readings after
            each update (1.0 = never fade)
        skip_variance: Do not estimate variances during updates
        solver: "cg" or "direct"
        tolerance: CG relative tolerance
        max_iterations: CG iteration cap (10 * cells if None)
        variance_method: "hutchinson", "diagonal" or "exact"
        variance_probes: Probe count for the Hutchinson estimator
        seed: Seed for stochastic variance probing
    """
    std_prior: float = 1.0
    std_obs: float = 0.2
    observation_scale: float = 1.0
    transient_decay: float = 1.0
    skip_variance: bool = False
    solver: str = "cg"
    tolerance: float = 1e-8
    max_iterations: Optional[int] = None
    variance_method: str = "hutchinson"
    variance_probes: int = 16
    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> "GMRFOptions":
        """
        Check every option; returns self for chaining.

        Raises:
            ConfigError: On the first invalid value
        """
        for name in ("std_prior", "std_obs", "observation_scale", "tolerance"):
            value = getattr(self, name)
            if not value > 0:
                raise ConfigError(f"{name} must be > 0, got {value}")
        if not 0 < self.transient_decay <= 1:
            raise ConfigError(f"transient_decay must be in (0, 1], got {self.transient_decay}")
        if self.solver not in SOLVER_METHODS:
            raise ConfigError(f"Unknown solver: {self.solver}. Choose from: {SOLVER_METHODS}")
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ConfigError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.variance_method not in VARIANCE_ESTIMATORS:
            raise ConfigError(
                f"Unknown variance method: {self.variance_method}. "
                f"Available: {list(VARIANCE_ESTIMATORS.keys())}"
            )
        if self.variance_probes < 1:
            raise ConfigError(f"variance_probes must be >= 1, got {self.variance_probes}")
        return self

    @property
    def lambda_prior(self) -> float:
        return 1.0 / self.std_prior ** 2

    def make_variance_estimator(self) -> VarianceEstimator:
        """Build the configured variance estimator."""
        if self.variance_method == "hutchinson":
            return make_variance_estimator(
                "hutchinson",
                num_probes=self.variance_probes,
                seed=self.seed,
                tolerance=max(self.tolerance, 1e-6),
                max_iterations=self.max_iterations,
            )
        return make_variance_estimator(self.variance_method)


class GMRFDemMap:
    """
    Digital elevation map estimated with a Gaussian Markov random field.

    Args:
        bbox: Area covered by the map (including any margin)
        resolution: Cell side length
        options: Estimator options
        default_cell: Initial mean/variance of the cells. Defaults to mean 0
            and variance std_prior**2.
        variance_estimator: Overrides options.variance_method

    Example:
        >>> dem_map = GMRFDemMap(BoundingBox(0, 100, 0, 100), resolution=1.0)
        >>> dem_map.insert_reading(10.2, 33.1, z=4.5)
        >>> report = dem_map.update_map_estimation()
        >>> dem_map.predict(10.0, 33.0).mean
    """

    def __init__(
        self,
        bbox: BoundingBox,
        resolution: float,
        options: Optional[GMRFOptions] = None,
        default_cell: Optional[Cell] = None,
        variance_estimator: Optional[VarianceEstimator] = None,
    ):
        self.options = (options if options is not None else GMRFOptions()).validate()
        if default_cell is None:
            default_cell = Cell(mean=0.0, variance=self.options.std_prior ** 2)

        self.grid = GridStore(bbox, resolution, default_cell)
        self.accumulator = ObservationAccumulator(
            self.grid,
            observation_scale=self.options.observation_scale,
            transient_decay=self.options.transient_decay,
        )
        self.variance_estimator = variance_estimator
        self.last_report: Optional[SolveReport] = None

    @property
    def shape(self):
        return self.grid.shape

    def insert_reading(
        self,
        x: float,
        y: float,
        z: float,
        stddev: Optional[float] = None,
        time_invariant: bool = True,
    ) -> None:
        """
        Fuse a single reading. The surface is not updated.

        Raises:
            InvalidObservationError: See ObservationAccumulator.insert
        """
        if stddev is None:
            stddev = self.options.std_obs
        self.accumulator.insert(Observation(x, y, z, stddev, time_invariant))

    def insert_observations(self, observations: Iterable[Observation]) -> int:
        """Fuse a stream of observations; returns the number skipped."""
        return self.accumulator.insert_all(observations)

    def insert_points(
        self,
        xyz: np.ndarray,
        stddev: Optional[Union[float, np.ndarray]] = None,
        time_invariant: bool = True,
    ) -> int:
        """
        Fuse an (N, 3) array of points in bulk.

        Args:
            xyz: Point coordinates and heights
            stddev: Per-point array, scalar, or None for options.std_obs
            time_invariant: Applies to the whole batch

        Returns:
            Number of points skipped
        """
        xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
        if stddev is None:
            stddev = self.options.std_obs
        return self.accumulator.insert_many(
            xyz[:, 0], xyz[:, 1], xyz[:, 2], stddev, time_invariant=time_invariant,
        )

    def _resolve_variance_estimator(self) -> Optional[VarianceEstimator]:
        if self.options.skip_variance:
            return None
        if self.variance_estimator is not None:
            return self.variance_estimator
        return self.options.make_variance_estimator()

    def check_variance_estimator(self) -> None:
        """
        Fail early if the variance estimator cannot handle this grid.

        Raises:
            ConfigError: E.g. exact variances requested for a grid larger
                than the estimator's max_cells
        """
        estimator = self._resolve_variance_estimator()
        if estimator is not None:
            estimator.check_grid(self.grid.num_cells)

    def update_map_estimation(self) -> SolveReport:
        """
        Run prior assembly and the sparse solve; updates every cell.

        Raises:
            ConfigError: If the variance estimator refuses the grid. Raised
                before the mean is solved.
        """
        opts = self.options
        estimator = self._resolve_variance_estimator()
        if estimator is not None:
            estimator.check_grid(self.grid.num_cells)

        report = solve(
            self.grid,
            lambda_prior=opts.lambda_prior,
            skip_variance=opts.skip_variance,
            method=opts.solver,
            tolerance=opts.tolerance,
            max_iterations=opts.max_iterations,
            variance_estimator=estimator,
        )
        self.accumulator.decay_transient()
        self.last_report = report
        return report

    def predict(self, x: float, y: float, mode: str = "bilinear") -> Prediction:
        """Predicted height and std-dev at (x, y)."""
        return predict(self.grid, x, y, mode)

    def predict_points(self, x: np.ndarray, y: np.ndarray, mode: str = "bilinear"):
        """Vectorized predict; NaN for points outside the map."""
        return predict_points(self.grid, x, y, mode)

    def __repr__(self) -> str:
        return f"GMRFDemMap(grid={self.grid!r}, observations={self.accumulator.num_inserted})"
