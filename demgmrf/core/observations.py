"""
Observation fusion into grid cells.

Each reading z with standard deviation sigma contributes information
w = lambda_obs / sigma**2 to the cell that contains it:

    information_sum           += w
    information_weighted_mean += w * z

Contributions add, which is exactly Bayesian fusion of independent
Gaussian measurements: the fused estimate of a cell is
information_weighted_mean / information_sum and its precision is
information_sum.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union
import logging
import numpy as np

from demgmrf.core.grid import GridStore
from demgmrf.errors import InvalidObservationError, OutOfBoundsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """
    A single noisy height sample.

    Attributes:
        x: X coordinate
        y: Y coordinate
        z: Measured height
        stddev: Standard deviation of the measurement (> 0)
        time_invariant: If False, the reading's information decays after
            every map update (see ObservationAccumulator.transient_decay)
    """
    x: float
    y: float
    z: float
    stddev: Optional[float]
    time_invariant: bool = True


class ObservationAccumulator:
    """
    Fuses observations into the information layers of a GridStore.

    Insertion never touches the cells' mean or variance; those are
    only recomputed by the solver.

    Args:
        grid: Grid whose accumulators are updated in place
        observation_scale: Global precision scale factor lambda_obs
        transient_decay: Factor in (0, 1] applied to the information of
            time-variant readings after each update. 1.0 means they
            never fade.

    Example:
        >>> acc = ObservationAccumulator(grid)
        >>> acc.insert(Observation(x=1.0, y=2.0, z=10.3, stddev=0.2))
    """

    def __init__(
        self,
        grid: GridStore,
        observation_scale: float = 1.0,
        transient_decay: float = 1.0,
    ):
        if not observation_scale > 0:
            raise ValueError(f"observation_scale must be positive, got {observation_scale}")
        if not 0 < transient_decay <= 1:
            raise ValueError(f"transient_decay must be in (0, 1], got {transient_decay}")

        self.grid = grid
        self.observation_scale = float(observation_scale)
        self.transient_decay = float(transient_decay)

        # Portion of the grid's information owed to time-variant readings
        self.transient_information = np.zeros(grid.shape, dtype=np.float64)
        self.transient_weighted_mean = np.zeros(grid.shape, dtype=np.float64)

        self.num_inserted = 0
        self.num_rejected = 0

    def observation_information(self, stddev: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Information (precision) carried by a reading with the given stddev."""
        return self.observation_scale / np.square(stddev)

    def insert(self, observation: Observation) -> None:
        """
        Fuse one observation into its owning cell.

        Raises:
            InvalidObservationError: For a missing, non-positive or non-finite
                stddev, a non-finite height, or a point outside the grid
        """
        stddev = observation.stddev
        if stddev is None or not np.isfinite(stddev) or stddev <= 0:
            self.num_rejected += 1
            raise InvalidObservationError(
                f"Observation at ({observation.x}, {observation.y}) has invalid stddev: {stddev}"
            )
        if not np.isfinite(observation.z):
            self.num_rejected += 1
            raise InvalidObservationError(
                f"Observation at ({observation.x}, {observation.y}) has non-finite height"
            )

        try:
            row, col = self.grid.cell_index_of(observation.x, observation.y)
        except OutOfBoundsError as e:
            self.num_rejected += 1
            raise InvalidObservationError(str(e)) from e

        w = self.observation_information(stddev)
        self.grid.information_sum[row, col] += w
        self.grid.information_weighted_mean[row, col] += w * observation.z

        if not observation.time_invariant:
            self.transient_information[row, col] += w
            self.transient_weighted_mean[row, col] += w * observation.z

        self.num_inserted += 1

    def insert_all(self, observations: Iterable[Observation]) -> int:
        """
        Insert a stream of observations, skipping invalid ones.

        Returns:
            Number of observations skipped
        """
        skipped = 0
        for obs in observations:
            try:
                self.insert(obs)
            except InvalidObservationError as e:
                skipped += 1
                logger.debug("Skipping observation: %s", e)
        if skipped:
            logger.warning("Skipped %d invalid observations", skipped)
        return skipped

    def insert_many(
        self,
        x: np.ndarray,
        y: np.ndarray,
        z: np.ndarray,
        stddev: Union[float, np.ndarray],
        time_invariant: bool = True,
    ) -> int:
        """
        Vectorized bulk insertion.

        Rows with an invalid stddev, a non-finite height or coordinates
        outside the grid are skipped rather than raising.

        Args:
            x, y, z: Coordinate and height arrays of equal length
            stddev: Scalar or per-point standard deviation
            time_invariant: Applies to every point in the batch

        Returns:
            Number of points skipped
        """
        x = np.asarray(x, dtype=np.float64).ravel()
        y = np.asarray(y, dtype=np.float64).ravel()
        z = np.asarray(z, dtype=np.float64).ravel()
        stddev = np.broadcast_to(np.asarray(stddev, dtype=np.float64), x.shape)

        rows, cols, inside = self.grid.cell_indices_of(x, y)
        valid = inside & np.isfinite(stddev) & (stddev > 0) & np.isfinite(z)

        skipped = int((~valid).sum())
        if skipped:
            logger.warning(
                "Skipped %d of %d points (invalid stddev, height, or outside grid)",
                skipped, x.size,
            )

        rows, cols = rows[valid], cols[valid]
        w = self.observation_information(stddev[valid])
        wz = w * z[valid]

        np.add.at(self.grid.information_sum, (rows, cols), w)
        np.add.at(self.grid.information_weighted_mean, (rows, cols), wz)
        if not time_invariant:
            np.add.at(self.transient_information, (rows, cols), w)
            np.add.at(self.transient_weighted_mean, (rows, cols), wz)

        self.num_inserted += int(valid.sum())
        self.num_rejected += skipped
        return skipped

    def merge(self, other: "ObservationAccumulator") -> None:
        """
        Add the information fused by another accumulator.

        The other accumulator must cover a grid of the same shape; typically
        each worker fills its own grid copy and the partial sums are merged
        here.
        """
        if other.grid.shape != self.grid.shape:
            raise ValueError(
                f"Cannot merge accumulators of shapes {other.grid.shape} and {self.grid.shape}"
            )
        self.grid.information_sum += other.grid.information_sum
        self.grid.information_weighted_mean += other.grid.information_weighted_mean
        self.transient_information += other.transient_information
        self.transient_weighted_mean += other.transient_weighted_mean
        self.num_inserted += other.num_inserted
        self.num_rejected += other.num_rejected

    def decay_transient(self) -> None:
        """Fade the information of time-variant readings by transient_decay."""
        if self.transient_decay >= 1.0:
            return
        lost = 1.0 - self.transient_decay
        self.grid.information_sum -= lost * self.transient_information
        self.grid.information_weighted_mean -= lost * self.transient_weighted_mean
        self.transient_information *= self.transient_decay
        self.transient_weighted_mean *= self.transient_decay
        # Guard against tiny negative round-off
        np.maximum(self.grid.information_sum, 0.0, out=self.grid.information_sum)

    def fused_mean(self) -> np.ndarray:
        """Per-cell fused observation mean, NaN where nothing was observed."""
        info = self.grid.information_sum
        out = np.full(info.shape, np.nan)
        np.divide(self.grid.information_weighted_mean, info, out=out, where=info > 0)
        return out

    def clear(self) -> None:
        """Drop all fused information."""
        self.grid.reset_accumulators()
        self.transient_information.fill(0.0)
        self.transient_weighted_mean.fill(0.0)
        self.num_inserted = 0
        self.num_rejected = 0
