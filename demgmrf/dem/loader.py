"""
Point dataset loading.

Datasets are plain-text numeric matrices, one point per row, with
whitespace- or comma-separated columns:

    x y z             (a single global std-dev applies to every point)
    x y z stddev      (per-point std-dev)

Lines starting with '%' or '#' are comments.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union
import logging
import numpy as np

from demgmrf.core.coordinates import BoundingBox
from demgmrf.core.observations import Observation
from demgmrf.errors import InputError

logger = logging.getLogger(__name__)

# Heights at or beyond this magnitude are raster no-data markers
NODATA_THRESHOLD = 1e6


@dataclass
class PointCloud:
    """
    A loaded point dataset.

    Attributes:
        xyz: (N, 3) array of x, y, z
        stddev: Optional (N,) per-point std-dev (4-column files)
        source_file: Original file path if loaded from file
    """
    xyz: np.ndarray
    stddev: Optional[np.ndarray] = None
    source_file: Optional[str] = None

    def __len__(self) -> int:
        return int(self.xyz.shape[0])

    @property
    def has_stddev(self) -> bool:
        return self.stddev is not None

    def subset(self, indices: np.ndarray) -> "PointCloud":
        """Points at the given indices, in that order."""
        return PointCloud(
            xyz=self.xyz[indices],
            stddev=None if self.stddev is None else self.stddev[indices],
            source_file=self.source_file,
        )

    def stddev_or(self, default: float) -> np.ndarray:
        """Per-point std-dev, or ``default`` for every point."""
        if self.stddev is not None:
            return self.stddev
        return np.full(len(self), float(default))

    def observations(self, default_stddev: float) -> Iterator[Observation]:
        """Iterate the points as time-invariant Observations."""
        std = self.stddev_or(default_stddev)
        for (x, y, z), s in zip(self.xyz, std):
            yield Observation(float(x), float(y), float(z), float(s))

    @classmethod
    def from_array(cls, array: np.ndarray, source_file: Optional[str] = None) -> "PointCloud":
        """
        Wrap a numeric matrix with >= 3 columns.

        Raises:
            InputError: For fewer than 3 columns
        """
        array = np.asarray(array, dtype=np.float64)
        if array.ndim != 2 or array.shape[1] < 3:
            raise InputError(
                f"Point dataset needs at least 3 columns (x y z), got shape {array.shape}"
            )
        stddev = array[:, 3].copy() if array.shape[1] >= 4 else None
        return cls(xyz=array[:, :3].copy(), stddev=stddev, source_file=source_file)


def load_points(source: Union[str, Path]) -> PointCloud:
    """
    Load a point dataset from a text file.

    Args:
        source: Path to the dataset

    Returns:
        PointCloud with xyz and, for 4+ column files, per-point stddev

    Raises:
        InputError: If the file is missing, has malformed rows, or has
            fewer than 3 columns

    Example:
        >>> cloud = load_points("survey.xyz")
        >>> print(f"Points: {len(cloud)}  per-point stddev: {cloud.has_stddev}")
    """
    source = Path(source)
    if not source.exists():
        raise InputError(f"Input dataset not found: {source}")

    try:
        with open(source, 'r') as f:
            data = np.loadtxt(
                (line.replace(',', ' ') for line in f),
                comments=('%', '#'),
                ndmin=2,
                dtype=np.float64,
            )
    except ValueError as e:
        raise InputError(f"Malformed dataset {source}: {e}") from e

    if data.size == 0:
        raise InputError(f"Input dataset is empty: {source}")

    cloud = PointCloud.from_array(data, source_file=str(source))
    logger.info("Loaded %d points with %d columns from %s", len(cloud), data.shape[1], source)
    return cloud


def compute_bounding_box(xyz: np.ndarray, border: float = 10.0) -> BoundingBox:
    """
    XY bounding box of a point set, grown by ``border`` on every side.

    Args:
        xyz: (N, >=2) array of points
        border: Margin added beyond the data extent

    Returns:
        BoundingBox covering every point plus the margin
    """
    xyz = np.asarray(xyz, dtype=np.float64)
    if xyz.shape[0] == 0:
        raise InputError("Cannot compute the bounding box of an empty point set")
    if border < 0:
        raise ValueError(f"Border must be non-negative, got {border}")

    return BoundingBox(
        float(xyz[:, 0].min()),
        float(xyz[:, 0].max()),
        float(xyz[:, 1].min()),
        float(xyz[:, 1].max()),
    ).expanded(border)


def z_range(xyz: np.ndarray, border: float = 0.0) -> Tuple[float, float]:
    """
    Height range of a point set, ignoring no-data heights (|z| >= 1e6).

    Returns:
        (min_z - border, max_z + border), or (nan, nan) if all heights are no-data
    """
    z = np.asarray(xyz, dtype=np.float64)[:, 2]
    valid = z[np.abs(z) < NODATA_THRESHOLD]
    if valid.size == 0:
        return (float('nan'), float('nan'))
    return (float(valid.min()) - border, float(valid.max()) + border)
