"""
Residual statistics for checkpoint validation.

The stats row is written with the historical header

    MAX_ABS_ERR MIN_ABS_ERR AVERAGE_ERR STD_DEV RMSE MEDIAN

but, for compatibility with existing result files, the first two columns hold the signed
maximum and minimum residual, not absolute values.
"""

from dataclasses import dataclass
from typing import Sequence, Union
import numpy as np


@dataclass(frozen=True)
class ResidualStats:
    """
    Summary of a residual vector (observed - predicted).

    Attributes:
        max_abs: Largest signed residual
        min_abs: Smallest signed residual
        mean: Sample mean
        std_dev: Sample standard deviation (N - 1 denominator)
        rmse: Root mean square of the residuals
        median: Lower median
        count: Number of residuals; 0 marks a "no data" result
    """
    max_abs: float
    min_abs: float
    mean: float
    std_dev: float
    rmse: float
    median: float
    count: int

    HEADER = "MAX_ABS_ERR MIN_ABS_ERR AVERAGE_ERR STD_DEV RMSE MEDIAN"

    @classmethod
    def empty(cls) -> "ResidualStats":
        """Stats of an empty residual set: all zeros, count 0."""
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0)

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    def as_array(self) -> np.ndarray:
        """The 6 values in header order."""
        return np.array([
            self.max_abs,
            self.min_abs,
            self.mean,
            self.std_dev,
            self.rmse,
            self.median,
        ])

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "max_abs": self.max_abs,
            "min_abs": self.min_abs,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "rmse": self.rmse,
            "median": self.median,
            "count": self.count,
        }


def compute_stats(residuals: Union[Sequence[float], np.ndarray]) -> ResidualStats:
    """
    Summarize a residual vector.

    NaN entries (queries that could not be answered) are ignored.

    Args:
        residuals: Signed residuals

    Returns:
        ResidualStats; ResidualStats.empty() for an empty vector

    Example:
        >>> s = compute_stats([1.0, -2.0, 3.0])
        >>> s.max_abs, s.min_abs, s.median
        (3.0, -2.0, 1.0)
    """
    r = np.asarray(residuals, dtype=np.float64).ravel()
    r = r[~np.isnan(r)]
    n = r.size
    if n == 0:
        return ResidualStats.empty()

    std_dev = float(np.std(r, ddof=1)) if n > 1 else 0.0
    ordered = np.sort(r)

    return ResidualStats(
        max_abs=float(r.max()),
        min_abs=float(r.min()),
        mean=float(r.mean()),
        std_dev=std_dev,
        rmse=float(np.sqrt(np.mean(r ** 2))),
        median=float(ordered[(n - 1) // 2]),
        count=n,
    )
