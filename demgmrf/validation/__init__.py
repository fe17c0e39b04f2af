"""
Checkpoint validation of fitted surfaces.

This module provides:
    - Random, seedable selection of withheld checkpoints
    - Residual evaluation with nearest and bilinear sampling
    - Residual summary statistics
"""

from demgmrf.validation.checkpoints import (
    CheckpointEvaluation,
    evaluate,
    num_checkpoints,
    split_checkpoints,
)
from demgmrf.validation.residuals import ResidualStats, compute_stats

__all__ = [
    "CheckpointEvaluation",
    "evaluate",
    "num_checkpoints",
    "split_checkpoints",
    "ResidualStats",
    "compute_stats",
]
