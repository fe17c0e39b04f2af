"""
Batch reconstruction pipeline.

This module provides:
    - run_dem_gmrf: dataset -> fitted map + checkpoint validation
    - save_outputs: writes residuals, stats, point lists and the fitted grid
"""

from demgmrf.pipeline.runner import (
    DemGmrfResult,
    run_dem_gmrf,
    save_outputs,
)

__all__ = [
    "DemGmrfResult",
    "run_dem_gmrf",
    "save_outputs",
]
