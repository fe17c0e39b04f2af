"""
Point dataset I/O, DEM export and synthetic surveys.

This module provides tools for working with survey data:
    - Loading x y z [stddev] text datasets
    - Bounding box computation with a safety margin
    - Writing fitted grids (text matrices, GeoTIFF) and validation results
    - Generating synthetic terrain and noisy point surveys for testing
"""

from demgmrf.dem.loader import (
    PointCloud,
    load_points,
    compute_bounding_box,
    z_range,
)

from demgmrf.dem.export import (
    DEMMetadata,
    save_dem,
    save_grid,
    save_points,
    save_residual_stats,
    save_vector,
)

from demgmrf.dem.synthetic import (
    generate_synthetic_dem,
    sample_point_cloud,
)

__all__ = [
    # Loading
    "PointCloud",
    "load_points",
    "compute_bounding_box",
    "z_range",
    # Export
    "DEMMetadata",
    "save_dem",
    "save_grid",
    "save_points",
    "save_residual_stats",
    "save_vector",
    # Synthetic generation
    "generate_synthetic_dem",
    "sample_point_cloud",
]
