"""
Output writers for fitted maps and validation results.

All writers take an output prefix and append the file-specific suffix,
so a run produces a family of files such as ``out_pts_map.txt``,
``out_grmf_mean.txt`` and ``out_chkpt_residuals_NN_stats.txt``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union
import json
import numpy as np

from demgmrf.core.grid import GridStore
from demgmrf.validation.residuals import ResidualStats


@dataclass
class DEMMetadata:
    """
    Georeferencing of a fitted grid.

    Attributes:
        crs: Coordinate Reference System (e.g., "EPSG:25830"), if known
        bounds: (min_x, min_y, max_x, max_y) of the cells
        resolution: (x_res, y_res) cell size
        units: Height units
    """
    crs: Optional[str] = None
    bounds: Optional[Tuple[float, float, float, float]] = None
    resolution: Tuple[float, float] = (1.0, 1.0)
    units: str = "meters"

    @classmethod
    def from_grid(cls, grid: GridStore, crs: Optional[str] = None) -> "DEMMetadata":
        """Metadata describing the area covered by a grid's cells."""
        ext = grid.extent
        return cls(
            crs=crs,
            bounds=(ext.min_x, ext.min_y, ext.max_x, ext.max_y),
            resolution=(grid.resolution, grid.resolution),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "crs": self.crs,
            "bounds": list(self.bounds) if self.bounds else None,
            "resolution": list(self.resolution),
            "units": self.units,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DEMMetadata":
        """Create from dictionary."""
        return cls(
            crs=data.get("crs"),
            bounds=tuple(data["bounds"]) if data.get("bounds") else None,
            resolution=tuple(data.get("resolution", [1.0, 1.0])),
            units=data.get("units", "meters"),
        )


def save_points(path: Union[str, Path], xyz: np.ndarray) -> None:
    """Write points as ``x, y, z`` rows."""
    xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
    np.savetxt(path, xyz, fmt="%f", delimiter=", ")


def save_vector(path: Union[str, Path], values: np.ndarray) -> None:
    """Write a vector, one value per line."""
    np.savetxt(path, np.asarray(values, dtype=np.float64).ravel(), fmt="%.6e")


def save_residual_stats(path: Union[str, Path], stats: ResidualStats) -> None:
    """Write the 6-value stats row under its ``%``-commented header."""
    np.savetxt(
        path,
        stats.as_array().reshape(1, -1),
        fmt="%.6e",
        header=stats.HEADER,
        comments="% ",
    )


def save_grid(
    prefix: Union[str, Path],
    grid: GridStore,
    crs: Optional[str] = None,
) -> Dict[str, Path]:
    """
    Save a fitted grid as text matrices plus a JSON geometry sidecar.

    Files written:
        <prefix>_mean.txt    per-cell mean height (row 0 = southern edge)
        <prefix>_stddev.txt  per-cell standard deviation
        <prefix>_meta.json   grid geometry and georeferencing

    Returns:
        Mapping of layer name to written path
    """
    prefix = str(prefix)
    paths = {
        "mean": Path(prefix + "_mean.txt"),
        "stddev": Path(prefix + "_stddev.txt"),
        "meta": Path(prefix + "_meta.json"),
    }
    np.savetxt(paths["mean"], grid.mean, fmt="%.6f")
    np.savetxt(paths["stddev"], grid.std, fmt="%.6f")

    meta = grid.to_dict()
    meta["georeference"] = DEMMetadata.from_grid(grid, crs).to_dict()
    with open(paths["meta"], 'w') as f:
        json.dump(meta, f, indent=2)

    return paths


def save_dem(
    grid: GridStore,
    path: Union[str, Path],
    crs: Optional[str] = None,
    compress: bool = True,
) -> None:
    """
    Save a fitted grid to a 2-band GeoTIFF (band 1 mean, band 2 std-dev).

    Rows are flipped so the raster is north-up.

    Args:
        grid: Solved grid
        path: Output file path
        crs: Optional CRS string of the dataset coordinates
        compress: Whether to compress the output file

    Note:
        Requires rasterio package. Install with: pip install rasterio
    """
    try:
        import rasterio
        from rasterio.transform import from_bounds
    except ImportError:
        raise ImportError(
            "rasterio is required for saving GeoTIFF files. "
            "Install with: pip install rasterio"
        )

    meta = DEMMetadata.from_grid(grid, crs)
    transform = from_bounds(*meta.bounds, grid.cols, grid.rows)

    profile = {
        'driver': 'GTiff',
        'dtype': 'float32',
        'width': grid.cols,
        'height': grid.rows,
        'count': 2,
        'crs': crs,
        'transform': transform,
    }
    if compress:
        profile['compress'] = 'lzw'

    with rasterio.open(Path(path), 'w', **profile) as dst:
        dst.write(np.flipud(grid.mean).astype(np.float32), 1)
        dst.write(np.flipud(grid.std).astype(np.float32), 2)
        dst.set_band_description(1, "mean")
        dst.set_band_description(2, "stddev")
