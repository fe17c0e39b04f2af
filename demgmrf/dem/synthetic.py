"""
Synthetic terrain and survey generation for testing and development.

This module generates ground-truth height rasters and scattered, noisy
point surveys sampled from them, so that fitted surfaces can be compared
against a known answer.
"""

from typing import Optional, Tuple
import numpy as np
from scipy.interpolate import RegularGridInterpolator


def generate_synthetic_dem(
    height: int = 128,
    width: int = 128,
    mode: str = 'hills',
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Generate a ground-truth terrain raster.

    Row 0 is the southern edge, matching GridStore.

    Args:
        height: Number of rows.
        width: Number of columns.
        mode: Type of terrain:
            - 'hills': Several Gaussian hills (default)
            - 'ridge': Diagonal ridge
            - 'flat': Flat terrain (all zeros)
            - 'valley': Cone-shaped valley in the center
            - 'plane': Tilted plane z = 0.1 * col + 0.05 * row
        seed: Random seed for reproducibility.

    Returns:
        dem: float64 array (H, W) of terrain heights.

    Example:
        >>> dem = generate_synthetic_dem(64, 64, mode='hills', seed=42)
        >>> print(f"Height range: [{dem.min():.1f}, {dem.max():.1f}]")
    """
    rng = np.random.default_rng(seed)

    y, x = np.mgrid[0:height, 0:width].astype(np.float64)

    if mode == 'flat':
        dem = np.zeros((height, width))

    elif mode == 'hills':
        dem = np.zeros((height, width))
        for _ in range(5):
            cx = rng.uniform(0.2 * width, 0.8 * width)
            cy = rng.uniform(0.2 * height, 0.8 * height)
            sigma = rng.uniform(0.1, 0.3) * min(height, width)
            amplitude = rng.uniform(5, 25)
            dem += amplitude * np.exp(-((x - cx)**2 + (y - cy)**2) / (2 * sigma**2))

    elif mode == 'ridge':
        ridge_dir = np.array([1, 1]) / np.sqrt(2)
        center = np.array([width / 2, height / 2])
        dist = np.abs((x - center[0]) * ridge_dir[1] - (y - center[1]) * ridge_dir[0])
        dem = 20.0 * np.exp(-dist**2 / (2 * (0.15 * min(height, width))**2))

    elif mode == 'valley':
        cx, cy = width / 2, height / 2
        dem = np.minimum(0.2 * np.sqrt((x - cx)**2 + (y - cy)**2), 20.0)

    elif mode == 'plane':
        dem = 0.1 * x + 0.05 * y

    else:
        raise ValueError(
            f"Unknown DEM mode: {mode}. Choose from: 'hills', 'ridge', 'flat', 'valley', 'plane'"
        )

    return dem.astype(np.float64)


def sample_point_cloud(
    dem: np.ndarray,
    num_points: int = 1000,
    resolution: float = 1.0,
    origin: Tuple[float, float] = (0.0, 0.0),
    noise_std: float = 0.1,
    seed: Optional[int] = None,
    per_point_std: bool = False,
) -> np.ndarray:
    """
    Draw a scattered, noisy survey from a ground-truth raster.

    Points are uniformly distributed over the raster's cell centres'
    hull; heights are bilinearly interpolated from the raster and
    perturbed with Gaussian noise.

    Args:
        dem: Ground-truth heights (row 0 = southern edge).
        num_points: Number of samples.
        resolution: Cell size of ``dem`` in world units.
        origin: World (x, y) of the south-west corner of ``dem``.
        noise_std: Std-dev of the added height noise. With
            ``per_point_std`` each point draws its own std-dev in
            [0.5, 1.5] * noise_std.
        seed: Random seed for reproducibility.
        per_point_std: Return a 4th column with the per-point std-dev.

    Returns:
        (N, 3) array of x, y, z, or (N, 4) with a stddev column.

    Example:
        >>> dem = generate_synthetic_dem(64, 64, mode='plane')
        >>> pts = sample_point_cloud(dem, num_points=500, seed=0)
        >>> pts.shape
        (500, 3)
    """
    rng = np.random.default_rng(seed)
    rows, cols = dem.shape

    xs = origin[0] + (np.arange(cols) + 0.5) * resolution
    ys = origin[1] + (np.arange(rows) + 0.5) * resolution
    surface = RegularGridInterpolator((ys, xs), dem, method='linear')

    px = rng.uniform(xs[0], xs[-1], num_points)
    py = rng.uniform(ys[0], ys[-1], num_points)
    truth = surface(np.column_stack([py, px]))

    if per_point_std:
        std = rng.uniform(0.5, 1.5, num_points) * noise_std
        pz = truth + rng.standard_normal(num_points) * std
        return np.column_stack([px, py, pz, std])

    pz = truth + rng.standard_normal(num_points) * noise_std
    return np.column_stack([px, py, pz])
