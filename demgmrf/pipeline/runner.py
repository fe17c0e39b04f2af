"""
Batch DEM reconstruction runner.

This module provides the high-level entry point that takes a point
dataset through the whole pipeline: bounding box, checkpoint split, map
initialization, point insertion, GMRF update and checkpoint evaluation.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union
import logging
import time
import numpy as np

from demgmrf.config.settings import DemGmrfConfig
from demgmrf.core.coordinates import BoundingBox
from demgmrf.core.estimator import GMRFDemMap
from demgmrf.core.solver import SolveReport
from demgmrf.dem.export import (
    save_dem,
    save_grid,
    save_points,
    save_residual_stats,
    save_vector,
)
from demgmrf.dem.loader import PointCloud, compute_bounding_box, z_range
from demgmrf.validation.checkpoints import (
    CheckpointEvaluation,
    evaluate,
    split_checkpoints,
)

logger = logging.getLogger(__name__)


@dataclass
class DemGmrfResult:
    """
    Result of a DEM reconstruction run.

    Attributes:
        dem_map: Fitted map (grid with mean/variance layers)
        bbox: Bounding box used for the grid (data extent plus border)
        insert_indices: Indices of the points fused into the map
        checkpoint_indices: Indices of the withheld points
        num_skipped: Points rejected during insertion
        solve_report: Summary of the GMRF update
        evaluation: Checkpoint residuals, or None without checkpoints
        timings: Wall-clock seconds per pipeline stage
    """
    dem_map: GMRFDemMap
    bbox: BoundingBox
    insert_indices: np.ndarray
    checkpoint_indices: np.ndarray
    num_skipped: int
    solve_report: SolveReport
    evaluation: Optional[CheckpointEvaluation] = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def num_inserted(self) -> int:
        return int(self.insert_indices.size) - self.num_skipped

    @property
    def num_checkpoints(self) -> int:
        return int(self.checkpoint_indices.size)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "grid": self.dem_map.grid.to_dict(),
            "num_inserted": self.num_inserted,
            "num_skipped": self.num_skipped,
            "num_checkpoints": self.num_checkpoints,
            "solve_report": self.solve_report.to_dict(),
            "evaluation": self.evaluation.to_dict() if self.evaluation is not None else None,
            "timings": dict(self.timings),
        }


class _StageTimer:
    """Collects per-stage wall-clock times and prints stage banners."""

    def __init__(self, verbose: bool):
        self.verbose = verbose
        self.timings: Dict[str, float] = {}

    def run(self, key: str, banner: str, fn, *args, **kwargs):
        if self.verbose:
            print(f"\n{banner}")
        t0 = time.time()
        out = fn(*args, **kwargs)
        self.timings[key] = time.time() - t0
        return out


def run_dem_gmrf(
    points: PointCloud,
    config: Optional[DemGmrfConfig] = None,
    rng: Optional[np.random.Generator] = None,
    verbose: bool = True,
) -> DemGmrfResult:
    """
    Reconstruct a DEM from a point cloud.

    This is the main entry point for batch reconstruction.

    Args:
        points: Loaded dataset. With per-point stddev these are used for
            every reading, otherwise config.gmrf.std_obs applies to all.
        config: Run configuration (defaults if None); validated here
        rng: Generator for the checkpoint split. Seeded from
            config.validation.seed if None.
        verbose: Print stage progress

    Returns:
        DemGmrfResult with the fitted map and validation results

    Raises:
        ConfigError: For invalid configuration values
        InputError: For an empty point set

    Example:
        >>> from demgmrf.dem import load_points
        >>> result = run_dem_gmrf(load_points("survey.xyz"), verbose=False)
        >>> print(result.evaluation.stats_bilinear.rmse)
    """
    config = (config if config is not None else DemGmrfConfig()).validate()
    if rng is None:
        rng = np.random.default_rng(config.validation.seed)

    timer = _StageTimer(verbose)
    n = len(points)

    bbox = timer.run("bbox", "[2] Determining bounding box...",
                     compute_bounding_box, points.xyz, config.grid.border)
    if verbose:
        zmin, zmax = z_range(points.xyz, config.grid.border)
        print(f"[2] Bbox: x={bbox.min_x:11.2f} <-> {bbox.max_x:11.2f} (D={bbox.width:11.2f})")
        print(f"[2] Bbox: y={bbox.min_y:11.2f} <-> {bbox.max_y:11.2f} (D={bbox.height:11.2f})")
        print(f"[2] Bbox: z={zmin:11.2f} <-> {zmax:11.2f} (D={zmax - zmin:11.2f})")

    ratio = config.validation.checkpoint_ratio
    insert_idx, chk_idx = timer.run("select_checkpoints", "[3] Picking random checkpoints...",
                                    split_checkpoints, n, ratio, rng)
    if verbose:
        print(f"[3] Checkpoints: {chk_idx.size:9d} ({100.0 * ratio:.2f}%)  "
              f"Rest of points: {insert_idx.size:9d}")

    dem_map = timer.run("map_init", "[4] Initializing GMRF DEM map estimator...",
                        GMRFDemMap, bbox, config.grid.resolution, config.gmrf_options())
    if verbose:
        print(f"[4] Done. Grid: {dem_map.grid.rows} rows x {dem_map.grid.cols} cols")
    dem_map.check_variance_estimator()

    inserted = points.subset(insert_idx)
    stddev = inserted.stddev if inserted.has_stddev else config.gmrf.std_obs
    num_skipped = timer.run("insert_points", f"[5] Inserting {insert_idx.size} points in DEM map...",
                            dem_map.insert_points, inserted.xyz, stddev)
    if verbose:
        print(f"[5] Done. Skipped: {num_skipped}")

    report = timer.run("update_gmrf",
                       f"[6] Running GMRF estimator (cell count={float(dem_map.grid.num_cells):e})...",
                       dem_map.update_map_estimation)
    if verbose:
        status = "converged" if report.converged else "NOT converged"
        print(f"[6] Done. {report.method}: {report.iterations} iterations, {status}")

    evaluation = None
    if chk_idx.size:
        evaluation = timer.run("eval_checkpoints", "[7] Eval checkpoints...",
                               evaluate, points.xyz[chk_idx], dem_map.grid)
        if verbose:
            print(f"[7] Done. RMSE NN: {evaluation.stats_nn.rmse:.4f}  "
                  f"Bilinear: {evaluation.stats_bilinear.rmse:.4f}")

    logger.info("Reconstruction finished: %s", timer.timings)

    return DemGmrfResult(
        dem_map=dem_map,
        bbox=bbox,
        insert_indices=insert_idx,
        checkpoint_indices=chk_idx,
        num_skipped=num_skipped,
        solve_report=report,
        evaluation=evaluation,
        timings=timer.timings,
    )


def save_outputs(
    result: DemGmrfResult,
    points: PointCloud,
    prefix: Union[str, Path],
    save_geotiff: bool = False,
    crs: Optional[str] = None,
) -> Dict[str, Path]:
    """
    Write every output file of a run.

    Files written:
        <prefix>_chkpt_residuals_NN.txt / _Bi.txt        (with checkpoints)
        <prefix>_chkpt_residuals_NN_stats.txt / _Bi_...   (with checkpoints)
        <prefix>_pts_map.txt, <prefix>_pts_chk.txt
        <prefix>_grmf_mean.txt, _grmf_stddev.txt, _grmf_meta.json
        <prefix>_grmf.tif                                  (if save_geotiff)

    Returns:
        Mapping of output name to written path
    """
    prefix = str(prefix)
    Path(prefix).parent.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}

    ev = result.evaluation
    if ev is not None:
        for tag, residuals, stats in (
            ("NN", ev.residuals_nn, ev.stats_nn),
            ("Bi", ev.residuals_bilinear, ev.stats_bilinear),
        ):
            res_path = Path(f"{prefix}_chkpt_residuals_{tag}.txt")
            stats_path = Path(f"{prefix}_chkpt_residuals_{tag}_stats.txt")
            save_vector(res_path, residuals)
            save_residual_stats(stats_path, stats)
            written[f"residuals_{tag}"] = res_path
            written[f"stats_{tag}"] = stats_path

    written["pts_map"] = Path(f"{prefix}_pts_map.txt")
    written["pts_chk"] = Path(f"{prefix}_pts_chk.txt")
    save_points(written["pts_map"], points.xyz[result.insert_indices])
    save_points(written["pts_chk"], points.xyz[result.checkpoint_indices])

    for layer, path in save_grid(f"{prefix}_grmf", result.dem_map.grid, crs).items():
        written[f"grid_{layer}"] = path

    if save_geotiff:
        written["geotiff"] = Path(f"{prefix}_grmf.tif")
        save_dem(result.dem_map.grid, written["geotiff"], crs=crs)

    logger.info("Wrote %d output files with prefix %s", len(written), prefix)
    return written
