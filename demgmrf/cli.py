"""
Command-line interface: ``dem-gmrf -i points.xyz -r 1.0 -o out/run``.

Command-line values override those of an optional --config file.
"""

from typing import List, Optional
import logging
import sys
import time

from demgmrf import __version__
from demgmrf.config.settings import DemGmrfConfig, load_config
from demgmrf.dem.loader import load_points
from demgmrf.errors import DemGmrfError
from demgmrf.pipeline.runner import run_dem_gmrf, save_outputs


def build_parser():
    """Argument parser for the dem-gmrf command."""
    import argparse

    parser = argparse.ArgumentParser(
        prog='dem-gmrf',
        description='Build a DEM with uncertainty from scattered XYZ points using a GMRF',
    )
    parser.add_argument('-i', '--input', default=None,
                        help='Input dataset file: X,Y,Z[,STDDEV] points in plain text format')
    parser.add_argument('-r', '--resolution', type=float, default=None,
                        help='Resolution (side length) of each cell in the DEM (default: 1.0)')
    parser.add_argument('-o', '--output-prefix', default=None,
                        help='Prefix for all output filenames (default: demgmrf_out)')
    parser.add_argument('-c', '--checkpoint-ratio', type=float, default=None,
                        help='Ratio (1.0=all, 0.0=none) of data points to use as checkpoints. '
                             'They will not be inserted in the DEM (default: 0.01)')
    parser.add_argument('--std-prior', type=float, default=None,
                        help='Standard deviation of the prior constraints '
                             '(smoothness or tolerance of the terrain) (default: 1.0)')
    parser.add_argument('--std-obs', type=float, default=None,
                        help='Default standard deviation of each XYZ point observation (default: 0.20)')
    parser.add_argument('--border', type=float, default=None,
                        help='Margin added around the data bounding box (default: 10.0)')
    parser.add_argument('--skip-variance', action='store_true',
                        help='Skip variance estimation')
    parser.add_argument('--variance-method', choices=['hutchinson', 'diagonal', 'exact'],
                        default=None, help='Variance estimator (default: hutchinson)')
    parser.add_argument('--solver', choices=['cg', 'direct'], default=None,
                        help='Linear solver for the mean surface (default: cg)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for checkpoint selection and variance probing')
    parser.add_argument('--geotiff', action='store_true',
                        help='Also save the fitted DEM as a GeoTIFF (requires rasterio)')
    parser.add_argument('--crs', default=None,
                        help='CRS of the input coordinates, e.g. EPSG:25830 (GeoTIFF only)')
    parser.add_argument('--config', default=None,
                        help='YAML or JSON configuration file')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Do not print stage progress')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def apply_overrides(config: DemGmrfConfig, args) -> DemGmrfConfig:
    """Copy explicitly given command-line values into the configuration."""
    if args.input is not None:
        config.input_path = args.input
    if args.resolution is not None:
        config.grid.resolution = args.resolution
    if args.border is not None:
        config.grid.border = args.border
    if args.output_prefix is not None:
        config.output.prefix = args.output_prefix
    if args.checkpoint_ratio is not None:
        config.validation.checkpoint_ratio = args.checkpoint_ratio
    if args.seed is not None:
        config.validation.seed = args.seed
    if args.std_prior is not None:
        config.gmrf.std_prior = args.std_prior
    if args.std_obs is not None:
        config.gmrf.std_obs = args.std_obs
    if args.skip_variance:
        config.gmrf.skip_variance = True
    if args.variance_method is not None:
        config.gmrf.variance_method = args.variance_method
    if args.solver is not None:
        config.gmrf.solver = args.solver
    if args.geotiff:
        config.output.save_geotiff = True
    if args.crs is not None:
        config.output.crs = args.crs
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    verbose = not args.quiet

    try:
        config = apply_overrides(load_config(args.config), args).validate()
        if config.input_path is None:
            parser.error("an input dataset is required (-i/--input or input_path in --config)")

        if verbose:
            print(f" dem-gmrf {__version__}")
            print("-" * 67)
            print(f"\n[1] Loading `{config.input_path}`...")
        t0 = time.time()
        points = load_points(config.input_path)
        if verbose:
            ncols = 4 if points.has_stddev else 3
            print(f"[1] Done. Points: {len(points):7d}  Columns: {ncols:3d}")

        result = run_dem_gmrf(points, config, verbose=verbose)

        if verbose:
            print("\n[9] Generate TXT output files...")
        written = save_outputs(
            result, points,
            prefix=config.output.prefix,
            save_geotiff=config.output.save_geotiff,
            crs=config.output.crs,
        )
        if verbose:
            print(f"[9] Done. {len(written)} files written with prefix `{config.output.prefix}`")
            print(f"\nTotal time: {time.time() - t0:.2f}s")
            for stage, seconds in result.timings.items():
                print(f"  {stage:20s} {seconds:8.3f}s")

    except DemGmrfError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
