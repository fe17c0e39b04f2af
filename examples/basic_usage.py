#!/usr/bin/env python3
"""
Basic usage example for the DEM-GMRF terrain estimator.

This script demonstrates the core functionality of the demgmrf package:
1. Generating a synthetic survey from known terrain
2. Running the batch reconstruction with checkpoint validation
3. Incremental use of the map: insert readings, update, query
4. Comparing variance estimators
"""

import numpy as np

from demgmrf import (
    BoundingBox,
    DemGmrfConfig,
    GMRFDemMap,
    GMRFOptions,
    run_dem_gmrf,
)
from demgmrf.dem import (
    PointCloud,
    generate_synthetic_dem,
    sample_point_cloud,
)


def example_batch_reconstruction():
    """Example: Reconstruct hills terrain from a scattered survey."""
    print("=" * 60)
    print("BATCH RECONSTRUCTION EXAMPLE")
    print("=" * 60)

    print("\n1. Generating synthetic survey...")
    truth = generate_synthetic_dem(80, 80, mode='hills', seed=42)
    cloud = PointCloud.from_array(sample_point_cloud(truth, num_points=4000, noise_std=0.1, seed=42))
    print(f"   Points: {len(cloud)}")
    print(f"   Height range: [{truth.min():.1f}, {truth.max():.1f}]")

    print("\n2. Running reconstruction...")
    config = DemGmrfConfig()
    config.grid.border = 2.0
    config.gmrf.std_obs = 0.1
    config.validation.checkpoint_ratio = 0.05
    config.validation.seed = 42
    result = run_dem_gmrf(cloud, config, verbose=True)

    print("\n3. Results:")
    ev = result.evaluation
    print(f"   Grid: {result.dem_map.shape[0]} x {result.dem_map.shape[1]}")
    print(f"   Checkpoints: {ev.num_checkpoints}")
    print(f"   RMSE (nearest):  {ev.stats_nn.rmse:.4f}")
    print(f"   RMSE (bilinear): {ev.stats_bilinear.rmse:.4f}")
    print(f"   Mean std-dev: {result.dem_map.grid.std.mean():.4f}")

    return result


def example_incremental_map():
    """Example: Feed readings one at a time and query the surface."""
    print("\n" + "=" * 60)
    print("INCREMENTAL MAP EXAMPLE")
    print("=" * 60)

    dem_map = GMRFDemMap(
        BoundingBox(0, 20, 0, 20),
        resolution=1.0,
        options=GMRFOptions(std_prior=0.5, std_obs=0.05, variance_method="exact"),
    )

    rng = np.random.default_rng(0)
    print("\n1. Inserting readings along two survey lines...")
    for x in np.linspace(0.5, 19.5, 40):
        dem_map.insert_reading(x, 5.0, z=0.2 * x + rng.normal(0, 0.05))
        dem_map.insert_reading(x, 15.0, z=0.2 * x + 2.0 + rng.normal(0, 0.05))

    print("\n2. Updating the map...")
    report = dem_map.update_map_estimation()
    print(f"   {report.method}: {report.iterations} iterations, converged={report.converged}")

    print("\n3. Queries:")
    for x, y in [(10.0, 5.0), (10.0, 10.0), (10.0, 19.0)]:
        p = dem_map.predict(x, y)
        print(f"   z({x:4.1f}, {y:4.1f}) = {p.mean:6.3f} +/- {p.std:.3f}")

    return dem_map


def example_compare_variance_estimators():
    """Example: Compare the variance estimators on a small map."""
    print("\n" + "=" * 60)
    print("VARIANCE ESTIMATOR COMPARISON EXAMPLE")
    print("=" * 60)

    truth = generate_synthetic_dem(30, 30, mode='ridge', seed=1)
    xyz = sample_point_cloud(truth, num_points=400, noise_std=0.2, seed=1)

    results = {}
    for method in ["exact", "hutchinson", "diagonal"]:
        dem_map = GMRFDemMap(
            BoundingBox(0, 30, 0, 30), 1.0,
            options=GMRFOptions(variance_method=method, variance_probes=64, seed=0),
        )
        dem_map.insert_points(xyz)
        report = dem_map.update_map_estimation()
        results[method] = dem_map.grid.variance.copy()
        print(f"\n{method:12s}: mean variance {results[method].mean():.4f} "
              f"({report.elapsed_seconds:.2f}s)")

    print("\n" + "-" * 40)
    print("RELATIVE ERROR VS EXACT")
    print("-" * 40)
    for name in ("hutchinson", "diagonal"):
        rel = np.abs(results[name] - results["exact"]) / results["exact"]
        print(f"{name:12s}: median {np.median(rel):6.1%}  max {rel.max():6.1%}")


def main():
    """Run all examples."""
    print("DEM-GMRF TERRAIN ESTIMATION EXAMPLES")
    print("=" * 60)

    example_batch_reconstruction()
    example_incremental_map()
    example_compare_variance_estimators()

    print("\n" + "=" * 60)
    print("All examples completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
