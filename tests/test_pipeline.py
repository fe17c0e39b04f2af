"""
End-to-end tests for the reconstruction pipeline and the command line.
"""

import pytest
import numpy as np


@pytest.fixture
def plane_cloud():
    """Noisy survey of a tilted plane over a 40 x 40 area."""
    from demgmrf.dem.loader import PointCloud
    from demgmrf.dem.synthetic import generate_synthetic_dem, sample_point_cloud

    dem = generate_synthetic_dem(40, 40, mode='plane')
    pts = sample_point_cloud(dem, num_points=3000, noise_std=0.05, seed=0)
    return PointCloud.from_array(pts)


@pytest.fixture
def fast_config():
    from demgmrf.config.settings import DemGmrfConfig

    config = DemGmrfConfig()
    config.grid.border = 2.0
    config.gmrf.skip_variance = True
    config.validation.checkpoint_ratio = 0.1
    config.validation.seed = 0
    return config


class TestRunDemGmrf:
    """Tests for run_dem_gmrf."""

    def test_plane_reconstruction(self, plane_cloud, fast_config):
        """Test checkpoint accuracy on a synthetic plane."""
        from demgmrf.pipeline.runner import run_dem_gmrf

        result = run_dem_gmrf(plane_cloud, fast_config, verbose=False)

        assert result.num_checkpoints == 300
        assert result.num_inserted == 2700
        assert result.num_skipped == 0
        assert result.solve_report.converged
        assert result.evaluation.num_out_of_bounds == 0
        assert result.evaluation.stats_bilinear.rmse < 0.2
        assert result.evaluation.stats_nn.rmse < 0.25
        assert abs(result.evaluation.stats_bilinear.mean) < 0.05

    def test_checkpoints_not_inserted(self, plane_cloud, fast_config):
        """Test that withheld points are disjoint from inserted ones."""
        from demgmrf.pipeline.runner import run_dem_gmrf

        result = run_dem_gmrf(plane_cloud, fast_config, verbose=False)

        assert not set(result.insert_indices) & set(result.checkpoint_indices)
        assert result.dem_map.accumulator.num_inserted == result.insert_indices.size

    def test_seed_reproducible(self, plane_cloud, fast_config):
        """Test that a fixed seed gives identical runs."""
        from demgmrf.pipeline.runner import run_dem_gmrf

        a = run_dem_gmrf(plane_cloud, fast_config, verbose=False)
        b = run_dem_gmrf(plane_cloud, fast_config, verbose=False)

        np.testing.assert_array_equal(a.checkpoint_indices, b.checkpoint_indices)
        np.testing.assert_array_equal(a.dem_map.grid.mean, b.dem_map.grid.mean)

    def test_no_checkpoints(self, plane_cloud, fast_config):
        """Test that a zero ratio skips evaluation."""
        from demgmrf.pipeline.runner import run_dem_gmrf

        fast_config.validation.checkpoint_ratio = 0.0
        result = run_dem_gmrf(plane_cloud, fast_config, verbose=False)

        assert result.evaluation is None
        assert result.num_inserted == len(plane_cloud)
        assert result.to_dict()["evaluation"] is None

    def test_per_point_stddev(self, fast_config):
        """Test that a stddev column is used for every reading."""
        from demgmrf.dem.loader import PointCloud
        from demgmrf.pipeline.runner import run_dem_gmrf

        cloud = PointCloud.from_array(np.array([
            [0.5, 0.5, 1.0, 0.5],
            [1.5, 0.5, 1.0, 0.5],
        ]))
        fast_config.validation.checkpoint_ratio = 0.0
        result = run_dem_gmrf(cloud, fast_config, verbose=False)

        assert result.dem_map.grid.information_sum.sum() == pytest.approx(8.0)

    def test_verbose_banners(self, plane_cloud, fast_config, capsys):
        """Test the stage progress output."""
        from demgmrf.pipeline.runner import run_dem_gmrf

        run_dem_gmrf(plane_cloud, fast_config, verbose=True)
        out = capsys.readouterr().out

        for stage in ("[2]", "[3]", "[4]", "[5]", "[6]", "[7]"):
            assert stage in out

    def test_save_outputs(self, tmp_path, plane_cloud, fast_config):
        """Test that every output file is written."""
        from demgmrf.pipeline.runner import run_dem_gmrf, save_outputs

        result = run_dem_gmrf(plane_cloud, fast_config, verbose=False)
        written = save_outputs(result, plane_cloud, prefix=tmp_path / "out" / "run")

        for name in ("residuals_NN", "residuals_Bi", "stats_NN", "stats_Bi",
                     "pts_map", "pts_chk", "grid_mean", "grid_stddev", "grid_meta"):
            assert written[name].exists(), name

        assert written["grid_mean"].name == "run_grmf_mean.txt"
        assert np.loadtxt(written["residuals_NN"]).shape == (300,)
        assert np.loadtxt(written["pts_map"], delimiter=",").shape == (2700, 3)
        assert np.loadtxt(written["grid_mean"]).shape == result.dem_map.shape


class TestCLI:
    """Tests for the dem-gmrf command."""

    def test_main(self, tmp_path, plane_cloud):
        """Test a full command-line run."""
        from demgmrf.cli import main
        from demgmrf.dem.export import save_points

        data = tmp_path / "survey.xyz"
        save_points(data, plane_cloud.xyz[:500])
        prefix = tmp_path / "cli"

        code = main([
            "-i", str(data), "-o", str(prefix), "-r", "2.0",
            "-c", "0.1", "--border", "1", "--seed", "3",
            "--skip-variance", "-q",
        ])

        assert code == 0
        assert (tmp_path / "cli_grmf_mean.txt").exists()
        assert (tmp_path / "cli_chkpt_residuals_Bi_stats.txt").exists()

    def test_exact_variance_on_large_grid(self, tmp_path, capsys):
        """Test that an oversized exact-variance run exits with code 1."""
        from demgmrf.cli import main
        from demgmrf.dem.export import save_points

        rng = np.random.default_rng(0)
        data = tmp_path / "survey.xyz"
        save_points(data, rng.uniform(0, 50, size=(200, 3)))

        code = main(["-i", str(data), "-o", str(tmp_path / "run"),
                     "--variance-method", "exact", "-q"])

        assert code == 1
        assert "Exact variance refused" in capsys.readouterr().err
        assert not (tmp_path / "run_grmf_mean.txt").exists()

    def test_missing_input_file(self, tmp_path, capsys):
        """Test that a missing dataset returns exit code 1."""
        from demgmrf.cli import main

        code = main(["-i", str(tmp_path / "missing.xyz"), "-q"])

        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_no_input(self):
        """Test that running without an input is a usage error."""
        from demgmrf.cli import main

        with pytest.raises(SystemExit):
            main(["-q"])

    def test_overrides(self):
        """Test that command-line values override the configuration."""
        from demgmrf.cli import apply_overrides, build_parser
        from demgmrf.config.settings import DemGmrfConfig

        args = build_parser().parse_args(["-i", "a.xyz", "--std-prior", "2", "--solver", "direct"])
        config = apply_overrides(DemGmrfConfig(), args)

        assert config.input_path == "a.xyz"
        assert config.gmrf.std_prior == 2.0
        assert config.gmrf.solver == "direct"
        assert config.grid.resolution == 1.0
