"""
Tests for demgmrf.dem module.

These tests verify dataset loading, output writers and synthetic surveys.
"""

import json

import pytest
import numpy as np


class TestLoadPoints:
    """Tests for text dataset loading."""

    def test_three_columns(self, tmp_path):
        """Test loading x y z rows with comments."""
        from demgmrf.dem.loader import load_points

        path = tmp_path / "pts.xyz"
        path.write_text("% survey\n0 0 1.5\n# another comment\n2.0 1.0 3.25\n")
        cloud = load_points(path)

        assert len(cloud) == 2
        assert not cloud.has_stddev
        np.testing.assert_allclose(cloud.xyz[1], [2.0, 1.0, 3.25])
        assert cloud.source_file == str(path)

    def test_four_columns_with_commas(self, tmp_path):
        """Test comma separators and a per-point stddev column."""
        from demgmrf.dem.loader import load_points

        path = tmp_path / "pts.csv"
        path.write_text("0.0, 0.0, 1.0, 0.1\n1.0, 0.0, 2.0, 0.3\n")
        cloud = load_points(path)

        assert cloud.has_stddev
        np.testing.assert_allclose(cloud.stddev, [0.1, 0.3])
        np.testing.assert_allclose(cloud.stddev_or(9.0), [0.1, 0.3])

    def test_single_row(self, tmp_path):
        """Test that a one-point file still gives an (1, 3) array."""
        from demgmrf.dem.loader import load_points

        path = tmp_path / "one.xyz"
        path.write_text("1 2 3\n")

        assert load_points(path).xyz.shape == (1, 3)

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises InputError."""
        from demgmrf.dem.loader import load_points
        from demgmrf.errors import InputError

        with pytest.raises(InputError):
            load_points(tmp_path / "nope.xyz")

    def test_too_few_columns(self, tmp_path):
        """Test that x y only datasets are rejected."""
        from demgmrf.dem.loader import load_points
        from demgmrf.errors import InputError

        path = tmp_path / "xy.txt"
        path.write_text("0 0\n1 1\n")

        with pytest.raises(InputError):
            load_points(path)

    @pytest.mark.parametrize("content", ["0 0 1\n1 1\n", "0 0 abc\n", "% only a comment\n"])
    def test_malformed(self, tmp_path, content):
        """Test ragged, non-numeric and empty datasets."""
        from demgmrf.dem.loader import load_points
        from demgmrf.errors import InputError

        path = tmp_path / "bad.txt"
        path.write_text(content)

        with pytest.raises(InputError):
            load_points(path)

    def test_input_error_is_value_error(self, tmp_path):
        """Test that callers can catch loader errors as ValueError."""
        from demgmrf.dem.loader import load_points

        path = tmp_path / "bad.txt"
        path.write_text("x y z\n")

        with pytest.raises(ValueError):
            load_points(path)


class TestPointCloud:
    """Tests for the PointCloud container."""

    def test_subset_keeps_stddev(self):
        """Test index selection of points and stddevs together."""
        from demgmrf.dem.loader import PointCloud

        cloud = PointCloud.from_array(np.array([
            [0, 0, 0, 0.1],
            [1, 1, 1, 0.2],
            [2, 2, 2, 0.3],
        ]))
        sub = cloud.subset(np.array([2, 0]))

        np.testing.assert_allclose(sub.xyz[:, 2], [2, 0])
        np.testing.assert_allclose(sub.stddev, [0.3, 0.1])

    def test_observations_default_stddev(self):
        """Test that 3-column clouds fall back to the given stddev."""
        from demgmrf.dem.loader import PointCloud

        cloud = PointCloud.from_array(np.array([[0.0, 1.0, 2.0]]))
        obs = list(cloud.observations(0.25))

        assert len(obs) == 1
        assert obs[0].stddev == 0.25
        assert obs[0].z == 2.0
        assert obs[0].time_invariant


class TestExtents:
    """Tests for bounding box and height range helpers."""

    def test_bounding_box_border(self):
        """Test the margin around the data extent."""
        from demgmrf.dem.loader import compute_bounding_box

        xyz = np.array([[1.0, 5.0, 0.0], [3.0, 9.0, 0.0]])
        bbox = compute_bounding_box(xyz, border=10.0)

        assert (bbox.min_x, bbox.max_x) == (-9.0, 13.0)
        assert (bbox.min_y, bbox.max_y) == (-5.0, 19.0)

    def test_bounding_box_empty(self):
        """Test that an empty point set is rejected."""
        from demgmrf.dem.loader import compute_bounding_box
        from demgmrf.errors import InputError

        with pytest.raises(InputError):
            compute_bounding_box(np.empty((0, 3)))

    def test_z_range_ignores_nodata(self):
        """Test that no-data heights are excluded."""
        from demgmrf.dem.loader import z_range

        xyz = np.array([[0, 0, 1.0], [0, 0, -3.0], [0, 0, 1e7], [0, 0, -1e6]])

        assert z_range(xyz) == (-3.0, 1.0)
        assert z_range(xyz, border=0.5) == (-3.5, 1.5)


class TestExport:
    """Tests for the output writers."""

    @pytest.fixture
    def grid(self):
        from demgmrf.core.coordinates import BoundingBox
        from demgmrf.core.grid import Cell, GridStore

        g = GridStore(BoundingBox(0, 3, 0, 2), 1.0, default_cell=Cell(0.0, 4.0))
        g.mean[...] = np.arange(6, dtype=np.float64).reshape(2, 3)
        return g

    def test_save_grid(self, tmp_path, grid):
        """Test the mean, stddev and metadata files."""
        from demgmrf.dem.export import save_grid

        paths = save_grid(tmp_path / "run_grmf", grid, crs="EPSG:25830")

        assert paths["mean"].name == "run_grmf_mean.txt"
        np.testing.assert_allclose(np.loadtxt(paths["mean"]), grid.mean)
        np.testing.assert_allclose(np.loadtxt(paths["stddev"]), 2.0)

        meta = json.loads(paths["meta"].read_text())
        assert meta["rows"] == 2
        assert meta["cols"] == 3
        assert meta["georeference"]["crs"] == "EPSG:25830"
        assert meta["georeference"]["bounds"] == [0.0, 0.0, 3.0, 2.0]

    def test_residual_stats_header(self, tmp_path):
        """Test the commented header of the stats file."""
        from demgmrf.dem.export import save_residual_stats
        from demgmrf.validation.residuals import compute_stats

        path = tmp_path / "stats.txt"
        save_residual_stats(path, compute_stats([1.0, -2.0, 3.0]))

        lines = path.read_text().splitlines()
        assert lines[0] == "% MAX_ABS_ERR MIN_ABS_ERR AVERAGE_ERR STD_DEV RMSE MEDIAN"
        values = np.loadtxt(path, comments="%")
        assert values.shape == (6,)
        assert values[0] == pytest.approx(3.0)

    def test_save_points(self, tmp_path):
        """Test the comma separated point list."""
        from demgmrf.dem.export import save_points
        from demgmrf.dem.loader import load_points

        xyz = np.array([[0.5, 1.5, 2.25], [3.0, 4.0, 5.0]])
        path = tmp_path / "pts.txt"
        save_points(path, xyz)

        assert ", " in path.read_text()
        np.testing.assert_allclose(load_points(path).xyz, xyz)

    def test_metadata_round_trip(self, grid):
        """Test DEMMetadata serialization."""
        from demgmrf.dem.export import DEMMetadata

        meta = DEMMetadata.from_grid(grid, crs="EPSG:4326")
        restored = DEMMetadata.from_dict(meta.to_dict())

        assert restored == meta

    def test_save_geotiff(self, tmp_path, grid):
        """Test the north-up 2-band GeoTIFF."""
        rasterio = pytest.importorskip("rasterio")
        from demgmrf.dem.export import save_dem

        path = tmp_path / "dem.tif"
        save_dem(grid, path, crs="EPSG:25830")

        with rasterio.open(path) as src:
            assert src.count == 2
            assert (src.height, src.width) == (2, 3)
            mean = src.read(1)
        # First raster row is the northern edge
        np.testing.assert_allclose(mean[0], grid.mean[-1])


class TestSyntheticDEM:
    """Tests for synthetic terrain generation."""

    @pytest.mark.parametrize("mode", ["hills", "ridge", "flat", "valley", "plane"])
    def test_modes(self, mode):
        """Test every terrain mode."""
        from demgmrf.dem.synthetic import generate_synthetic_dem

        dem = generate_synthetic_dem(40, 30, mode=mode, seed=1)

        assert dem.shape == (40, 30)
        assert dem.dtype == np.float64
        assert np.all(np.isfinite(dem))

    def test_plane(self):
        """Test the analytic tilted plane."""
        from demgmrf.dem.synthetic import generate_synthetic_dem

        dem = generate_synthetic_dem(10, 20, mode='plane')

        assert dem[0, 0] == 0.0
        assert dem[2, 3] == pytest.approx(0.1 * 3 + 0.05 * 2)

    def test_reproducibility(self):
        """Test that seed produces reproducible results."""
        from demgmrf.dem.synthetic import generate_synthetic_dem

        dem1 = generate_synthetic_dem(50, 50, mode='hills', seed=42)
        dem2 = generate_synthetic_dem(50, 50, mode='hills', seed=42)

        np.testing.assert_array_equal(dem1, dem2)

    def test_unknown_mode_raises(self):
        """Test that unknown mode raises ValueError."""
        from demgmrf.dem.synthetic import generate_synthetic_dem

        with pytest.raises(ValueError):
            generate_synthetic_dem(10, 10, mode='unknown')


class TestSamplePointCloud:
    """Tests for synthetic surveys."""

    def test_shape_and_extent(self):
        """Test sample count and that points stay within the raster."""
        from demgmrf.dem.synthetic import generate_synthetic_dem, sample_point_cloud

        dem = generate_synthetic_dem(20, 30, mode='hills', seed=0)
        pts = sample_point_cloud(dem, num_points=300, resolution=2.0, origin=(100.0, 50.0), seed=0)

        assert pts.shape == (300, 3)
        assert pts[:, 0].min() >= 100.0 and pts[:, 0].max() <= 160.0
        assert pts[:, 1].min() >= 50.0 and pts[:, 1].max() <= 90.0

    def test_noise_free_plane(self):
        """Test that noise-free samples lie exactly on a plane."""
        from demgmrf.dem.synthetic import generate_synthetic_dem, sample_point_cloud

        dem = generate_synthetic_dem(10, 10, mode='plane')
        pts = sample_point_cloud(dem, num_points=50, noise_std=0.0, seed=3)

        # Cell centre (row r, col c) sits at (c + 0.5, r + 0.5)
        expected = 0.1 * (pts[:, 0] - 0.5) + 0.05 * (pts[:, 1] - 0.5)
        np.testing.assert_allclose(pts[:, 2], expected, atol=1e-10)

    def test_per_point_std(self):
        """Test the optional stddev column."""
        from demgmrf.dem.synthetic import sample_point_cloud

        pts = sample_point_cloud(np.zeros((5, 5)), num_points=20, noise_std=0.2,
                                 seed=1, per_point_std=True)

        assert pts.shape == (20, 4)
        assert np.all((pts[:, 3] >= 0.1) & (pts[:, 3] <= 0.3))
