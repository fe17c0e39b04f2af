"""
Tests for demgmrf.config module.
"""

import pytest


class TestDemGmrfConfig:
    """Tests for the configuration dataclasses."""

    def test_defaults(self):
        """Test the documented default values."""
        from demgmrf.config.settings import DemGmrfConfig

        config = DemGmrfConfig().validate()

        assert config.grid.resolution == 1.0
        assert config.grid.border == 10.0
        assert config.gmrf.std_prior == 1.0
        assert config.gmrf.std_obs == pytest.approx(0.2)
        assert config.validation.checkpoint_ratio == 0.01
        assert config.output.prefix == "demgmrf_out"
        assert config.gmrf.lambda_prior == 1.0

    @pytest.mark.parametrize("section,key,value", [
        ("grid", "resolution", 0.0),
        ("grid", "border", -1.0),
        ("gmrf", "std_prior", 0.0),
        ("gmrf", "std_obs", -0.2),
        ("gmrf", "transient_decay", 1.5),
        ("gmrf", "solver", "jacobi"),
        ("gmrf", "variance_method", "sampling"),
        ("gmrf", "variance_probes", 0),
        ("validation", "checkpoint_ratio", 1.2),
    ])
    def test_invalid_values(self, section, key, value):
        """Test that validate rejects out-of-range values."""
        from demgmrf.config.settings import DemGmrfConfig
        from demgmrf.errors import ConfigError

        config = DemGmrfConfig()
        setattr(getattr(config, section), key, value)

        with pytest.raises(ConfigError):
            config.validate()

    def test_gmrf_options(self):
        """Test conversion to estimator options."""
        from demgmrf.config.settings import DemGmrfConfig

        config = DemGmrfConfig()
        config.gmrf.std_prior = 2.0
        config.gmrf.variance_method = "diagonal"
        config.validation.seed = 5
        opts = config.gmrf_options()

        assert opts.lambda_prior == 0.25
        assert opts.variance_method == "diagonal"
        assert opts.seed == 5

    def test_from_dict_unknown_key(self):
        """Test that unknown keys raise ConfigError."""
        from demgmrf.config.settings import DemGmrfConfig
        from demgmrf.errors import ConfigError

        with pytest.raises(ConfigError):
            DemGmrfConfig.from_dict({"gmrf": {"std_prior": 1.0, "smoothness": 3}})

    def test_presets(self):
        """Test the terrain presets."""
        from demgmrf.config.settings import DemGmrfConfig

        smooth = DemGmrfConfig.for_smooth_terrain().validate()
        rough = DemGmrfConfig.for_rough_terrain().validate()

        assert smooth.gmrf.std_prior < rough.gmrf.std_prior
        assert smooth.gmrf.skip_variance
        assert rough.grid.resolution == 0.5


class TestConfigFiles:
    """Tests for loading and saving configuration files."""

    def test_json_round_trip(self, tmp_path):
        """Test saving and reloading JSON."""
        from demgmrf.config.settings import DemGmrfConfig, load_config

        config = DemGmrfConfig()
        config.grid.resolution = 2.5
        config.gmrf.solver = "direct"
        config.input_path = "survey.xyz"
        path = tmp_path / "run.json"
        config.to_json(path)

        loaded = load_config(path)

        assert loaded == config

    def test_yaml_round_trip(self, tmp_path):
        """Test saving and reloading YAML."""
        pytest.importorskip("yaml")
        from demgmrf.config.settings import DemGmrfConfig, load_config

        config = DemGmrfConfig.for_rough_terrain()
        config.validation.seed = 42
        path = tmp_path / "run.yaml"
        config.to_yaml(path)

        assert load_config(path) == config

    def test_partial_yaml(self, tmp_path):
        """Test that missing sections keep their defaults."""
        pytest.importorskip("yaml")
        from demgmrf.config.settings import load_config

        path = tmp_path / "run.yml"
        path.write_text("gmrf:\n  std_prior: 0.5\n")
        config = load_config(path)

        assert config.gmrf.std_prior == 0.5
        assert config.grid.resolution == 1.0

    def test_no_path_gives_defaults(self):
        """Test load_config without a file."""
        from demgmrf.config.settings import DemGmrfConfig, load_config

        assert load_config() == DemGmrfConfig()

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises ConfigError."""
        from demgmrf.config.settings import load_config
        from demgmrf.errors import ConfigError

        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")

    def test_unsupported_suffix(self, tmp_path):
        """Test that unknown file formats raise ConfigError."""
        from demgmrf.config.settings import load_config
        from demgmrf.errors import ConfigError

        path = tmp_path / "run.toml"
        path.write_text("[gmrf]\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_values_in_file(self, tmp_path):
        """Test that loaded files are validated."""
        from demgmrf.config.settings import load_config
        from demgmrf.errors import ConfigError

        path = tmp_path / "run.json"
        path.write_text('{"grid": {"resolution": -1}}')

        with pytest.raises(ConfigError):
            load_config(path)
