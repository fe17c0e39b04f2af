"""
Configuration settings for DEM-GMRF runs.

This module provides typed configuration classes for all DEM-GMRF
settings, supporting loading from YAML/JSON files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union
import json

from demgmrf.core.estimator import GMRFOptions
from demgmrf.errors import ConfigError


@dataclass
class GridConfig:
    """
    Grid geometry.

    Attributes:
        resolution: Side length of each DEM cell (dataset units)
        border: Margin added around the data extent
    """
    resolution: float = 1.0
    border: float = 10.0


@dataclass
class GMRFConfig:
    """
    GMRF estimator settings.

    Attributes:
        std_prior: Std-dev of neighbouring-cell height differences (terrain "tolerance")
        std_obs: Default std-dev of each point observation
        observation_scale: Global precision scale factor for observations
        transient_decay: Information kept by time-variant readings per update
        skip_variance: Skip variance estimation
        solver: "cg" or "direct"
        tolerance: CG relative tolerance
        max_iterations: CG iteration cap (10 * cells if None)
        variance_method: "hutchinson", "diagonal" or "exact"
        variance_probes: Probes for the Hutchinson variance estimator
    """
    std_prior: float = 1.0
    std_obs: float = 0.20
    observation_scale: float = 1.0
    transient_decay: float = 1.0
    skip_variance: bool = False
    solver: str = "cg"
    tolerance: float = 1e-8
    max_iterations: Optional[int] = None
    variance_method: str = "hutchinson"
    variance_probes: int = 16

    @property
    def lambda_prior(self) -> float:
        return 1.0 / self.std_prior ** 2


@dataclass
class ValidationConfig:
    """
    Checkpoint settings.

    Attributes:
        checkpoint_ratio: Fraction of points withheld as checkpoints (0..1)
        seed: Random seed for the checkpoint split and variance probing
    """
    checkpoint_ratio: float = 0.01
    seed: Optional[int] = None


@dataclass
class OutputConfig:
    """
    Output settings.

    Attributes:
        prefix: Prefix for all output filenames
        save_geotiff: Also write the fitted grid as a GeoTIFF
        crs: CRS of the dataset coordinates, for the GeoTIFF
    """
    prefix: str = "demgmrf_out"
    save_geotiff: bool = False
    crs: Optional[str] = None


@dataclass
class DemGmrfConfig:
    """
    Main DEM-GMRF configuration.

    Attributes:
        grid: Grid geometry
        gmrf: Estimator settings
        validation: Checkpoint settings
        output: Output settings
        input_path: Optional path to the point dataset
    """
    grid: GridConfig = field(default_factory=GridConfig)
    gmrf: GMRFConfig = field(default_factory=GMRFConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    input_path: Optional[str] = None

    def validate(self) -> "DemGmrfConfig":
        """
        Check every value; returns self for chaining.

        Raises:
            ConfigError: On the first invalid value
        """
        if not self.grid.resolution > 0:
            raise ConfigError(f"resolution must be > 0, got {self.grid.resolution}")
        if not self.grid.border >= 0:
            raise ConfigError(f"border must be >= 0, got {self.grid.border}")
        # Estimator settings are checked by GMRFOptions
        self.gmrf_options()
        if not 0.0 <= self.validation.checkpoint_ratio <= 1.0:
            raise ConfigError(
                f"checkpoint_ratio must be in [0, 1], got {self.validation.checkpoint_ratio}"
            )
        return self

    def gmrf_options(self) -> GMRFOptions:
        """Estimator options for GMRFDemMap."""
        g = self.gmrf
        return GMRFOptions(
            std_prior=g.std_prior,
            std_obs=g.std_obs,
            observation_scale=g.observation_scale,
            transient_decay=g.transient_decay,
            skip_variance=g.skip_variance,
            solver=g.solver,
            tolerance=g.tolerance,
            max_iterations=g.max_iterations,
            variance_method=g.variance_method,
            variance_probes=g.variance_probes,
            seed=self.validation.seed,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        def convert(obj):
            if hasattr(obj, '__dataclass_fields__'):
                return {k: convert(v) for k, v in obj.__dict__.items()}
            elif isinstance(obj, (list, tuple)):
                return [convert(v) for v in obj]
            else:
                return obj
        return convert(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DemGmrfConfig":
        """Create from dictionary."""
        data = data or {}
        try:
            grid = GridConfig(**data.get('grid', {}))
            gmrf = GMRFConfig(**data.get('gmrf', {}))
            validation = ValidationConfig(**data.get('validation', {}))
            output = OutputConfig(**data.get('output', {}))
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        return cls(
            grid=grid,
            gmrf=gmrf,
            validation=validation,
            output=output,
            input_path=data.get('input_path'),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "DemGmrfConfig":
        """Load configuration from YAML file."""
        try:
            import yaml
        except ImportError:
            raise ImportError("PyYAML is required for YAML config files. Install with: pip install pyyaml")

        path = Path(path)
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "DemGmrfConfig":
        """Load configuration from JSON file."""
        path = Path(path)
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        try:
            import yaml
        except ImportError:
            raise ImportError("PyYAML is required for YAML config files")

        path = Path(path)
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_json(self, path: Union[str, Path]) -> None:
        """Save configuration to JSON file."""
        path = Path(path)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def for_smooth_terrain(cls) -> "DemGmrfConfig":
        """Preset for gentle terrain: strong smoothing, no variance estimation."""
        return cls(gmrf=GMRFConfig(std_prior=0.2, skip_variance=True))

    @classmethod
    def for_rough_terrain(cls) -> "DemGmrfConfig":
        """Preset for rugged terrain: weak smoothing, finer cells."""
        return cls(
            grid=GridConfig(resolution=0.5),
            gmrf=GMRFConfig(std_prior=3.0),
        )


def load_config(path: Optional[Union[str, Path]] = None) -> DemGmrfConfig:
    """
    Load configuration from file or return defaults.

    Supports YAML and JSON files based on extension.

    Args:
        path: Path to configuration file (optional)

    Returns:
        Validated DemGmrfConfig instance

    Raises:
        ConfigError: If the file is missing, has an unsupported format, or
            contains invalid values
    """
    if path is None:
        return DemGmrfConfig()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in ['.yaml', '.yml']:
        config = DemGmrfConfig.from_yaml(path)
    elif suffix == '.json':
        config = DemGmrfConfig.from_json(path)
    else:
        raise ConfigError(f"Unsupported configuration format: {suffix}")

    return config.validate()
