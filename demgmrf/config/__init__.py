"""
Configuration management for DEM-GMRF.

This module provides dataclass-based configuration models with
validation and YAML/JSON persistence.
"""

from demgmrf.config.settings import (
    DemGmrfConfig,
    GridConfig,
    GMRFConfig,
    ValidationConfig,
    OutputConfig,
    load_config,
)

__all__ = [
    "DemGmrfConfig",
    "GridConfig",
    "GMRFConfig",
    "ValidationConfig",
    "OutputConfig",
    "load_config",
]
