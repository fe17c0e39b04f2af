"""
Error taxonomy for DEM-GMRF.

Fatal conditions (bad input files, bad configuration) propagate to the
caller. Per-item conditions (a rejected observation, a query outside the
grid) are raised by the core functions and counted by the batch pipeline,
which keeps going.
"""


class DemGmrfError(Exception):
    """Base class for all DEM-GMRF errors."""


class InputError(DemGmrfError, ValueError):
    """Missing dataset file, malformed rows, or fewer than 3 columns."""


class ConfigError(DemGmrfError, ValueError):
    """Invalid configuration value (resolution, std-devs, ratios...)."""


class InvalidObservationError(DemGmrfError, ValueError):
    """A point reading that cannot be fused into the grid."""


class OutOfBoundsError(DemGmrfError, IndexError):
    """A coordinate or cell index outside the grid extent."""


class ConvergenceWarning(RuntimeWarning):
    """The iterative solver stopped at its iteration cap before reaching tolerance."""
