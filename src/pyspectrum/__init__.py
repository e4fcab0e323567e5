"""
PySpectrum - climate-forced size-spectrum projections

Multi-species size-spectrum population model driven by fishing effort,
ocean temperature and plankton time series.
"""

__version__ = "0.1.0"
__author__ = "PySpectrum Development Team"

# Core imports
from pyspectrum.core.exceptions import (
    SpectrumError,
    ConfigurationError,
    ForcingIndexError,
    NumericalError,
)
from pyspectrum.core.params import (
    SizeGrid,
    size_grid,
    SpectrumParams,
    spectrum_params,
)
from pyspectrum.core.forcing import ForcingSeries, time_offset
from pyspectrum.core.projection import (
    SpectrumState,
    SpectrumScenario,
    SpectrumOutput,
    spectrum_scenario,
    project,
    build_scenarios,
    run_batch,
)

__all__ = [
    # Version
    "__version__",
    "__author__",
    # Errors
    "SpectrumError",
    "ConfigurationError",
    "ForcingIndexError",
    "NumericalError",
    # Configuration
    "SizeGrid",
    "size_grid",
    "SpectrumParams",
    "spectrum_params",
    "ForcingSeries",
    "time_offset",
    # Projection
    "SpectrumState",
    "SpectrumScenario",
    "SpectrumOutput",
    "spectrum_scenario",
    "project",
    "build_scenarios",
    "run_batch",
]
