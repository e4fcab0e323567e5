"""
Core module for PySpectrum.

Contains the size-spectrum base configuration, the thermal scaling, the
forcing adapter, the rate strategies and the projection engine.
"""

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
    check_species_params,
    get_initial_n,
)
from pyspectrum.core.forcing import ForcingSeries, time_offset, plankton_density
from pyspectrum.core.rates import RateFunctions, default_rate_functions
from pyspectrum.core.climate import (
    ThermalEncounter,
    ThermalEnergy,
    ForcedResource,
    climate_rate_functions,
)
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
    # Errors
    "SpectrumError",
    "ConfigurationError",
    "ForcingIndexError",
    "NumericalError",
    # Parameters
    "SizeGrid",
    "size_grid",
    "SpectrumParams",
    "spectrum_params",
    "check_species_params",
    "get_initial_n",
    # Forcing
    "ForcingSeries",
    "time_offset",
    "plankton_density",
    # Rates
    "RateFunctions",
    "default_rate_functions",
    "ThermalEncounter",
    "ThermalEnergy",
    "ForcedResource",
    "climate_rate_functions",
    # Projection
    "SpectrumState",
    "SpectrumScenario",
    "SpectrumOutput",
    "spectrum_scenario",
    "project",
    "build_scenarios",
    "run_batch",
]
