"""Shared fixtures for the PySpectrum test suite."""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pyspectrum.core.forcing import ForcingSeries
from pyspectrum.core.params import size_grid, spectrum_params
from pyspectrum.core.thermal import thermal_performance

T_START = 2000
N_STEPS = 12


def optimum_temperature(temp_min, temp_max, resolution=0.001):
    """Temperature of peak thermal performance, found by dense sampling."""
    temps = np.arange(temp_min, temp_max, resolution)
    return float(temps[np.argmax(thermal_performance(temps, temp_min, temp_max))])


@pytest.fixture
def species_df():
    """Three-species community with distinct tolerance bands."""
    return pd.DataFrame(
        {
            "species": ["Anchovy", "Cod", "Tuna"],
            "w_inf": [50.0, 500.0, 1000.0],
            "w_mat": [10.0, 100.0, 200.0],
            "temp_min": [5.0, 0.5, 12.0],
            "temp_max": [25.0, 15.0, 30.0],
            "knife_edge_size1": [5.0, 50.0, 100.0],
            "knife_edge_size2": [10.0, 100.0, 200.0],
        }
    )


@pytest.fixture
def grid():
    return size_grid(no_w=40, min_w=1e-3, max_w=1e3, min_w_pp=1e-8)


@pytest.fixture
def params(species_df, grid):
    # Resource spans the whole grid so forced plankton stays finite in log10
    return spectrum_params(species_df, grid=grid, w_pp_cutoff=2e3)


@pytest.fixture
def optimum_temps(species_df):
    return np.array(
        [
            optimum_temperature(t_min, t_max)
            for t_min, t_max in zip(species_df["temp_min"], species_df["temp_max"])
        ]
    )


@pytest.fixture
def zero_effort(params):
    return ForcingSeries.constant(
        [0.0], T_START, N_STEPS, columns=params.gears, name="effort"
    )


@pytest.fixture
def unit_effort(params):
    return ForcingSeries.constant(
        [1.0], T_START, N_STEPS, columns=params.gears, name="effort"
    )


@pytest.fixture
def optimum_temperature_series(params, optimum_temps):
    return ForcingSeries.constant(
        optimum_temps, T_START, N_STEPS, columns=params.species_names, name="temperature"
    )


@pytest.fixture
def log10_plankton(params):
    """Constant log10 plankton abundance per bin at carrying capacity."""
    row = np.log10(params.cc_pp * params.grid.dw_full)
    return ForcingSeries.constant(row, T_START, N_STEPS, name="plankton")
