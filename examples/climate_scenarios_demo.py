"""
Climate Scenario Demonstration Script

This example demonstrates a forced size-spectrum projection:
1. Building the base configuration for a small community
2. Creating temperature, plankton and effort forcing
3. Running a single projection with spin-up
4. Running a climate x fishing scenario batch

Note: The forcing here is synthetic. Real runs read temperature and
log10 plankton abundance from earth-system model output.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pyspectrum import (
    ForcingSeries,
    build_scenarios,
    project,
    run_batch,
    size_grid,
    spectrum_params,
    spectrum_scenario,
)

FIRST_YEAR = 1950
N_YEARS = 151


def make_params():
    """Build the base configuration shared by all scenarios."""
    print("=" * 60)
    print("DEMO 1: Base Configuration")
    print("=" * 60)

    species = pd.DataFrame(
        {
            "species": ["Anchovy", "Cod", "Tuna"],
            "w_inf": [50.0, 500.0, 1000.0],
            "w_mat": [10.0, 100.0, 200.0],
            "temp_min": [5.0, 0.5, 12.0],
            "temp_max": [25.0, 15.0, 30.0],
        }
    )
    grid = size_grid(no_w=60, min_w=1e-3, max_w=1e3, min_w_pp=1e-10)
    params = spectrum_params(species, grid=grid)

    print(params)
    print(params.species[["species", "encounter_scale", "metab_range"]])
    return params


def make_forcing(params, warming):
    """Linear warming on top of a per-species baseline temperature."""
    years = np.arange(FIRST_YEAR, FIRST_YEAR + N_YEARS)
    baseline = np.array([14.0, 6.0, 20.0])
    trend = warming * (years - FIRST_YEAR) / (N_YEARS - 1)
    temperature = pd.DataFrame(
        baseline[None, :] + trend[:, None], index=years, columns=params.species_names
    )

    abundance = params.cc_pp * params.grid.dw_full
    abundance = np.where(abundance > 0, abundance, 1e-30)
    decline = 1.0 - 0.2 * (years - FIRST_YEAR) / (N_YEARS - 1)
    plankton = pd.DataFrame(np.log10(decline[:, None] * abundance[None, :]), index=years)

    return {"temperature": temperature, "plankton": plankton}


def demo_single_run(params):
    """Run one projection with a 100 year spin-up."""
    print("\n" + "=" * 60)
    print("DEMO 2: Single Projection")
    print("=" * 60)

    effort = ForcingSeries.constant(
        [0.2], FIRST_YEAR, N_YEARS, columns=params.gears, name="effort"
    )
    scenario = spectrum_scenario(
        params,
        effort,
        t_max=N_YEARS + 100,
        spinup=100,
        label="ssp585/fishing",
        **make_forcing(params, warming=4.0),
    )
    out = project(scenario)

    for i, name in enumerate(out.species):
        print(f"{name:>8}: biomass {out.biomass[100, i]:.3e} -> {out.biomass[-1, i]:.3e}")


def demo_batch(params):
    """Run every climate x fishing combination concurrently."""
    print("\n" + "=" * 60)
    print("DEMO 3: Scenario Batch")
    print("=" * 60)

    climate = {
        "ssp126": make_forcing(params, warming=1.0),
        "ssp585": make_forcing(params, warming=4.0),
    }
    fishing = {
        "fishing": ForcingSeries.constant([0.2], FIRST_YEAR, N_YEARS, columns=params.gears),
        "no_fishing": ForcingSeries.constant([0.0], FIRST_YEAR, N_YEARS, columns=params.gears),
    }
    scenarios = build_scenarios(params, climate, fishing, t_max=N_YEARS)
    results = run_batch(scenarios, max_workers=4)

    for (c_key, f_key), out in results.items():
        total = out.biomass[-1].sum()
        print(f"{c_key:>8} / {f_key:<10}: total biomass {total:.3e}")


if __name__ == "__main__":
    params = make_params()
    demo_single_run(params)
    demo_batch(params)
