"""
Tests for scenario construction, the projection engine and batch runs.
"""

import copy
import dataclasses
import logging

import numpy as np
import pandas as pd
import pytest

from conftest import N_STEPS, T_START
from pyspectrum.core.climate import ForcedResource, ThermalEncounter, ThermalEnergy
from pyspectrum.core.exceptions import ConfigurationError, ForcingIndexError, NumericalError
from pyspectrum.core.fishing import get_fishing_mort
from pyspectrum.core.forcing import ForcingSeries
from pyspectrum.core.projection import (
    SpectrumScenario,
    build_scenarios,
    project,
    project_step,
    run_batch,
    spectrum_scenario,
)
from pyspectrum.core.rates import (
    RateFunctions,
    get_feeding_level,
    get_starvation_mort,
)

T_MAX = 6


@pytest.fixture
def scenario(params, unit_effort, optimum_temperature_series, log10_plankton):
    return spectrum_scenario(
        params,
        unit_effort,
        t_max=T_MAX,
        temperature=optimum_temperature_series,
        plankton=log10_plankton,
        label="optimum",
    )


def _temperature(params, row, t_start=T_START, n_steps=N_STEPS):
    return ForcingSeries.constant(
        row, t_start, n_steps, columns=params.species_names, name="temperature"
    )


class TestScenarioConstruction:
    """Test build-time validation and binding."""

    def test_binds_overrides(self, scenario):
        assert isinstance(scenario.rates.encounter, ThermalEncounter)
        assert isinstance(scenario.rates.energy, ThermalEnergy)
        assert isinstance(scenario.rates.resource, ForcedResource)
        assert scenario.t_start == T_START
        assert scenario.steps_per_forcing == 10

    def test_unforced(self, params, unit_effort):
        scenario = spectrum_scenario(params, unit_effort, t_max=T_MAX)

        assert scenario.rates.is_default
        np.testing.assert_array_equal(scenario.start_state.n_pp, params.cc_pp)

    def test_initial_resource_from_plankton(self, scenario):
        np.testing.assert_array_equal(
            scenario.start_state.n_pp, scenario.plankton.row(T_START)
        )

    def test_plankton_converted(self, scenario, params):
        np.testing.assert_allclose(scenario.plankton.row(T_START), params.cc_pp, rtol=1e-10)

    def test_start_state_fishing(self, scenario, params):
        np.testing.assert_allclose(
            scenario.start_state.f_mort, get_fishing_mort(params, np.ones(1))
        )
        assert scenario.start_state.time == float(T_START)

    def test_shares_params(self, scenario, params):
        assert scenario.params is params

    def test_frozen(self, scenario):
        with pytest.raises(dataclasses.FrozenInstanceError):
            scenario.t_max = 100

    def test_horizon_too_long(self, params, unit_effort):
        with pytest.raises(ForcingIndexError):
            spectrum_scenario(params, unit_effort, t_max=N_STEPS + 1)

    def test_temperature_too_short(self, params, unit_effort, optimum_temps):
        temperature = _temperature(params, optimum_temps, n_steps=3)
        with pytest.raises(ForcingIndexError) as exc_info:
            spectrum_scenario(params, unit_effort, t_max=T_MAX, temperature=temperature)
        assert "temperature" in str(exc_info.value)

    def test_temperature_missing_species(self, params, unit_effort):
        temperature = ForcingSeries.constant(
            [10.0, 10.0], T_START, N_STEPS, columns=("Anchovy", "Cod")
        )
        with pytest.raises(ConfigurationError, match="Tuna"):
            spectrum_scenario(params, unit_effort, t_max=T_MAX, temperature=temperature)

    def test_temperature_columns_reordered(self, params, unit_effort):
        temperature = ForcingSeries.constant(
            [20.0, 8.0, 15.0], T_START, N_STEPS, columns=("Tuna", "Cod", "Anchovy")
        )
        scenario = spectrum_scenario(params, unit_effort, t_max=T_MAX, temperature=temperature)
        np.testing.assert_array_equal(scenario.temperature.row(T_START), [15.0, 8.0, 20.0])

    def test_temperature_not_finite(self, params, unit_effort):
        temperature = _temperature(params, [np.nan, 8.0, 20.0])
        with pytest.raises(ConfigurationError, match="finite"):
            spectrum_scenario(params, unit_effort, t_max=T_MAX, temperature=temperature)

    def test_plankton_wrong_size(self, params, unit_effort):
        plankton = ForcingSeries.constant(np.zeros(5), T_START, N_STEPS)
        with pytest.raises(ConfigurationError):
            spectrum_scenario(params, unit_effort, t_max=T_MAX, plankton=plankton)

    def test_effort_missing_gear(self, params):
        effort = ForcingSeries.constant([1.0], T_START, N_STEPS, columns=("Trawl",))
        with pytest.raises(ConfigurationError, match="Longline"):
            spectrum_scenario(params, effort, t_max=T_MAX)

    @pytest.mark.parametrize("dt", [0.0, -0.1, 0.3, 1.5])
    def test_invalid_dt(self, params, unit_effort, dt):
        with pytest.raises(ConfigurationError):
            spectrum_scenario(params, unit_effort, t_max=T_MAX, dt=dt)

    def test_invalid_initial_n(self, params, unit_effort):
        bad = np.full((params.n_species, params.grid.w.size), -1.0)
        with pytest.raises(ConfigurationError, match="initial_n"):
            spectrum_scenario(params, unit_effort, t_max=T_MAX, initial_n=bad)

    def test_dataframe_inputs(self, params, unit_effort, optimum_temperature_series):
        scenario = spectrum_scenario(
            params,
            unit_effort.to_frame(),
            t_max=T_MAX,
            temperature=optimum_temperature_series.to_frame(),
        )
        assert scenario.effort.columns == ("Longline",)
        assert isinstance(scenario.rates.energy, ThermalEnergy)

    def test_spinup(self, params, unit_effort, optimum_temperature_series, log10_plankton):
        scenario = spectrum_scenario(
            params,
            unit_effort,
            t_max=N_STEPS + 5,
            temperature=optimum_temperature_series,
            plankton=log10_plankton,
            spinup=5,
        )

        assert scenario.t_start == T_START - 5
        assert scenario.temperature.origin == T_START - 5
        assert scenario.plankton.n_steps == N_STEPS + 5
        np.testing.assert_array_equal(
            scenario.temperature.row(T_START - 5), optimum_temperature_series.row(T_START)
        )


class TestProject:
    """Test the time-stepping integrator."""

    def test_output_shapes(self, scenario, params):
        out = project(scenario)
        n_sp, n_w = params.n_species, params.grid.w.size

        np.testing.assert_array_equal(out.times, np.arange(T_START, T_START + T_MAX + 1))
        assert out.n.shape == (T_MAX + 1, n_sp, n_w)
        assert out.n_pp.shape == (T_MAX + 1, params.grid.w_full.size)
        assert out.biomass.shape == (T_MAX + 1, n_sp)
        assert out.yield_.shape == (T_MAX + 1, n_sp)
        assert out.species == ["Anchovy", "Cod", "Tuna"]
        assert out.label == "optimum"
        assert out.end_state.time == float(T_START + T_MAX)

    def test_densities_valid(self, scenario):
        out = project(scenario)

        assert np.all(np.isfinite(out.n)) and np.all(out.n >= 0)
        assert np.all(np.isfinite(out.n_pp)) and np.all(out.n_pp >= 0)

    def test_start_state_unchanged(self, scenario):
        before = np.array(scenario.start_state.n)
        project(scenario)
        np.testing.assert_array_equal(scenario.start_state.n, before)
        assert scenario.start_state.time == float(T_START)

    def test_deterministic(self, scenario):
        first = project(scenario)
        second = project(scenario)

        np.testing.assert_array_equal(first.n, second.n)
        np.testing.assert_array_equal(first.n_pp, second.n_pp)

    def test_forced_resource_follows_plankton(self, scenario):
        out = project(scenario)
        for k in range(T_MAX):
            np.testing.assert_array_equal(out.n_pp[k + 1], scenario.plankton.row(T_START + k))

    def test_forced_resource_ignores_initial_resource(
        self, params, unit_effort, optimum_temperature_series, log10_plankton
    ):
        kwargs = dict(
            t_max=T_MAX, temperature=optimum_temperature_series, plankton=log10_plankton
        )
        base = project(spectrum_scenario(params, unit_effort, **kwargs))
        perturbed = project(
            spectrum_scenario(
                params, unit_effort, initial_n_pp=0.1 * np.array(params.cc_pp), **kwargs
            )
        )
        np.testing.assert_array_equal(base.n_pp[1:], perturbed.n_pp[1:])

    def test_fishing_output(self, scenario, params):
        out = project(scenario)

        np.testing.assert_allclose(out.f_mort[1], params.selectivity[:, 0, :])
        np.testing.assert_array_equal(out.effort[1:], 1.0)
        assert np.all(out.yield_[1:] > 0)

    def test_logs_progress(self, scenario, caplog):
        with caplog.at_level(logging.INFO, logger="pyspectrum"):
            project(scenario)
        assert "Projecting scenario 'optimum'" in caplog.text


class TestClimateBehaviour:
    """End-to-end behaviour under thermal forcing."""

    def test_optimum_without_fishing(
        self, params, zero_effort, optimum_temperature_series, log10_plankton
    ):
        """At the thermal optimum with ample food there is no energy deficit."""
        scenario = spectrum_scenario(
            params,
            zero_effort,
            t_max=T_MAX,
            temperature=optimum_temperature_series,
            plankton=log10_plankton,
            starvation_xi=0.1,
        )
        out = project(scenario)

        np.testing.assert_array_equal(out.f_mort, 0.0)
        np.testing.assert_array_equal(out.yield_, 0.0)

        for k in (0, T_MAX):
            step = T_START + min(k, T_MAX - 1)
            n, n_pp = out.n[k], out.n_pp[k]
            encounter = scenario.rates.encounter(params, n, n_pp, step)
            feeding_level = get_feeding_level(params, encounter)
            energy = scenario.rates.energy(params, n, n_pp, encounter, feeding_level, step)

            assert np.all(energy >= 0)
            np.testing.assert_array_equal(get_starvation_mort(params, energy, 0.1), 0.0)

    def test_outside_tolerance_abundance_declines(self, params, zero_effort, log10_plankton):
        """Out-of-band temperature stops feeding, growth and reproduction."""
        too_warm = params.vector("temp_max") + 2.0
        scenario = spectrum_scenario(
            params,
            zero_effort,
            t_max=T_MAX,
            temperature=_temperature(params, too_warm),
            plankton=log10_plankton,
        )
        out = project(scenario)

        assert np.all(np.diff(out.n, axis=0) <= 0)
        np.testing.assert_array_equal(out.feeding_level[1:], 0.0)
        assert np.all(np.diff(out.biomass, axis=0) < 0)

    def test_warming_changes_outcome(self, params, zero_effort, log10_plankton, optimum_temps):
        kwargs = dict(t_max=T_MAX, plankton=log10_plankton)
        optimum = project(
            spectrum_scenario(
                params, zero_effort, temperature=_temperature(params, optimum_temps), **kwargs
            )
        )
        warmer = project(
            spectrum_scenario(
                params,
                zero_effort,
                temperature=_temperature(params, optimum_temps + 2.0),
                **kwargs,
            )
        )
        assert not np.allclose(optimum.n[-1], warmer.n[-1])


class TestProjectStep:
    """Test a single sub-step."""

    def test_updates_in_place(self, scenario, params):
        state = copy.deepcopy(scenario.start_state)
        f_mort = get_fishing_mort(params, np.ones(1))

        result = project_step(scenario, state, T_START, f_mort)

        assert result is state
        assert state.time == pytest.approx(T_START + 0.1)
        assert state.f_mort is f_mort
        assert not np.array_equal(state.n, scenario.start_state.n)

    def test_negative_resource_raises(self, scenario):
        def negative_resource(params, n, n_pp, resource_mort, dt, step=None):
            return -np.ones_like(n_pp)

        broken = dataclasses.replace(
            scenario, rates=dataclasses.replace(scenario.rates, resource=negative_resource)
        )

        with pytest.raises(NumericalError) as exc_info:
            project(broken)
        assert exc_info.value.species == "resource"
        assert exc_info.value.time == pytest.approx(T_START + 0.1)

    def test_nan_energy_names_species(self, scenario):
        def nan_energy(params, n, n_pp, encounter, feeding_level, step=None):
            energy = np.zeros_like(n)
            energy[1] = np.nan
            return energy

        broken = dataclasses.replace(scenario, rates=RateFunctions(energy=nan_energy))

        with pytest.raises(NumericalError) as exc_info:
            project(broken)
        assert exc_info.value.species == "Cod"
        assert exc_info.value.time == pytest.approx(T_START)


class TestBatch:
    """Test scenario combinations and concurrent execution."""

    @pytest.fixture
    def climate(self, params, optimum_temps, log10_plankton):
        return {
            "optimum": {"temperature": _temperature(params, optimum_temps)},
            "warm": {
                "temperature": _temperature(params, optimum_temps + 2.0),
                "plankton": log10_plankton,
            },
            "unforced": {},
        }

    @pytest.fixture
    def fishing(self, params, zero_effort, unit_effort):
        half = ForcingSeries.constant([0.5], T_START, N_STEPS, columns=params.gears)
        double = ForcingSeries.constant([2.0], T_START, N_STEPS, columns=params.gears)
        return {"none": zero_effort, "half": half, "full": unit_effort, "double": double}

    def test_build_scenarios(self, params, climate, fishing):
        scenarios = build_scenarios(params, climate, fishing, t_max=T_MAX)

        assert len(scenarios) == 12
        assert ("warm", "double") in scenarios
        assert scenarios[("warm", "double")].label == "warm/double"
        assert all(s.params is params for s in scenarios.values())
        assert all(isinstance(s, SpectrumScenario) for s in scenarios.values())
        assert scenarios[("unforced", "none")].rates.is_default

    def test_unknown_forcing(self, params, fishing):
        with pytest.raises(ConfigurationError, match="salinity"):
            build_scenarios(params, {"bad": {"salinity": None}}, fishing, t_max=T_MAX)

    def test_batch_matches_sequential(self, params, climate, fishing):
        scenarios = build_scenarios(
            params,
            {k: climate[k] for k in ("optimum", "warm")},
            {k: fishing[k] for k in ("none", "full")},
            t_max=3,
        )

        batch = run_batch(scenarios, max_workers=2)

        assert list(batch) == list(scenarios)
        for key, scenario in scenarios.items():
            sequential = project(scenario)
            np.testing.assert_allclose(batch[key].n, sequential.n, rtol=1e-12, atol=0)
            np.testing.assert_allclose(batch[key].n_pp, sequential.n_pp, rtol=1e-12, atol=0)
            assert batch[key].label == scenario.label

    def test_batch_propagates_failure(self, scenario):
        def negative_resource(params, n, n_pp, resource_mort, dt, step=None):
            return -np.ones_like(n_pp)

        broken = dataclasses.replace(
            scenario, rates=dataclasses.replace(scenario.rates, resource=negative_resource)
        )

        with pytest.raises(NumericalError):
            run_batch({"ok": scenario, "broken": broken}, max_workers=2)
