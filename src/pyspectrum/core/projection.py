"""
Size-spectrum projection engine.

This module contains the forced projection: scenario construction with
build-time validation of every attached forcing series, the time-stepping
integrator and batch execution of independent scenarios.

Each forcing step (one row of every forcing table) is split into
``round(1 / dt)`` sub-steps. A sub-step evaluates all rates from the state
at its start and then solves the upwind size-transport equation

    dN/dt + d(g N)/dw = -Z N

as a lower-bidiagonal system in size, which keeps densities non-negative
for any step length.
"""

from __future__ import annotations

import copy
import itertools
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
import scipy.sparse
from scipy.sparse.linalg import spsolve_triangular

from pyspectrum.core.climate import climate_rate_functions
from pyspectrum.core.constants import DEFAULT_DT
from pyspectrum.core.exceptions import ConfigurationError, NumericalError, SpectrumError
from pyspectrum.core.fishing import get_fishing_mort
from pyspectrum.core.forcing import ForcingSeries, check_effort, plankton_density
from pyspectrum.core.params import SpectrumParams, get_initial_n
from pyspectrum.core.rates import (
    RateFunctions,
    get_e_growth,
    get_e_repro,
    get_feeding_level,
    get_pred_mort,
    get_pred_rate,
    get_rdd,
    get_rdi,
    get_resource_mort,
    get_starvation_mort,
)
from pyspectrum.logger import get_logger

logger = get_logger(__name__)

SeriesLike = Union[ForcingSeries, pd.DataFrame]


@dataclass
class SpectrumState:
    """State of a projection at one time.

    Owned by the projection engine, which updates it in place every
    sub-step.

    Attributes
    ----------
    n : np.ndarray
        Consumer abundance density [n_species, n_w]
    n_pp : np.ndarray
        Resource density [n_w_full]
    f_mort : np.ndarray
        Fishing mortality in force [n_species, n_w]
    feeding_level : np.ndarray
        Feeding level [n_species, n_w]
    time : float
        Time label
    """

    n: np.ndarray
    n_pp: np.ndarray
    f_mort: np.ndarray
    feeding_level: np.ndarray
    time: float = 0.0


@dataclass(frozen=True, eq=False)
class SpectrumScenario:
    """Complete projection scenario.

    A per-scenario overlay on the shared base configuration: it references
    ``params`` and adds the rate strategies, forcing and horizon.

    Attributes
    ----------
    params : SpectrumParams
        Shared base configuration
    rates : RateFunctions
        Encounter, energy and resource strategies
    effort : ForcingSeries
        Fishing effort by gear
    t_start : int
        First step label
    t_max : int
        Number of forcing steps to simulate
    dt : float
        Sub-step length as a fraction of one forcing step
    start_state : SpectrumState
        Initial state
    temperature : ForcingSeries, optional
        Temperature by species
    plankton : ForcingSeries, optional
        Resource density by size bin
    starvation_xi : float, optional
        Reserve fraction for starvation mortality (None = off)
    label : str
        Scenario name
    """

    params: SpectrumParams
    rates: RateFunctions
    effort: ForcingSeries
    t_start: int
    t_max: int
    dt: float
    start_state: SpectrumState
    temperature: Optional[ForcingSeries] = None
    plankton: Optional[ForcingSeries] = None
    starvation_xi: Optional[float] = None
    label: str = ""

    @property
    def steps_per_forcing(self) -> int:
        return int(round(1.0 / self.dt))

    @property
    def times(self) -> np.ndarray:
        """Saved time labels ``t_start .. t_start + t_max``."""
        return np.arange(self.t_start, self.t_start + self.t_max + 1)


@dataclass
class SpectrumOutput:
    """Output from a projection run.

    Attributes
    ----------
    times : np.ndarray
        Saved time labels [n_saved]
    n : np.ndarray
        Abundance density [n_saved, n_species, n_w]
    n_pp : np.ndarray
        Resource density [n_saved, n_w_full]
    f_mort : np.ndarray
        Fishing mortality in force over the step ending at each time
    feeding_level : np.ndarray
        Feeding level at the last sub-step before each time
    effort : np.ndarray
        Effort by gear over the step ending at each time [n_saved, n_gears]
    biomass : np.ndarray
        Total biomass by species [n_saved, n_species]
    yield_ : np.ndarray
        Catch rate in biomass by species [n_saved, n_species]
    end_state : SpectrumState
        Final state
    species : list of str
        Species names
    gears : list of str
        Gear names
    label : str
        Scenario name
    """

    times: np.ndarray
    n: np.ndarray
    n_pp: np.ndarray
    f_mort: np.ndarray
    feeding_level: np.ndarray
    effort: np.ndarray
    biomass: np.ndarray
    yield_: np.ndarray
    end_state: SpectrumState
    species: List[str] = field(default_factory=list)
    gears: List[str] = field(default_factory=list)
    label: str = ""


def _as_series(data: Optional[SeriesLike], name: str) -> Optional[ForcingSeries]:
    if data is None or isinstance(data, ForcingSeries):
        return data
    if isinstance(data, pd.DataFrame):
        return ForcingSeries.from_frame(data, name=name)
    raise TypeError(f"{name} must be a ForcingSeries or DataFrame, got {type(data).__name__}")


def _check_density(values: np.ndarray, shape: tuple, name: str) -> np.ndarray:
    values = np.array(values, dtype=float)
    if values.shape != shape:
        raise ConfigurationError(f"{name} has shape {values.shape}, expected {shape}")
    if np.any(~np.isfinite(values)) or np.any(values < 0):
        raise ConfigurationError(f"{name} must be finite and non-negative")
    values.setflags(write=False)
    return values


def spectrum_scenario(
    params: SpectrumParams,
    effort: SeriesLike,
    t_max: int,
    temperature: Optional[SeriesLike] = None,
    plankton: Optional[SeriesLike] = None,
    t_start: Optional[int] = None,
    dt: float = DEFAULT_DT,
    initial_n: Optional[np.ndarray] = None,
    initial_n_pp: Optional[np.ndarray] = None,
    spinup: int = 0,
    plankton_log10: bool = True,
    starvation_xi: Optional[float] = None,
    label: str = "",
) -> SpectrumScenario:
    """Create a projection scenario.

    Validates every attached forcing series against the horizon, aligns
    their columns with the species and gears, and binds the climate rate
    overrides for whatever forcing is attached.

    Parameters
    ----------
    params : SpectrumParams
        Shared base configuration
    effort : ForcingSeries or pd.DataFrame
        Effort by gear (time x gear)
    t_max : int
        Number of forcing steps to simulate
    temperature : ForcingSeries or pd.DataFrame, optional
        Temperature by species (time x species). Binds the thermal
        encounter and energy overrides.
    plankton : ForcingSeries or pd.DataFrame, optional
        Plankton by resource size bin (time x ``grid.w_full``). Binds the
        forced resource override.
    t_start : int, optional
        First step label (default: first time label of ``effort`` after
        spin-up)
    dt : float
        Sub-step length; ``1 / dt`` must be an integer
    initial_n : np.ndarray, optional
        Initial abundance [n_species, n_w] (default: power law)
    initial_n_pp : np.ndarray, optional
        Initial resource [n_w_full] (default: plankton row at ``t_start``
        when forced, else the carrying capacity)
    spinup : int
        Number of leading steps holding the first row of every series
    plankton_log10 : bool
        Whether ``plankton`` holds log10 abundance per bin (converted to
        density) rather than density
    starvation_xi : float, optional
        Reserve fraction for starvation mortality (None = off)
    label : str
        Scenario name

    Returns
    -------
    SpectrumScenario
        Scenario ready for :func:`project`

    Raises
    ------
    ConfigurationError
        If any series does not cover the horizon or does not match the
        species, gears or size grid
    """
    if t_max < 1:
        raise ConfigurationError(f"t_max must be at least 1, got {t_max}")
    steps = int(round(1.0 / dt)) if dt > 0 else 0
    if dt <= 0 or dt > 1 or abs(steps * dt - 1.0) > 1e-9:
        raise ConfigurationError(f"1 / dt must be a positive integer, got dt={dt}")
    if starvation_xi is not None and starvation_xi <= 0:
        raise ConfigurationError(f"starvation_xi must be positive, got {starvation_xi}")

    effort = check_effort(_as_series(effort, "effort").with_spinup(spinup), params.gears)

    temperature = _as_series(temperature, "temperature")
    if temperature is not None:
        temperature = temperature.with_spinup(spinup).reindex_columns(params.species_names)
        if np.any(~np.isfinite(temperature.values)):
            raise ConfigurationError("Temperature forcing must be finite")

    plankton = _as_series(plankton, "plankton")
    if plankton is not None:
        plankton = plankton.with_spinup(spinup)
        if plankton_log10:
            plankton = plankton_density(plankton, params.grid)
        elif plankton.values.shape[1] != params.grid.w_full.size:
            raise ConfigurationError(
                f"Plankton has {plankton.values.shape[1]} size columns, "
                f"grid has {params.grid.w_full.size} resource bins"
            )
        if np.any(~np.isfinite(plankton.values)) or np.any(plankton.values < 0):
            raise ConfigurationError("Plankton forcing must be finite and non-negative")

    if t_start is None:
        t_start = effort.origin

    for series in (effort, temperature, plankton):
        if series is not None:
            series.check_horizon(t_start, t_max)

    n_shape = (params.n_species, params.grid.w.size)
    if initial_n is None:
        initial_n = get_initial_n(params)
    initial_n = _check_density(initial_n, n_shape, "initial_n")

    if initial_n_pp is None:
        initial_n_pp = plankton.row(t_start) if plankton is not None else params.cc_pp
    initial_n_pp = _check_density(initial_n_pp, (params.grid.w_full.size,), "initial_n_pp")

    rates = climate_rate_functions(temperature=temperature, plankton=plankton)

    encounter = rates.encounter(params, initial_n, initial_n_pp, t_start)
    start_state = SpectrumState(
        n=initial_n,
        n_pp=initial_n_pp,
        f_mort=get_fishing_mort(params, effort.row(t_start)),
        feeding_level=get_feeding_level(params, encounter),
        time=float(t_start),
    )

    return SpectrumScenario(
        params=params,
        rates=rates,
        effort=effort,
        t_start=int(t_start),
        t_max=int(t_max),
        dt=float(dt),
        start_state=start_state,
        temperature=temperature,
        plankton=plankton,
        starvation_xi=starvation_xi,
        label=label,
    )


def _transport(
    params: SpectrumParams,
    n: np.ndarray,
    growth: np.ndarray,
    mort: np.ndarray,
    rdd: np.ndarray,
    dt: float,
) -> np.ndarray:
    """Upwind semi-implicit step of the size-transport equation.

    For each species, bins below the egg bin are empty and the remaining
    bins solve

        -g[w-1] dt/dw[w] N'[w-1] + (1 + g[w] dt/dw[w] + Z[w] dt) N'[w] = N[w]

    with recruitment ``rdd dt / dw`` added at the egg bin. All
    off-diagonal coefficients are non-positive, so forward substitution
    keeps N' non-negative.
    """
    dw = params.grid.dw
    n_new = np.zeros_like(n)

    for i, idx in enumerate(params.w_min_idx):
        g = growth[i, idx:]
        diag = 1.0 + g * dt / dw[idx:] + mort[i, idx:] * dt
        rhs = n[i, idx:].copy()
        rhs[0] += rdd[i] * dt / dw[idx]

        if diag.size == 1:
            n_new[i, idx:] = rhs / diag
            continue

        lower = -g[:-1] * dt / dw[idx + 1:]
        system = scipy.sparse.diags([diag, lower], [0, -1], format="csr")
        n_new[i, idx:] = spsolve_triangular(system, rhs, lower=True)

    return n_new


def _check_rates(
    params: SpectrumParams, growth: np.ndarray, mort: np.ndarray, rdd: np.ndarray, time: float
) -> None:
    """Raise NumericalError on non-finite growth, mortality or recruitment."""
    bad = ~np.isfinite(growth).all(axis=1) | ~np.isfinite(mort).all(axis=1) | ~np.isfinite(rdd)
    if np.any(bad):
        name = params.species_names[int(np.flatnonzero(bad)[0])]
        raise NumericalError(
            f"Non-finite rates for species '{name}' at time {time:g}",
            time=time,
            species=name,
        )


def _check_state(params: SpectrumParams, n: np.ndarray, n_pp: np.ndarray, time: float) -> None:
    """Raise NumericalError on NaN or negative densities."""
    bad = ~np.isfinite(n) | (n < 0)
    if np.any(bad):
        i = int(np.flatnonzero(bad.any(axis=1))[0])
        name = params.species_names[i]
        raise NumericalError(
            f"Invalid abundance density for species '{name}' at time {time:g}",
            time=time,
            species=name,
        )
    if np.any(~np.isfinite(n_pp) | (n_pp < 0)):
        raise NumericalError(
            f"Invalid resource density at time {time:g}", time=time, species="resource"
        )


def project_step(
    scenario: SpectrumScenario, state: SpectrumState, step: int, f_mort: np.ndarray
) -> SpectrumState:
    """Advance ``state`` in place by one sub-step of length ``scenario.dt``.

    Parameters
    ----------
    scenario : SpectrumScenario
        Scenario being projected
    state : SpectrumState
        Current state, updated in place
    step : int
        Forcing step label in force
    f_mort : np.ndarray
        Fishing mortality for this step [n_species, n_w]

    Returns
    -------
    SpectrumState
        The updated ``state``

    Raises
    ------
    NumericalError
        If the new state has NaN or negative densities
    """
    params = scenario.params
    rates = scenario.rates
    dt = scenario.dt
    n, n_pp = state.n, state.n_pp

    encounter = rates.encounter(params, n, n_pp, step)
    feeding_level = get_feeding_level(params, encounter)
    energy = rates.energy(params, n, n_pp, encounter, feeding_level, step)

    pred_rate = get_pred_rate(params, n, feeding_level)
    pred_mort = get_pred_mort(params, pred_rate)
    resource_mort = get_resource_mort(params, pred_rate)

    n_pp_new = rates.resource(params, n, n_pp, resource_mort, dt, step)

    e_repro = get_e_repro(params, energy)
    e_growth = get_e_growth(params, energy, e_repro)
    mort = params.mu_b + f_mort + pred_mort
    if scenario.starvation_xi is not None:
        mort = mort + get_starvation_mort(params, energy, scenario.starvation_xi)
    rdd = get_rdd(params, get_rdi(params, n, e_repro))
    _check_rates(params, e_growth, mort, rdd, state.time)

    n_new = _transport(params, n, e_growth, mort, rdd, dt)

    time = state.time + dt
    _check_state(params, n_new, n_pp_new, time)

    state.n = n_new
    state.n_pp = np.asarray(n_pp_new, dtype=float)
    state.f_mort = f_mort
    state.feeding_level = feeding_level
    state.time = time
    return state


def _total(params: SpectrumParams, values: np.ndarray) -> np.ndarray:
    """Integrate ``values * w * dw`` over size, keeping leading axes."""
    return np.sum(values * params.grid.w * params.grid.dw, axis=-1)


def project(scenario: SpectrumScenario) -> SpectrumOutput:
    """Run a projection to ``t_start + t_max``.

    At each forcing step the effort row is converted to fishing mortality
    and then every sub-step calls the encounter, feeding level, energy and
    resource strategies before advancing the abundances.

    Parameters
    ----------
    scenario : SpectrumScenario
        Scenario built by :func:`spectrum_scenario`

    Returns
    -------
    SpectrumOutput
        Saved states at every forcing step

    Raises
    ------
    NumericalError
        If a density becomes NaN or negative; the run stops at that
        sub-step
    """
    params = scenario.params
    n_saved = scenario.t_max + 1
    n_sp, n_w = params.n_species, params.grid.w.size

    out_n = np.zeros((n_saved, n_sp, n_w))
    out_n_pp = np.zeros((n_saved, params.grid.w_full.size))
    out_f_mort = np.zeros((n_saved, n_sp, n_w))
    out_feeding = np.zeros((n_saved, n_sp, n_w))
    out_effort = np.zeros((n_saved, len(params.gears)))

    state = copy.deepcopy(scenario.start_state)
    out_n[0] = state.n
    out_n_pp[0] = state.n_pp
    out_f_mort[0] = state.f_mort
    out_feeding[0] = state.feeding_level
    out_effort[0] = scenario.effort.row(scenario.t_start)

    logger.info(
        "Projecting scenario '%s': %d steps from %d (%d sub-steps each)",
        scenario.label,
        scenario.t_max,
        scenario.t_start,
        scenario.steps_per_forcing,
    )

    for k in range(scenario.t_max):
        step = scenario.t_start + k
        effort = scenario.effort.row(step)
        f_mort = get_fishing_mort(params, effort)

        for _ in range(scenario.steps_per_forcing):
            project_step(scenario, state, step, f_mort)

        # Remove drift from repeated sub-step addition
        state.time = float(step + 1)

        out_n[k + 1] = state.n
        out_n_pp[k + 1] = state.n_pp
        out_f_mort[k + 1] = f_mort
        out_feeding[k + 1] = state.feeding_level
        out_effort[k + 1] = effort
        logger.debug("Scenario '%s': step %d done", scenario.label, step)

    logger.info("Scenario '%s' finished at %g", scenario.label, state.time)

    return SpectrumOutput(
        times=scenario.times,
        n=out_n,
        n_pp=out_n_pp,
        f_mort=out_f_mort,
        feeding_level=out_feeding,
        effort=out_effort,
        biomass=_total(params, out_n),
        yield_=_total(params, out_f_mort * out_n),
        end_state=state,
        species=params.species_names,
        gears=list(params.gears),
        label=scenario.label,
    )


def build_scenarios(
    params: SpectrumParams,
    climate: Mapping[Hashable, Mapping[str, Any]],
    fishing: Mapping[Hashable, SeriesLike],
    **kwargs,
) -> Dict[tuple, SpectrumScenario]:
    """Build one scenario per (climate, fishing) combination.

    All scenarios reference the same ``params``; each gets its own forcing
    and start state.

    Parameters
    ----------
    params : SpectrumParams
        Shared base configuration
    climate : mapping
        Climate key -> dict with optional ``temperature`` and ``plankton``
    fishing : mapping
        Fishing key -> effort schedule
    **kwargs
        Passed to :func:`spectrum_scenario` (``t_max``, ``spinup``, ...)

    Returns
    -------
    dict
        ``{(climate_key, fishing_key): SpectrumScenario}``

    Examples
    --------
    >>> scenarios = build_scenarios(
    ...     params,
    ...     climate={"ipsl_ssp585": {"temperature": temp, "plankton": plank}},
    ...     fishing={"fishing": effort, "no_fishing": zero_effort},
    ...     t_max=50,
    ... )
    """
    scenarios = {}
    for (c_key, forcing), (f_key, effort) in itertools.product(
        climate.items(), fishing.items()
    ):
        unknown = set(forcing) - {"temperature", "plankton"}
        if unknown:
            raise ConfigurationError(f"Climate '{c_key}' has unknown forcing {sorted(unknown)}")
        scenarios[(c_key, f_key)] = spectrum_scenario(
            params,
            effort,
            label=f"{c_key}/{f_key}",
            **forcing,
            **kwargs,
        )
    return scenarios


def run_batch(
    scenarios: Mapping[Hashable, SpectrumScenario], max_workers: Optional[int] = None
) -> Dict[Hashable, SpectrumOutput]:
    """Project independent scenarios concurrently.

    Scenarios share no mutable state, so they run without coordination.
    The first failure is re-raised after pending runs are cancelled.

    Parameters
    ----------
    scenarios : mapping
        Key -> scenario
    max_workers : int, optional
        Maximum number of concurrent runs

    Returns
    -------
    dict
        Key -> output, in the order of ``scenarios``
    """
    results = {}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_key = {
            executor.submit(project, scenario): key for key, scenario in scenarios.items()
        }

        for future in as_completed(future_to_key):
            key = future_to_key[future]
            try:
                results[key] = future.result()
            except SpectrumError:
                logger.error("Scenario %s failed; cancelling pending runs", key)
                for pending in future_to_key:
                    pending.cancel()
                raise
            logger.info("Scenario %s complete", key)

    return {key: results[key] for key in scenarios}


__all__ = [
    "SpectrumState",
    "SpectrumScenario",
    "SpectrumOutput",
    "spectrum_scenario",
    "project_step",
    "project",
    "build_scenarios",
    "run_batch",
]
