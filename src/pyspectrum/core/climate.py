"""
Climate-forced rate overrides.

Each class here fills one strategy slot of :class:`RateFunctions`:

- ThermalEncounter: encounter rate scaled by thermal performance
- ThermalEnergy: growth/reproduction energy with Arrhenius metabolic cost
- ForcedResource: resource density prescribed by a plankton time series

The overrides read the forcing row for the current step label and are
otherwise pure functions of their inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from pyspectrum.core.forcing import ForcingSeries
from pyspectrum.core.params import SpectrumParams
from pyspectrum.core.rates import RateFunctions, get_encounter
from pyspectrum.core.thermal import (
    encounter_multiplier,
    metabolic_multiplier,
    thermal_tolerance_mask,
)


@dataclass(frozen=True, eq=False)
class ThermalEncounter:
    """Temperature-scaled encounter rate.

    The base kernel's encounter, the maximum possible at the current prey
    field, is multiplied row-wise by each species' encounter multiplier.

    Parameters
    ----------
    temperature : ForcingSeries
        Temperature by species (columns in species order)
    base : Callable
        Unforced encounter kernel
    """

    temperature: ForcingSeries
    base: Callable = field(default=get_encounter)

    def multiplier(self, params: SpectrumParams, step: int) -> np.ndarray:
        """Encounter multiplier by species at ``step``, in [0, 1]."""
        return encounter_multiplier(
            self.temperature.row(step),
            params.vector("temp_min"),
            params.vector("temp_max"),
            params.vector("encounter_scale"),
        )

    def __call__(
        self, params: SpectrumParams, n: np.ndarray, n_pp: np.ndarray, step: Optional[int] = None
    ) -> np.ndarray:
        max_encounter = self.base(params, n, n_pp, step)
        return max_encounter * self.multiplier(params, step)[:, np.newaxis]


@dataclass(frozen=True, eq=False)
class ThermalEnergy:
    """Net growth/reproduction energy with temperature-dependent metabolism.

    ``(alpha * (1 - f) * E - metab * temp_effect) * mask`` where
    ``temp_effect`` is the Arrhenius rate rescaled to the species' tolerance
    band and ``mask`` is 0 outside the band. The result may be negative.
    """

    temperature: ForcingSeries

    def multiplier(self, params: SpectrumParams, step: int) -> np.ndarray:
        """Metabolic multiplier by species at ``step``."""
        return metabolic_multiplier(
            self.temperature.row(step),
            params.vector("temp_min"),
            params.vector("temp_max"),
            params.vector("metab_min"),
            params.vector("metab_range"),
        )

    def mask(self, params: SpectrumParams, step: int) -> np.ndarray:
        return thermal_tolerance_mask(
            self.temperature.row(step),
            params.vector("temp_min"),
            params.vector("temp_max"),
        )

    def __call__(
        self,
        params: SpectrumParams,
        n: np.ndarray,
        n_pp: np.ndarray,
        encounter: np.ndarray,
        feeding_level: np.ndarray,
        step: Optional[int] = None,
    ) -> np.ndarray:
        alpha = params.vector("alpha")[:, np.newaxis]
        temp_effect = self.multiplier(params, step)[:, np.newaxis]
        energy = alpha * (1.0 - feeding_level) * encounter - params.metab * temp_effect
        return energy * self.mask(params, step)[:, np.newaxis]


@dataclass(frozen=True, eq=False)
class ForcedResource:
    """Resource density prescribed by a plankton density series.

    The returned density is the forcing row for the current step; the
    current resource state and its mortality are ignored.
    """

    plankton: ForcingSeries

    def __call__(
        self,
        params: SpectrumParams,
        n: np.ndarray,
        n_pp: np.ndarray,
        resource_mort: np.ndarray,
        dt: float,
        step: Optional[int] = None,
    ) -> np.ndarray:
        return np.array(self.plankton.row(step))


def climate_rate_functions(
    temperature: Optional[ForcingSeries] = None,
    plankton: Optional[ForcingSeries] = None,
    base: Optional[RateFunctions] = None,
) -> RateFunctions:
    """Bind climate overrides into the rate strategy slots.

    Parameters
    ----------
    temperature : ForcingSeries, optional
        Temperature by species, columns in species order. Replaces the
        encounter and energy slots.
    plankton : ForcingSeries, optional
        Resource density by size bin. Replaces the resource slot.
    base : RateFunctions, optional
        Strategies for the slots that are not overridden (default unforced)

    Returns
    -------
    RateFunctions
        Bound strategies
    """
    base = base if base is not None else RateFunctions()
    encounter, energy, resource = base.encounter, base.energy, base.resource

    if temperature is not None:
        encounter = ThermalEncounter(temperature, base=base.encounter)
        energy = ThermalEnergy(temperature)
    if plankton is not None:
        resource = ForcedResource(plankton)

    return RateFunctions(encounter=encounter, energy=energy, resource=resource)


__all__ = [
    "ThermalEncounter",
    "ThermalEnergy",
    "ForcedResource",
    "climate_rate_functions",
]
