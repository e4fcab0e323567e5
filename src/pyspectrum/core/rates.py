"""
Default (unforced) rate kernels for the size-spectrum model.

These are the base kernels the projection engine calls every time step:
encounter, feeding level, energy available for growth and reproduction,
predation, reproduction and the semi-chemostat resource. Three of them
(encounter, energy and resource dynamics) are strategy slots that a
scenario may replace, see :class:`RateFunctions`.

All consumer arrays are [n_species, n_w]; resource arrays are [n_w_full].
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from pyspectrum.core.params import SpectrumParams


def get_encounter(
    params: SpectrumParams, n: np.ndarray, n_pp: np.ndarray, step: Optional[int] = None
) -> np.ndarray:
    """Encounter rate at size.

    ``search_vol * sum_k kernel(w, w_k) * prey(w_k) * w_k * dw_k`` where the
    prey density combines consumers, weighted by the interaction matrix, and
    the resource, weighted by ``interaction_resource``.
    """
    grid = params.grid
    n_full = np.zeros((params.n_species, grid.w_full.size))
    n_full[:, grid.offset:] = n

    prey = params.interaction @ n_full
    prey += params.vector("interaction_resource")[:, None] * n_pp[None, :]
    prey *= grid.w_full * grid.dw_full

    available = np.einsum("iwk,ik->iw", params.pred_kernel, prey)
    return params.search_vol * available


def get_feeding_level(params: SpectrumParams, encounter: np.ndarray) -> np.ndarray:
    """Feeding level ``E / (E + intake_max)`` in [0, 1)."""
    return encounter / (encounter + params.intake_max)


def get_energy(
    params: SpectrumParams,
    n: np.ndarray,
    n_pp: np.ndarray,
    encounter: np.ndarray,
    feeding_level: np.ndarray,
    step: Optional[int] = None,
) -> np.ndarray:
    """Net energy for growth and reproduction.

    ``alpha * (1 - f) * E - metab``. Negative values are an energy deficit.
    """
    alpha = params.vector("alpha")[:, None]
    return alpha * (1.0 - feeding_level) * encounter - params.metab


def get_pred_rate(params: SpectrumParams, n: np.ndarray, feeding_level: np.ndarray) -> np.ndarray:
    """Predation rate exerted by each predator on every size [n_species, n_w_full]."""
    hunger = (1.0 - feeding_level) * params.search_vol * n * params.grid.dw
    return np.einsum("iwk,iw->ik", params.pred_kernel, hunger)


def get_pred_mort(params: SpectrumParams, pred_rate: np.ndarray) -> np.ndarray:
    """Predation mortality on each consumer species [n_species, n_w]."""
    return params.interaction.T @ pred_rate[:, params.grid.offset:]


def get_resource_mort(params: SpectrumParams, pred_rate: np.ndarray) -> np.ndarray:
    """Predation mortality on the resource [n_w_full]."""
    return params.vector("interaction_resource") @ pred_rate


def get_e_repro(params: SpectrumParams, energy: np.ndarray) -> np.ndarray:
    """Energy allocated to reproduction. Zero under an energy deficit."""
    return params.psi * np.maximum(energy, 0.0)


def get_e_growth(params: SpectrumParams, energy: np.ndarray, e_repro: np.ndarray) -> np.ndarray:
    """Energy allocated to somatic growth. Zero under an energy deficit."""
    return np.maximum(energy, 0.0) - e_repro


def get_starvation_mort(params: SpectrumParams, energy: np.ndarray, xi: float) -> np.ndarray:
    """Starvation mortality ``-e / (xi * w)`` where energy is negative."""
    return np.where(energy < 0, -energy / (xi * params.grid.w), 0.0)


def get_rdi(params: SpectrumParams, n: np.ndarray, e_repro: np.ndarray) -> np.ndarray:
    """Density-independent egg production per unit size at the egg bin [n_species]."""
    dw = params.grid.dw
    total = np.sum(e_repro * n * dw, axis=1)
    return 0.5 * params.vector("erepro") * total / dw[params.w_min_idx]


def get_rdd(params: SpectrumParams, rdi: np.ndarray) -> np.ndarray:
    """Recruitment after Beverton-Holt density dependence on ``R_max``."""
    r_max = params.vector("R_max")
    finite = np.isfinite(r_max)
    rdd = np.array(rdi, dtype=float)
    rdd[finite] = rdi[finite] * r_max[finite] / (rdi[finite] + r_max[finite])
    return rdd


def resource_semichemostat(
    params: SpectrumParams,
    n: np.ndarray,
    n_pp: np.ndarray,
    resource_mort: np.ndarray,
    dt: float,
    step: Optional[int] = None,
) -> np.ndarray:
    """Resource density after ``dt`` under semi-chemostat regeneration.

    Solves ``dN/dt = r (c - N) - mort N`` exactly over the step with the
    mortality held constant.
    """
    mur = params.rr_pp + resource_mort
    n_steady = params.rr_pp * params.cc_pp / mur
    return n_steady - (n_steady - n_pp) * np.exp(-mur * dt)


@dataclass(frozen=True)
class RateFunctions:
    """Rate strategies invoked by the projection engine.

    Attributes
    ----------
    encounter : Callable
        ``encounter(params, n, n_pp, step) -> [n_species, n_w]``
    energy : Callable
        ``energy(params, n, n_pp, encounter, feeding_level, step) -> [n_species, n_w]``
    resource : Callable
        ``resource(params, n, n_pp, resource_mort, dt, step) -> [n_w_full]``,
        the resource density at the end of the sub-step
    """

    encounter: Callable = get_encounter
    energy: Callable = get_energy
    resource: Callable = resource_semichemostat

    @property
    def is_default(self) -> bool:
        return (
            self.encounter is get_encounter
            and self.energy is get_energy
            and self.resource is resource_semichemostat
        )


def default_rate_functions() -> RateFunctions:
    """Unforced rate strategies."""
    return RateFunctions()


__all__ = [
    "get_encounter",
    "get_feeding_level",
    "get_energy",
    "get_pred_rate",
    "get_pred_mort",
    "get_resource_mort",
    "get_e_repro",
    "get_e_growth",
    "get_starvation_mort",
    "get_rdi",
    "get_rdd",
    "resource_semichemostat",
    "RateFunctions",
    "default_rate_functions",
]
