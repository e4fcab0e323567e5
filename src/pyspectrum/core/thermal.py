"""
Thermal and metabolic scaling for temperature-forced projections.

This module provides:
1. The thermal performance polynomial used to scale encounter rates
2. The Arrhenius relation used to scale metabolic cost
3. Precomputation of the per-species normalization constants
4. The tolerance mask shared by every temperature-dependent rate
"""

from __future__ import annotations

from typing import Union

import numpy as np
import pandas as pd

from pyspectrum.core.constants import (
    ACTIVATION_ENERGY_EV,
    ARRHENIUS_INTERCEPT,
    BOLTZMANN_EV,
    KELVIN_OFFSET,
    THERMAL_RESOLUTION,
)
from pyspectrum.core.exceptions import ConfigurationError, NumericalError

ArrayLike = Union[float, np.ndarray]


def thermal_performance(temp: ArrayLike, temp_min: ArrayLike, temp_max: ArrayLike) -> np.ndarray:
    """Unscaled thermal performance ``T (T - temp_min) (temp_max - T)``.

    Zero at both tolerance bounds with a single interior maximum when
    ``temp_min >= 0``.
    """
    temp = np.asarray(temp, dtype=float)
    return temp * (temp - temp_min) * (temp_max - temp)


def arrhenius(temp: ArrayLike) -> np.ndarray:
    """Arrhenius temperature dependence of metabolic rate.

    Parameters
    ----------
    temp : float or np.ndarray
        Temperature (degrees C)

    Returns
    -------
    np.ndarray
        ``exp(25.22 - 0.63 / (8.62e-5 * (273 + temp)))``
    """
    temp = np.asarray(temp, dtype=float)
    return np.exp(
        ARRHENIUS_INTERCEPT
        - ACTIVATION_ENERGY_EV / (BOLTZMANN_EV * (KELVIN_OFFSET + temp))
    )


def encounter_scale(
    temp_min: float, temp_max: float, resolution: float = THERMAL_RESOLUTION
) -> float:
    """Maximum of the thermal performance polynomial over the tolerance band.

    The band is sampled at ``resolution`` degrees. The polynomial's interior
    stationary points are added to the samples so that the returned value is
    the true maximum, which keeps scaled multipliers at or below 1 while
    agreeing with the sampled maximum to within sampling tolerance.

    Raises
    ------
    ConfigurationError
        If ``temp_max <= temp_min``
    """
    if not temp_max > temp_min:
        raise ConfigurationError(
            f"Degenerate thermal range: temp_max ({temp_max}) must exceed "
            f"temp_min ({temp_min})"
        )

    temps = np.arange(temp_min, temp_max, resolution)
    temps = np.append(temps, temp_max)

    # Roots of d/dT [T (T - a)(b - T)] = -3T^2 + 2(a + b)T - ab
    a, b = temp_min, temp_max
    disc = (a + b) ** 2 - 3.0 * a * b
    if disc >= 0:
        roots = ((a + b) + np.array([-1.0, 1.0]) * np.sqrt(disc)) / 3.0
        roots = roots[(roots > a) & (roots < b)]
        temps = np.concatenate([temps, roots])

    return float(np.max(thermal_performance(temps, a, b)))


def compute_thermal_params(species: pd.DataFrame) -> pd.DataFrame:
    """Derive the thermal normalization constants for every species.

    Adds ``encounter_scale``, ``metab_min``, ``metab_max`` and
    ``metab_range`` columns to a copy of the species table.

    Parameters
    ----------
    species : pd.DataFrame
        Species parameters with ``species``, ``temp_min`` and ``temp_max``

    Returns
    -------
    pd.DataFrame
        Copy of ``species`` with the derived columns

    Raises
    ------
    ConfigurationError
        If any species has ``temp_max <= temp_min``
    NumericalError
        If a derived scale is not strictly positive
    """
    species = species.copy()

    for col in ("temp_min", "temp_max"):
        if col not in species.columns:
            raise ConfigurationError(f"Species parameters missing column '{col}'")

    scales = []
    for name, t_min, t_max in zip(
        species["species"], species["temp_min"], species["temp_max"]
    ):
        if not t_max > t_min:
            raise ConfigurationError(
                f"Species '{name}': temp_max ({t_max}) must exceed temp_min ({t_min})"
            )
        scale = encounter_scale(t_min, t_max)
        if not scale > 0:
            raise NumericalError(
                f"Species '{name}': thermal performance maximum is {scale}; "
                "encounter scaling needs a positive maximum inside the band",
                species=name,
            )
        scales.append(scale)

    species["encounter_scale"] = scales
    species["metab_min"] = arrhenius(species["temp_min"].to_numpy(dtype=float))
    species["metab_max"] = arrhenius(species["temp_max"].to_numpy(dtype=float))
    species["metab_range"] = species["metab_max"] - species["metab_min"]

    return species


def thermal_tolerance_mask(
    temp: np.ndarray, temp_min: np.ndarray, temp_max: np.ndarray
) -> np.ndarray:
    """Boolean mask of species inside their tolerance band.

    Strict on both sides: a temperature at either bound is outside. Inside a
    band that straddles 0 degrees C the performance polynomial is not positive
    at or below 0, and those temperatures are outside too. Both the encounter
    and the energy overrides use this mask, so they always agree.
    """
    temp = np.asarray(temp, dtype=float)
    inside = (temp > temp_min) & (temp < temp_max)
    return inside & (thermal_performance(temp, temp_min, temp_max) > 0)


def encounter_multiplier(
    temp: np.ndarray,
    temp_min: np.ndarray,
    temp_max: np.ndarray,
    scale: np.ndarray,
) -> np.ndarray:
    """Per-species encounter multiplier in [0, 1].

    Exactly zero outside the tolerance mask.
    """
    unscaled = thermal_performance(temp, temp_min, temp_max)
    mask = thermal_tolerance_mask(temp, temp_min, temp_max)
    return np.where(mask, unscaled / scale, 0.0)


def metabolic_multiplier(
    temp: np.ndarray,
    temp_min: np.ndarray,
    temp_max: np.ndarray,
    metab_min: np.ndarray,
    metab_range: np.ndarray,
) -> np.ndarray:
    """Per-species metabolic cost multiplier, rescaled Arrhenius.

    Monotonically increasing with temperature inside the tolerance mask,
    exactly zero outside it.
    """
    temp_effect = (arrhenius(temp) - metab_min) / metab_range
    mask = thermal_tolerance_mask(temp, temp_min, temp_max)
    return np.where(mask, temp_effect, 0.0)


__all__ = [
    "thermal_performance",
    "arrhenius",
    "encounter_scale",
    "compute_thermal_params",
    "thermal_tolerance_mask",
    "encounter_multiplier",
    "metabolic_multiplier",
]
