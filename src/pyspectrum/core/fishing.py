"""
Fishing selectivity and fishing mortality.

Gear selectivity maps body size to the probability of capture. Fishing
mortality at size is catchability x selectivity x effort, summed over gears.
"""

from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

import numpy as np
import pandas as pd

from pyspectrum.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from pyspectrum.core.params import SizeGrid, SpectrumParams


def knife_edge_phased(w: np.ndarray, knife_edge_size1: float, knife_edge_size2: float) -> np.ndarray:
    """Knife-edge selectivity with a linear ramp.

    Selectivity is 0 below ``knife_edge_size1``, ramps linearly over the
    grid bins up to ``knife_edge_size2`` and is 1 above it. The ramp runs
    from the last bin below ``knife_edge_size1`` to the last bin below
    ``knife_edge_size2``.

    Parameters
    ----------
    w : np.ndarray
        Size grid (g)
    knife_edge_size1 : float
        Size at which selectivity starts to increase (g)
    knife_edge_size2 : float
        Size at which selectivity reaches 1 (g)

    Returns
    -------
    np.ndarray
        Selectivity at size, same shape as ``w``

    Raises
    ------
    ConfigurationError
        If either size is at or below the smallest grid size, or
        ``knife_edge_size2 < knife_edge_size1``
    """
    w = np.asarray(w, dtype=float)
    if knife_edge_size2 < knife_edge_size1:
        raise ConfigurationError(
            f"knife_edge_size2 ({knife_edge_size2}) must be >= "
            f"knife_edge_size1 ({knife_edge_size1})"
        )

    below1 = np.flatnonzero(w < knife_edge_size1)
    below2 = np.flatnonzero(w < knife_edge_size2)
    if below1.size == 0 or below2.size == 0:
        raise ConfigurationError(
            f"Selectivity sizes ({knife_edge_size1}, {knife_edge_size2}) must lie "
            f"above the smallest grid size {w[0]}"
        )
    lo_sel = below1[-1]
    hi_sel = below2[-1]

    sel = np.zeros_like(w)
    sel[lo_sel:hi_sel + 1] = np.linspace(0.0, 1.0, hi_sel - lo_sel + 1)
    sel[hi_sel + 1:] = 1.0
    return sel


def get_selectivity(
    species: pd.DataFrame, grid: "SizeGrid", gears: Sequence[str]
) -> np.ndarray:
    """Selectivity array [n_species, n_gears, n_w].

    Each species is caught by the gear named in its ``gear`` column.
    """
    gears = list(gears)
    sel = np.zeros((len(species), len(gears), grid.w.size))
    for i, row in enumerate(species.itertuples(index=False)):
        try:
            g = gears.index(row.gear)
        except ValueError:
            raise ConfigurationError(
                f"Species '{row.species}': gear '{row.gear}' not in {gears}"
            ) from None
        try:
            sel[i, g] = knife_edge_phased(
                grid.w, row.knife_edge_size1, row.knife_edge_size2
            )
        except ConfigurationError as e:
            raise ConfigurationError(f"Species '{row.species}': {e}") from e
    return sel


def get_catchability(species: pd.DataFrame, gears: Sequence[str]) -> np.ndarray:
    """Catchability array [n_species, n_gears]."""
    gears = list(gears)
    q = np.zeros((len(species), len(gears)))
    for i, row in enumerate(species.itertuples(index=False)):
        q[i, gears.index(row.gear)] = row.catchability
    return q


def get_fishing_mort(params: "SpectrumParams", effort: np.ndarray) -> np.ndarray:
    """Fishing mortality at size [n_species, n_w].

    Parameters
    ----------
    params : SpectrumParams
        Model parameters
    effort : np.ndarray
        Effort by gear [n_gears], ordered as ``params.gears``
    """
    effort = np.asarray(effort, dtype=float)
    if effort.shape != (len(params.gears),):
        raise ValueError(
            f"effort must have shape ({len(params.gears)},), got {effort.shape}"
        )
    return np.einsum("ig,igw->iw", params.catchability * effort, params.selectivity)


__all__ = [
    "knife_edge_phased",
    "get_selectivity",
    "get_catchability",
    "get_fishing_mort",
]
