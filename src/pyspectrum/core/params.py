"""
Parameter data structures for PySpectrum.

This module contains the size grid, the species parameter table, the
interaction matrix and the immutable SpectrumParams base configuration that
every scenario references.
"""

from __future__ import annotations

import warnings
from dataclasses import InitVar, dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from pyspectrum.core.constants import (
    DEFAULT_ALPHA,
    DEFAULT_BETA,
    DEFAULT_CATCHABILITY,
    DEFAULT_EREPRO,
    DEFAULT_F0,
    DEFAULT_GEAR,
    DEFAULT_H,
    DEFAULT_K,
    DEFAULT_KAPPA,
    DEFAULT_KS_FRACTION,
    DEFAULT_LAMBDA,
    DEFAULT_MIN_W,
    DEFAULT_MIN_W_PP,
    DEFAULT_N,
    DEFAULT_NO_W,
    DEFAULT_Q,
    DEFAULT_R_MAX,
    DEFAULT_R_PP,
    DEFAULT_SIGMA,
    DEFAULT_W_PP_CUTOFF,
    DEFAULT_Z0PRE,
    MATURITY_STEEPNESS,
    REPRO_EXPONENT_M,
)
from pyspectrum.core.exceptions import ConfigurationError
from pyspectrum.core.fishing import get_catchability, get_selectivity
from pyspectrum.core.thermal import compute_thermal_params
from pyspectrum.logger import get_logger

logger = get_logger(__name__)

REQUIRED_COLUMNS = ["species", "w_inf", "w_mat", "temp_min", "temp_max"]


def _read_only(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SizeGrid:
    """Log-spaced body size grid.

    Attributes
    ----------
    w : np.ndarray
        Consumer size bins (g)
    dw : np.ndarray
        Consumer bin widths (g)
    w_full : np.ndarray
        Resource and consumer size bins (g); the consumer bins are the last
        ``len(w)`` entries
    dw_full : np.ndarray
        Widths of ``w_full``
    """

    w: np.ndarray
    dw: np.ndarray
    w_full: np.ndarray
    dw_full: np.ndarray

    @property
    def offset(self) -> int:
        """Index of ``w[0]`` in ``w_full``."""
        return self.w_full.size - self.w.size

    def __repr__(self) -> str:
        return (
            f"SizeGrid(no_w={self.w.size}, w=[{self.w[0]:g}, {self.w[-1]:g}], "
            f"no_w_full={self.w_full.size}, w_full[0]={self.w_full[0]:g})"
        )


def size_grid(
    no_w: int = DEFAULT_NO_W,
    min_w: float = DEFAULT_MIN_W,
    max_w: float = 1e4,
    min_w_pp: float = DEFAULT_MIN_W_PP,
) -> SizeGrid:
    """Create a log-spaced size grid.

    The resource grid extends the consumer grid downwards with the same log
    step until it reaches ``min_w_pp``.

    Parameters
    ----------
    no_w : int
        Number of consumer size bins
    min_w : float
        Smallest consumer size (g)
    max_w : float
        Largest consumer size (g)
    min_w_pp : float
        Smallest resource size (g)

    Returns
    -------
    SizeGrid
        Immutable size grid

    Examples
    --------
    >>> grid = size_grid(no_w=50, min_w=1e-3, max_w=1e4, min_w_pp=1e-8)
    >>> grid.w.size
    50
    """
    if no_w < 2:
        raise ConfigurationError(f"no_w must be at least 2, got {no_w}")
    if not 0 < min_w < max_w:
        raise ConfigurationError(f"Need 0 < min_w < max_w, got {min_w}, {max_w}")
    if not 0 < min_w_pp <= min_w:
        raise ConfigurationError(f"Need 0 < min_w_pp <= min_w, got {min_w_pp}")

    x = np.linspace(np.log10(min_w), np.log10(max_w), no_w)
    dx = x[1] - x[0]
    n_extra = int(np.floor((np.log10(min_w) - np.log10(min_w_pp)) / dx + 1e-9))
    x_full = np.concatenate([x[0] - dx * np.arange(n_extra, 0, -1), x])

    w_full = np.power(10.0, x_full)
    dw_full = np.power(10.0, x_full + dx) - w_full

    return SizeGrid(
        w=_read_only(w_full[n_extra:]),
        dw=_read_only(dw_full[n_extra:]),
        w_full=_read_only(w_full),
        dw_full=_read_only(dw_full),
    )


def get_gamma_default(
    species: pd.DataFrame,
    kappa: float = DEFAULT_KAPPA,
    lambda_: float = DEFAULT_LAMBDA,
    f0: float = DEFAULT_F0,
) -> np.ndarray:
    """Search volume coefficient giving feeding level ``f0`` on the resource.

    Assumes the resource spectrum ``kappa * w**-lambda`` and a lognormal
    predation kernel.
    """
    lm2 = lambda_ - 2.0
    sigma = species["sigma"].to_numpy(dtype=float)
    beta = species["beta"].to_numpy(dtype=float)
    ae = np.sqrt(2 * np.pi) * sigma * beta ** lm2 * np.exp(lm2 ** 2 * sigma ** 2 / 2)
    avail = species["interaction_resource"].to_numpy(dtype=float)
    avail = np.where(avail > 0, avail, 1.0)
    return species["h"].to_numpy(dtype=float) * f0 / (ae * kappa * (1 - f0) * avail)


def complete_species_params(
    species: pd.DataFrame,
    min_w: float = DEFAULT_MIN_W,
    kappa: float = DEFAULT_KAPPA,
    lambda_: float = DEFAULT_LAMBDA,
) -> pd.DataFrame:
    """Fill in missing optional species parameters with defaults.

    Missing columns are added and NaN entries in optional columns are
    replaced. Required columns (``species``, ``w_inf``, ``w_mat``,
    ``temp_min``, ``temp_max``) must be present and complete.

    Parameters
    ----------
    species : pd.DataFrame
        One row per species
    min_w : float
        Smallest consumer size; default egg size
    kappa, lambda_ : float
        Resource spectrum parameters used for the ``gamma`` default

    Returns
    -------
    pd.DataFrame
        Completed copy of ``species``

    Raises
    ------
    ConfigurationError
        If required columns are missing or incomplete, or species names
        are duplicated
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in species.columns]
    if missing:
        raise ConfigurationError(f"Species parameters missing columns: {missing}")
    incomplete = [c for c in REQUIRED_COLUMNS if species[c].isna().any()]
    if incomplete:
        raise ConfigurationError(f"Species parameters have missing values in {incomplete}")
    if species["species"].duplicated().any():
        dups = species.loc[species["species"].duplicated(), "species"].tolist()
        raise ConfigurationError(f"Duplicate species names: {dups}")

    sp = species.copy().reset_index(drop=True)

    def fill(col, default):
        if col not in sp.columns:
            sp[col] = default
        else:
            sp[col] = sp[col].fillna(
                pd.Series(np.broadcast_to(default, len(sp)), index=sp.index)
            )

    fill("w_min", min_w)
    fill("beta", DEFAULT_BETA)
    fill("sigma", DEFAULT_SIGMA)
    fill("h", DEFAULT_H)
    fill("q", DEFAULT_Q)
    fill("n", DEFAULT_N)
    fill("p", sp["n"].to_numpy(dtype=float))
    fill("ks", DEFAULT_KS_FRACTION * sp["h"].to_numpy(dtype=float))
    fill("k", DEFAULT_K)
    fill("alpha", DEFAULT_ALPHA)
    fill("erepro", DEFAULT_EREPRO)
    fill(
        "z0",
        DEFAULT_Z0PRE
        * sp["w_inf"].to_numpy(dtype=float) ** (sp["n"].to_numpy(dtype=float) - 1),
    )
    fill("R_max", DEFAULT_R_MAX)
    fill("interaction_resource", 1.0)
    fill("gear", DEFAULT_GEAR)
    fill("catchability", DEFAULT_CATCHABILITY)
    fill("knife_edge_size1", 0.5 * sp["w_mat"].to_numpy(dtype=float))
    fill("knife_edge_size2", sp["w_mat"].to_numpy(dtype=float))
    fill("gamma", get_gamma_default(sp, kappa=kappa, lambda_=lambda_))

    return sp


def check_species_params(species: pd.DataFrame) -> bool:
    """Check species parameters for biologically implausible values.

    Parameters
    ----------
    species : pd.DataFrame
        Completed species parameters

    Returns
    -------
    bool
        True if no issues were found, False otherwise.

    Raises
    ------
    warnings.warn
        For each issue found.
    """
    n_warnings = 0

    bad_mat = species[species["w_mat"] >= species["w_inf"]]
    if len(bad_mat) > 0:
        warnings.warn(f"Species with w_mat >= w_inf: {bad_mat['species'].tolist()}")
        n_warnings += 1

    if "w_min" in species.columns:
        bad_egg = species[species["w_min"] >= species["w_mat"]]
        if len(bad_egg) > 0:
            warnings.warn(f"Species with w_min >= w_mat: {bad_egg['species'].tolist()}")
            n_warnings += 1

    if "alpha" in species.columns:
        bad_alpha = species[(species["alpha"] <= 0) | (species["alpha"] > 1)]
        if len(bad_alpha) > 0:
            warnings.warn(
                f"Assimilation efficiency outside (0, 1]: {bad_alpha['species'].tolist()}"
            )
            n_warnings += 1

    cold = species[species["temp_min"] < 0]
    if len(cold) > 0:
        warnings.warn(
            "Species with temp_min < 0 have no encounter or metabolism at or below "
            f"0 degrees C: {cold['species'].tolist()}"
        )
        n_warnings += 1

    if n_warnings == 0:
        logger.debug("Species parameters passed plausibility checks")
        return True
    logger.warning("Species parameters need attention (%d warnings)", n_warnings)
    return False


def _is_positional(index: pd.Index) -> bool:
    """True for an unlabelled 0..n-1 index."""
    return isinstance(index, pd.RangeIndex) and index.start == 0 and index.step == 1


def check_interaction(
    interaction: Optional[Union[np.ndarray, pd.DataFrame]], species_names: List[str]
) -> np.ndarray:
    """Validate the predator-prey interaction matrix.

    Parameters
    ----------
    interaction : np.ndarray or pd.DataFrame, optional
        Square [predator, prey] matrix. A DataFrame with species labels is
        reordered to ``species_names``; an unlabelled one is taken in that
        order. None means all-ones.
    species_names : list of str
        Species order

    Returns
    -------
    np.ndarray
        Read-only interaction matrix

    Raises
    ------
    ConfigurationError
        If the matrix is not square, its labels do not match the species, or
        it has negative or non-finite entries
    """
    n_sp = len(species_names)
    if interaction is None:
        return _read_only(np.ones((n_sp, n_sp)))

    if isinstance(interaction, pd.DataFrame):
        labels = set(species_names)
        if set(interaction.index) == labels and set(interaction.columns) == labels:
            interaction = interaction.loc[species_names, species_names]
        elif not (_is_positional(interaction.index) and _is_positional(interaction.columns)):
            differ = (set(interaction.index) ^ labels) | (set(interaction.columns) ^ labels)
            raise ConfigurationError(
                f"Interaction matrix labels do not match species names: "
                f"{sorted(map(str, differ))}"
            )
        interaction = interaction.to_numpy(dtype=float)

    interaction = np.asarray(interaction, dtype=float)
    if interaction.shape != (n_sp, n_sp):
        raise ConfigurationError(
            f"Interaction matrix has shape {interaction.shape}, expected ({n_sp}, {n_sp})"
        )
    if np.any(~np.isfinite(interaction)) or np.any(interaction < 0):
        raise ConfigurationError("Interaction matrix entries must be finite and non-negative")
    if np.any(interaction > 1):
        warnings.warn("Interaction matrix has entries above 1")

    return _read_only(interaction)


@dataclass(frozen=True, eq=False)
class SpectrumParams:
    """Immutable base configuration of a size-spectrum model.

    Built once per species set by :func:`spectrum_params` and shared,
    never mutated, by every scenario that references it.

    Attributes
    ----------
    table : pd.DataFrame
        Init-only. Completed species parameters including the derived thermal
        constants ``encounter_scale``, ``metab_min``, ``metab_max``,
        ``metab_range``. Copied at construction; the numeric columns are
        frozen into read-only vectors served by :meth:`vector`, and
        ``species`` returns a fresh copy.
    interaction : np.ndarray
        Predator-prey interaction [predator, prey]
    grid : SizeGrid
        Size grid
    gears : tuple of str
        Fishing gears, in effort column order

    Size-dependent rates [n_species, n_w]
    -------------------------------------
    search_vol : np.ndarray
        Volumetric search rate ``gamma * w**q``
    intake_max : np.ndarray
        Maximum intake ``h * w**n``
    metab : np.ndarray
        Metabolic cost ``ks * w**p + k * w``
    psi : np.ndarray
        Proportion of available energy allocated to reproduction
    mu_b : np.ndarray
        Background mortality
    pred_kernel : np.ndarray
        Predation kernel [n_species, n_w, n_w_full]

    Fishing
    -------
    selectivity : np.ndarray
        [n_species, n_gears, n_w]
    catchability : np.ndarray
        [n_species, n_gears]

    Resource
    --------
    cc_pp : np.ndarray
        Resource carrying capacity [n_w_full]
    rr_pp : np.ndarray
        Resource regeneration rate [n_w_full]
    """

    table: InitVar[pd.DataFrame]
    interaction: np.ndarray
    grid: SizeGrid
    gears: Tuple[str, ...]
    search_vol: np.ndarray
    intake_max: np.ndarray
    metab: np.ndarray
    psi: np.ndarray
    mu_b: np.ndarray
    pred_kernel: np.ndarray
    selectivity: np.ndarray
    catchability: np.ndarray
    w_min_idx: np.ndarray
    cc_pp: np.ndarray
    rr_pp: np.ndarray
    kappa: float = DEFAULT_KAPPA
    lambda_: float = DEFAULT_LAMBDA
    r_pp: float = DEFAULT_R_PP
    w_pp_cutoff: float = DEFAULT_W_PP_CUTOFF
    _table: pd.DataFrame = field(init=False, repr=False)
    _vectors: Dict[str, np.ndarray] = field(init=False, repr=False)

    def __post_init__(self, table):
        table = table.copy()
        vectors = {
            col: _read_only(table[col].to_numpy(dtype=float))
            for col in table.columns
            if pd.api.types.is_numeric_dtype(table[col])
        }
        object.__setattr__(self, "_table", table)
        object.__setattr__(self, "_vectors", vectors)

    @property
    def species(self) -> pd.DataFrame:
        """Copy of the completed species table."""
        return self._table.copy()

    @property
    def species_names(self) -> List[str]:
        return self._table["species"].tolist()

    @property
    def n_species(self) -> int:
        return len(self._table)

    def vector(self, column: str) -> np.ndarray:
        """Read-only species parameter column, fixed at build time.

        Raises
        ------
        ConfigurationError
            If ``column`` is not a numeric species parameter
        """
        try:
            return self._vectors[column]
        except KeyError:
            raise ConfigurationError(f"No numeric species parameter '{column}'") from None

    def __repr__(self) -> str:
        return (
            f"SpectrumParams(\n"
            f"  species={self.species_names}\n"
            f"  gears={list(self.gears)}\n"
            f"  grid={self.grid!r}\n"
            f")"
        )


def _pred_kernel(species: pd.DataFrame, grid: SizeGrid) -> np.ndarray:
    """Lognormal predation kernel, zero for prey at or above predator size."""
    beta = species["beta"].to_numpy(dtype=float)[:, None, None]
    sigma = species["sigma"].to_numpy(dtype=float)[:, None, None]
    w_pred = grid.w[None, :, None]
    w_prey = grid.w_full[None, None, :]
    kernel = np.exp(-np.log(w_pred / (beta * w_prey)) ** 2 / (2 * sigma ** 2))
    return np.where(w_prey < w_pred, kernel, 0.0)


def _psi(species: pd.DataFrame, w: np.ndarray) -> np.ndarray:
    """Reproduction allocation: maturity ogive times size scaling."""
    w_mat = species["w_mat"].to_numpy(dtype=float)[:, None]
    w_inf = species["w_inf"].to_numpy(dtype=float)[:, None]
    n = species["n"].to_numpy(dtype=float)[:, None]
    psi = (1.0 + (w / w_mat) ** -MATURITY_STEEPNESS) ** -1 * (w / w_inf) ** (
        REPRO_EXPONENT_M - n
    )
    psi = np.where(w < 0.1 * w_mat, 0.0, psi)
    return np.where(w >= w_inf, 1.0, psi)


def spectrum_params(
    species: pd.DataFrame,
    interaction: Optional[Union[np.ndarray, pd.DataFrame]] = None,
    grid: Optional[SizeGrid] = None,
    kappa: float = DEFAULT_KAPPA,
    lambda_: float = DEFAULT_LAMBDA,
    r_pp: float = DEFAULT_R_PP,
    w_pp_cutoff: float = DEFAULT_W_PP_CUTOFF,
) -> SpectrumParams:
    """Build the immutable base configuration.

    Completes the species table, validates the interaction matrix, derives
    the thermal scaling constants and precomputes every size-dependent rate.

    Parameters
    ----------
    species : pd.DataFrame
        Species parameters, one row per species
    interaction : np.ndarray or pd.DataFrame, optional
        Predator-prey interaction matrix (default all ones)
    grid : SizeGrid, optional
        Size grid (default: 100 bins from 1 mg to the largest w_inf)
    kappa, lambda_ : float
        Resource carrying capacity ``kappa * w**-lambda``
    r_pp : float
        Resource regeneration rate coefficient
    w_pp_cutoff : float
        Largest resource size (g)

    Returns
    -------
    SpectrumParams
        Base configuration shared by all scenarios

    Raises
    ------
    ConfigurationError
        For any invalid species, interaction or selectivity parameter
    """
    if grid is None:
        grid = size_grid(max_w=float(species["w_inf"].max()))

    sp = complete_species_params(species, min_w=grid.w[0], kappa=kappa, lambda_=lambda_)
    sp = compute_thermal_params(sp)
    check_species_params(sp)

    names = sp["species"].tolist()
    interaction = check_interaction(interaction, names)

    too_large = sp[sp["w_inf"] > grid.w[-1] * (1 + 1e-9)]
    if len(too_large) > 0:
        raise ConfigurationError(
            f"Species larger than the size grid: {too_large['species'].tolist()}"
        )
    too_small = sp[sp["w_min"] < grid.w[0] * (1 - 1e-9)]
    if len(too_small) > 0:
        raise ConfigurationError(
            f"Egg size below the size grid: {too_small['species'].tolist()}"
        )

    w = grid.w[None, :]
    col = lambda c: sp[c].to_numpy(dtype=float)[:, None]  # noqa: E731

    search_vol = col("gamma") * w ** col("q")
    intake_max = col("h") * w ** col("n")
    metab = col("ks") * w ** col("p") + col("k") * w
    mu_b = np.broadcast_to(col("z0"), (len(sp), grid.w.size))

    w_min_idx = np.searchsorted(grid.w, sp["w_min"].to_numpy(dtype=float) * (1 + 1e-9), side="right") - 1

    gears = tuple(dict.fromkeys(sp["gear"].tolist()))
    selectivity = get_selectivity(sp, grid, gears)
    catchability = get_catchability(sp, gears)

    cc_pp = kappa * grid.w_full ** -lambda_
    cc_pp = np.where(grid.w_full > w_pp_cutoff, 0.0, cc_pp)
    rr_pp = r_pp * grid.w_full ** (np.mean(sp["n"].to_numpy(dtype=float)) - 1)

    w_min_idx = np.asarray(w_min_idx, dtype=int)
    w_min_idx.setflags(write=False)

    params = SpectrumParams(
        table=sp,
        interaction=interaction,
        grid=grid,
        gears=gears,
        search_vol=_read_only(search_vol),
        intake_max=_read_only(intake_max),
        metab=_read_only(metab),
        psi=_read_only(_psi(sp, w)),
        mu_b=_read_only(mu_b),
        pred_kernel=_read_only(_pred_kernel(sp, grid)),
        selectivity=_read_only(selectivity),
        catchability=_read_only(catchability),
        w_min_idx=w_min_idx,
        cc_pp=_read_only(cc_pp),
        rr_pp=_read_only(rr_pp),
        kappa=kappa,
        lambda_=lambda_,
        r_pp=r_pp,
        w_pp_cutoff=w_pp_cutoff,
    )
    logger.debug("Built %r", params)
    return params


def get_initial_n(params: SpectrumParams, n0_mult: Optional[float] = None, a: float = 0.35) -> np.ndarray:
    """Power-law initial abundance [n_species, n_w].

    ``n0_mult * w_inf**(2n - q - 2 + a) * w**(-n - a)`` between each
    species' egg size and asymptotic size, zero elsewhere.
    """
    if n0_mult is None:
        n0_mult = params.kappa / 1000.0
    w = params.grid.w[None, :]
    n = params.vector("n")[:, None]
    q = params.vector("q")[:, None]
    w_inf = params.vector("w_inf")[:, None]
    initial = n0_mult * w_inf ** (2 * n - q - 2 + a) * w ** (-n - a)
    initial = np.where(w > w_inf, 0.0, initial)
    below_egg = np.arange(params.grid.w.size)[None, :] < params.w_min_idx[:, None]
    return np.where(below_egg, 0.0, initial)


__all__ = [
    "SizeGrid",
    "size_grid",
    "get_gamma_default",
    "complete_species_params",
    "check_species_params",
    "check_interaction",
    "SpectrumParams",
    "spectrum_params",
    "get_initial_n",
]
