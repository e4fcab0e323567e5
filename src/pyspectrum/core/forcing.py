"""
Environmental and fishing forcing time series.

This module provides:
1. ForcingSeries, a read-only (time x column) table indexed by step labels
2. The time-origin offset rule mapping step labels to table rows
3. Spin-up extension that holds the first value for leading steps
4. Conversion of log10 plankton abundance to resource density

Forcing is piecewise constant: a step label selects exactly one row and no
interpolation is done between rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
import pandas as pd

from pyspectrum.core.exceptions import ConfigurationError, ForcingIndexError

if TYPE_CHECKING:
    from pyspectrum.core.params import SizeGrid


def time_offset(origin: int) -> int:
    """Offset ``t_idx`` for a series whose first time label is ``origin``.

    Rows are numbered from 1, so ``row_number = step + t_idx``. The rule is
    ``1`` for an origin of 0, ``0`` for an origin of 1 and ``-(origin - 1)``
    otherwise; in every case the step equal to ``origin`` maps to row 1.

    Examples
    --------
    >>> time_offset(0)
    1
    >>> time_offset(1350)
    -1349
    """
    origin = int(origin)
    if origin == 0:
        return 1
    if origin == 1:
        return 0
    return -(origin - 1)


@dataclass(frozen=True, eq=False)
class ForcingSeries:
    """Read-only forcing table.

    Parameters
    ----------
    values : np.ndarray
        Forcing values [n_times, n_columns]. A 1D array is one column.
    times : np.ndarray
        Contiguous integer time labels, one per row
    columns : sequence, optional
        Column labels (species names, gear names or size bins).
        Defaults to ``0 .. n_columns - 1``.
    name : str
        Label used in error messages

    Examples
    --------
    >>> temp = ForcingSeries(
    ...     values=np.array([[10.0, 4.0], [11.0, 4.5]]),
    ...     times=np.array([1950, 1951]),
    ...     columns=("Tuna", "Cod"),
    ...     name="temperature",
    ... )
    >>> temp.row(1951)
    array([11. ,  4.5])
    """

    values: np.ndarray
    times: np.ndarray
    columns: Optional[Tuple] = None
    name: str = "forcing"

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        if values.ndim == 1:
            values = values[:, np.newaxis]
        if values.ndim != 2:
            raise ConfigurationError(
                f"Forcing '{self.name}': values must be 1D or 2D [n_times, n_columns], "
                f"got {values.ndim}D"
            )
        if values.shape[0] == 0:
            raise ConfigurationError(f"Forcing '{self.name}': table has no rows")

        times = np.asarray(self.times)
        if times.shape != (values.shape[0],):
            raise ConfigurationError(
                f"Forcing '{self.name}': times length ({times.size}) != "
                f"n_times ({values.shape[0]})"
            )
        if times.dtype.kind == "O":
            try:
                times = times.astype(float)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Forcing '{self.name}': time labels must be integers"
                ) from None
        if times.dtype.kind not in "iuf":
            raise ConfigurationError(
                f"Forcing '{self.name}': time labels must be integers, "
                f"got dtype {times.dtype}"
            )
        if not np.all(np.mod(times, 1) == 0):
            raise ConfigurationError(f"Forcing '{self.name}': time labels must be integers")
        times = times.astype(int)
        if np.any(np.diff(times) != 1):
            raise ConfigurationError(
                f"Forcing '{self.name}': time labels must be contiguous and increasing"
            )

        columns = self.columns
        if columns is None:
            columns = tuple(range(values.shape[1]))
        columns = tuple(columns)
        if len(columns) != values.shape[1]:
            raise ConfigurationError(
                f"Forcing '{self.name}': {len(columns)} column labels for "
                f"{values.shape[1]} columns"
            )

        values.setflags(write=False)
        times.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "columns", columns)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, name: str = "forcing") -> "ForcingSeries":
        """Build a series from a DataFrame indexed by time label."""
        return cls(
            values=frame.to_numpy(dtype=float),
            times=frame.index.to_numpy(),
            columns=tuple(frame.columns),
            name=name,
        )

    @classmethod
    def constant(
        cls,
        row: Sequence[float],
        t_start: int,
        n_steps: int,
        columns: Optional[Sequence] = None,
        name: str = "forcing",
    ) -> "ForcingSeries":
        """Series holding ``row`` for ``n_steps`` steps from ``t_start``."""
        row = np.atleast_1d(np.asarray(row, dtype=float))
        return cls(
            values=np.tile(row, (n_steps, 1)),
            times=np.arange(t_start, t_start + n_steps),
            columns=columns,
            name=name,
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            np.array(self.values), index=np.array(self.times), columns=list(self.columns)
        )

    @property
    def n_steps(self) -> int:
        return self.values.shape[0]

    @property
    def origin(self) -> int:
        """First time label."""
        return int(self.times[0])

    @property
    def t_idx(self) -> int:
        """Offset added to a step label to obtain its 1-based row number."""
        return time_offset(self.origin)

    def row_number(self, step: int) -> int:
        """1-based row number for a step label."""
        return int(step) + self.t_idx

    def row(self, step: int) -> np.ndarray:
        """Forcing row for a step label.

        Raises
        ------
        ForcingIndexError
            If the step maps outside the table. Horizon validation at
            scenario build time keeps this from happening during a run.
        """
        number = self.row_number(step)
        if number < 1 or number > self.n_steps:
            raise ForcingIndexError(
                f"Forcing '{self.name}': step {step} maps to row {number}, "
                f"outside rows 1..{self.n_steps}",
                step=step,
                row=number,
            )
        return self.values[number - 1]

    def check_horizon(self, t_start: int, t_max: int) -> None:
        """Check that every step in ``t_start .. t_start + t_max - 1`` has a row.

        Raises
        ------
        ForcingIndexError
            If the table does not cover the horizon
        """
        first = self.row_number(t_start)
        last = self.row_number(t_start + t_max - 1)
        if first < 1 or last > self.n_steps:
            raise ForcingIndexError(
                f"Forcing '{self.name}' covers time {self.times[0]}..{self.times[-1]} "
                f"but the simulation needs {t_start}..{t_start + t_max - 1}",
                step=t_start if first < 1 else t_start + t_max - 1,
                row=first if first < 1 else last,
            )

    def with_spinup(self, n_spinup: int) -> "ForcingSeries":
        """Prepend ``n_spinup`` copies of the first row.

        The origin moves back by ``n_spinup`` so that the original rows keep
        their time labels.
        """
        if n_spinup < 0:
            raise ConfigurationError(
                f"Forcing '{self.name}': spin-up length must be >= 0, got {n_spinup}"
            )
        if n_spinup == 0:
            return self
        lead = np.repeat(self.values[:1], n_spinup, axis=0)
        return ForcingSeries(
            values=np.concatenate([lead, self.values]),
            times=np.arange(self.origin - n_spinup, self.times[-1] + 1),
            columns=self.columns,
            name=self.name,
        )

    def reindex_columns(self, columns: Sequence) -> "ForcingSeries":
        """Reorder columns to match ``columns``.

        Raises
        ------
        ConfigurationError
            If a requested column is missing
        """
        columns = tuple(columns)
        if columns == self.columns:
            return self
        missing = [c for c in columns if c not in self.columns]
        if missing:
            raise ConfigurationError(
                f"Forcing '{self.name}' has no columns for {missing}"
            )
        positions = [self.columns.index(c) for c in columns]
        return ForcingSeries(
            values=self.values[:, positions],
            times=self.times,
            columns=columns,
            name=self.name,
        )


def plankton_density(series: ForcingSeries, grid: "SizeGrid") -> ForcingSeries:
    """Convert log10 plankton abundance per bin to density per unit size.

    Parameters
    ----------
    series : ForcingSeries
        log10 abundance, one column per resource size bin (``grid.w_full``)
    grid : SizeGrid
        Size grid providing ``dw_full``

    Returns
    -------
    ForcingSeries
        ``10**values / dw_full``
    """
    if series.values.shape[1] != grid.w_full.size:
        raise ConfigurationError(
            f"Forcing '{series.name}': {series.values.shape[1]} size columns, "
            f"grid has {grid.w_full.size} resource bins"
        )
    return ForcingSeries(
        values=np.power(10.0, series.values) / grid.dw_full,
        times=series.times,
        columns=tuple(grid.w_full),
        name=series.name,
    )


def check_effort(effort: ForcingSeries, gears: Sequence[str]) -> ForcingSeries:
    """Validate an effort schedule and order its columns by gear."""
    effort = effort.reindex_columns(gears)
    if np.any(effort.values < 0) or np.any(~np.isfinite(effort.values)):
        raise ConfigurationError(f"Effort '{effort.name}' must be finite and non-negative")
    return effort


__all__ = [
    "time_offset",
    "ForcingSeries",
    "plankton_density",
    "check_effort",
]
