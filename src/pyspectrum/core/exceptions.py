"""Exception classes for PySpectrum."""

from typing import Optional


class SpectrumError(Exception):
    """Base exception for size-spectrum model errors."""

    pass


class ConfigurationError(SpectrumError):
    """Raised when a model configuration cannot be built.

    Covers degenerate thermal ranges, mismatched species and interaction
    dimensions, forcing tables shorter than the simulated horizon and
    selectivity parameters that fall outside the size grid.
    """

    pass


class ForcingIndexError(ConfigurationError):
    """Raised when a forcing row index falls outside its table."""

    def __init__(self, message: str, step: Optional[int] = None, row: Optional[int] = None):
        super().__init__(message)
        self.step = step
        self.row = row


class NumericalError(SpectrumError):
    """Raised when the simulation reaches an invalid numerical state."""

    def __init__(
        self,
        message: str,
        time: Optional[float] = None,
        species: Optional[str] = None,
    ):
        super().__init__(message)
        self.time = time
        self.species = species
