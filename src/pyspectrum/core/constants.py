"""Physical and biological constants for size-spectrum modeling.

This module centralizes magic numbers and constants used throughout PySpectrum,
so that the thermal, species and resource defaults live in one place.
"""

import numpy as np

# ============================================================================
# THERMAL CONSTANTS
# ============================================================================

# Arrhenius temperature dependence of metabolic cost
ARRHENIUS_INTERCEPT = 25.22
ACTIVATION_ENERGY_EV = 0.63  # Activation energy (eV)
BOLTZMANN_EV = 8.62e-5  # Boltzmann constant (eV/K)
KELVIN_OFFSET = 273.0  # Celsius to Kelvin

# Sampling resolution for the thermal performance maximum (degrees C)
THERMAL_RESOLUTION = 0.1

# ============================================================================
# SIZE GRID DEFAULTS
# ============================================================================

DEFAULT_NO_W = 100  # Number of consumer size bins
DEFAULT_MIN_W = 0.001  # Smallest consumer size (g)
DEFAULT_MIN_W_PP = 1e-10  # Smallest resource size (g)

# ============================================================================
# SPECIES DEFAULTS (mizer conventions)
# ============================================================================

DEFAULT_BETA = 100.0  # Preferred predator/prey mass ratio
DEFAULT_SIGMA = 2.0  # Width of the predation kernel
DEFAULT_H = 30.0  # Maximum intake coefficient
DEFAULT_Q = 0.8  # Search volume exponent
DEFAULT_N = 2.0 / 3.0  # Maximum intake exponent
DEFAULT_KS_FRACTION = 0.2  # Standard metabolism coefficient as fraction of h
DEFAULT_K = 0.0  # Activity metabolism coefficient
DEFAULT_ALPHA = 0.6  # Assimilation efficiency
DEFAULT_EREPRO = 1.0  # Reproductive efficiency
DEFAULT_Z0PRE = 0.6  # Background mortality pre-factor
DEFAULT_R_MAX = np.inf  # Beverton-Holt maximum recruitment (off)
DEFAULT_F0 = 0.6  # Expected feeding level used for the gamma default
DEFAULT_CATCHABILITY = 1.0
DEFAULT_GEAR = "Longline"

# Maturity ogive steepness and reproduction allocation exponent
MATURITY_STEEPNESS = 10.0
REPRO_EXPONENT_M = 1.0

# ============================================================================
# RESOURCE DEFAULTS
# ============================================================================

DEFAULT_KAPPA = 1e11  # Resource carrying capacity coefficient
DEFAULT_LAMBDA = 2.0 + DEFAULT_Q - DEFAULT_N  # Resource spectrum exponent
DEFAULT_R_PP = 10.0  # Resource regeneration rate coefficient
DEFAULT_W_PP_CUTOFF = 10.0  # Largest resource size (g)

# ============================================================================
# SIMULATION PARAMETERS
# ============================================================================

DEFAULT_DT = 0.1  # Sub-step length in forcing steps (years)
