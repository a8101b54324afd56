"""
Enums for model configuration.

Enums restrict configurable choices to a fixed set of symbolic values, so an
invalid selector fails at configuration time rather than deep inside model
construction.
"""

from enum import Enum

# ==============================================================================
# Enums for model configuration
# ==============================================================================


class CountFamily(str, Enum):
    """Supported distributions for traditional catch data."""

    POISSON = "poisson"
    NEGATIVE_BINOMIAL = "negative_binomial"
    GAMMA = "gamma"

    @property
    def has_dispersion(self) -> bool:
        """Whether the family carries a dispersion/shape parameter ``phi``."""
        return self is not CountFamily.POISSON

    @property
    def is_discrete(self) -> bool:
        """Whether observations are integer counts."""
        return self is not CountFamily.GAMMA


# ------------------------------------------------------------------------------


class EffortSummary(str, Enum):
    """Statistics used to reduce per-draw effort to a single curve."""

    MEDIAN = "median"
    MEAN = "mean"
