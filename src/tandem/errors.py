"""
Exceptions and warning records for TANDEM.

Exception hierarchy
-------------------
- ``TandemError`` (base)
    - ``DataValidationError``
        - ``ShapeMismatch``
        - ``MissingnessMismatch``
        - ``InvalidValue``
    - ``ConfigurationError``
        - ``UnsupportedFamily``
        - ``CovariateMismatch``
    - ``SamplingError``
    - ``UnknownParameter``
    - ``IncompatibleModels``

Validation and configuration errors are raised before any sampling starts.
``SamplingError`` aborts a single chain (and the whole fit only when no chain
survives). ``UnknownParameter`` and ``IncompatibleModels`` are scoped to the
query that raised them.

Non-fatal problems (divergent transitions, poor convergence, unscaled
covariates) are never raised. They are emitted with ``warnings.warn`` using
the ``TandemWarning`` categories below and also stored as records on the
results objects.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# ==============================================================================
# Exceptions
# ==============================================================================


class TandemError(Exception):
    """Base class for all TANDEM errors."""


# ------------------------------------------------------------------------------
# Data validation
# ------------------------------------------------------------------------------


class DataValidationError(TandemError, ValueError):
    """Raised when the survey matrices are inconsistent.

    Parameters
    ----------
    message : str
        Human-readable description.
    matrix : str, optional
        Name of the offending matrix (``"count"``, ``"pcr_n"``, ...).
    row : int, optional
        Zero-based site index of the first offending cell.
    column : int, optional
        Zero-based column index of the first offending cell.
    """

    def __init__(
        self,
        message: str,
        matrix: Optional[str] = None,
        row: Optional[int] = None,
        column: Optional[int] = None,
    ):
        super().__init__(message)
        self.matrix = matrix
        self.row = row
        self.column = column

    @property
    def cell(self) -> Optional[Tuple[int, int]]:
        """``(row, column)`` of the offending cell, if known."""
        if self.row is None or self.column is None:
            return None
        return (self.row, self.column)


class ShapeMismatch(DataValidationError):
    """Matrices disagree on the number of sites or columns."""


class MissingnessMismatch(DataValidationError):
    """Absent-cell patterns disagree, or a success count exceeds attempts."""


class InvalidValue(DataValidationError):
    """A cell holds a value outside the support of its matrix."""


# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------


class ConfigurationError(TandemError, ValueError):
    """Raised when the model configuration cannot be applied to the data."""


class UnsupportedFamily(ConfigurationError):
    """The count-family selector is not a recognized family."""

    def __init__(self, family):
        self.family = family
        super().__init__(
            f"Unsupported count family {family!r}. Must be one of "
            "'poisson', 'negative_binomial' or 'gamma'."
        )


class CovariateMismatch(ConfigurationError):
    """Requested covariates are not columns of the covariate matrix."""

    def __init__(self, missing, available):
        self.missing = list(missing)
        self.available = list(available)
        super().__init__(
            f"Covariates {self.missing} are not columns of the site "
            f"covariate matrix. Available columns: {self.available}."
        )


# ------------------------------------------------------------------------------
# Sampling and queries
# ------------------------------------------------------------------------------


class SamplingError(TandemError, RuntimeError):
    """A chain could not be sampled (e.g. non-finite initial log density)."""

    def __init__(self, message: str, chain: Optional[int] = None):
        super().__init__(message)
        self.chain = chain


class UnknownParameter(TandemError, KeyError):
    """The requested parameter name is not in the draw set."""

    def __init__(self, name: str, available=()):
        self.name = name
        self.available = list(available)
        super().__init__(name)

    def __str__(self) -> str:
        return (
            f"Unknown parameter {self.name!r}. "
            f"Available parameters: {self.available}."
        )


class IncompatibleModels(TandemError, ValueError):
    """Fits were made on data of different shape or observation pattern."""


# ==============================================================================
# Warnings
# ==============================================================================


class TandemWarning(UserWarning):
    """Base category for TANDEM warnings."""


class CovariateScalingWarning(TandemWarning):
    """A covariate column is not standardized."""


class DivergenceWarning(TandemWarning):
    """A chain produced divergent transitions."""


class ConvergenceWarning(TandemWarning):
    """R-hat or effective sample size fails the configured threshold."""


# ------------------------------------------------------------------------------
# Warning records attached to results
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class DivergentChain:
    """Divergent transitions recorded for one chain.

    Parameters
    ----------
    chain : int
        Chain index.
    n_divergent : int
        Number of post-warmup transitions flagged as divergent.
    n_draws : int
        Number of post-warmup transitions in the chain.
    """

    chain: int
    n_divergent: int
    n_draws: int

    @property
    def rate(self) -> float:
        """Fraction of divergent transitions."""
        return self.n_divergent / self.n_draws if self.n_draws else 0.0

    def __str__(self) -> str:
        return (
            f"chain {self.chain}: {self.n_divergent} of {self.n_draws} "
            "post-warmup transitions diverged"
        )


@dataclass(frozen=True)
class ConvergenceIssue:
    """A parameter element that failed an R-hat or ESS threshold.

    Parameters
    ----------
    parameter : str
        Parameter element name (e.g. ``"mu[2]"``).
    statistic : str
        ``"rhat"`` or ``"ess"``.
    value : float
        Observed value of the statistic.
    threshold : float
        Threshold it was compared against.
    """

    parameter: str
    statistic: str
    value: float
    threshold: float

    def __str__(self) -> str:
        op = ">" if self.statistic == "rhat" else "<"
        return (
            f"{self.parameter}: {self.statistic}={self.value:.3f} "
            f"{op} {self.threshold}"
        )
