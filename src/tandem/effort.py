"""
Detection-effort calculations.

Turns posterior draws into the number of sampling units needed to detect a
species with a target probability, for traditional gear and for eDNA water
samples, across a range of expected catch rates ``mu``.

For a per-unit detection probability ``p``, the number of units needed to
reach a cumulative detection probability ``target`` is

    n = ceil(log(1 - target) / log(1 - p))

computed per posterior draw and then summarized across draws. Log miss
probabilities ``log(1 - p)`` are evaluated in closed form for each family
to stay accurate when ``p`` is close to 0 or 1.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from .errors import CovariateMismatch
from .models.config import CountFamily, EffortSummary
from .summary import ParameterSummary, check_ci, interval_bounds, summarize_array

logger = logging.getLogger(__name__)

# ==============================================================================
# Effort curve
# ==============================================================================


@dataclass(frozen=True)
class EffortCurve:
    """Sampling effort needed to reach a detection probability.

    Attributes
    ----------
    mu : np.ndarray, shape ``(G,)``
        Expected catch rates the curve is evaluated at.
    traditional, edna : np.ndarray, shape ``(G,)``
        Summarized number of traditional units / water samples.
    traditional_lower, traditional_upper : np.ndarray
        Credible band of the traditional effort.
    edna_lower, edna_upper : np.ndarray
        Credible band of the eDNA effort.
    target : float
        Cumulative detection probability.
    summary : EffortSummary
        Statistic used across draws.
    ci : float
        Level of the credible band.
    pcr_replicates : int
        qPCR replicates per water sample.
    covariate_values : dict
        Covariate values the eDNA sensitivity was evaluated at.
    gear : int, optional
        Gear type of the traditional curve (gear-stratified models).
    """

    mu: np.ndarray
    traditional: np.ndarray
    traditional_lower: np.ndarray
    traditional_upper: np.ndarray
    edna: np.ndarray
    edna_lower: np.ndarray
    edna_upper: np.ndarray
    target: float
    summary: EffortSummary
    ci: float
    pcr_replicates: int = 1
    covariate_values: Dict[str, float] = field(default_factory=dict)
    gear: Optional[int] = None

    def to_frame(self) -> pd.DataFrame:
        """Curve as a DataFrame with one row per ``mu`` value."""
        return pd.DataFrame(
            {
                "mu": self.mu,
                "traditional": self.traditional,
                "traditional_lower": self.traditional_lower,
                "traditional_upper": self.traditional_upper,
                "edna": self.edna,
                "edna_lower": self.edna_lower,
                "edna_upper": self.edna_upper,
            }
        )


# ==============================================================================
# Per-unit miss probabilities
# ==============================================================================


def traditional_log_miss(
    family: CountFamily, mu: np.ndarray, phi: Optional[np.ndarray] = None
) -> np.ndarray:
    """Log probability that one traditional unit catches nothing.

    Parameters
    ----------
    family : CountFamily
        Count family of the fit.
    mu : np.ndarray
        Expected catch per unit.
    phi : np.ndarray, optional
        Dispersion (negative binomial) or shape (gamma), broadcastable to
        ``mu``.

    Returns
    -------
    np.ndarray
        ``log(1 - p_unit)``. For the gamma family a detection is a catch of
        at least one unit, ``P(C >= 1)``.
    """
    if family is CountFamily.POISSON:
        return -mu
    if family is CountFamily.NEGATIVE_BINOMIAL:
        return -phi * np.log1p(mu / phi)
    return stats.gamma.logcdf(1.0, a=phi, scale=mu / phi)


def edna_log_miss(
    mu: np.ndarray, beta: np.ndarray, pcr_replicates: int = 1
) -> np.ndarray:
    """Log probability that a water sample yields no true-positive PCR.

    With ``p11 = mu / (mu + exp(beta))``,
    ``log(1 - p11) = beta - log(mu + exp(beta))``.
    """
    return pcr_replicates * (beta - np.logaddexp(np.log(mu), beta))


def units_needed(log_miss: np.ndarray, target: float) -> np.ndarray:
    """``ceil(log(1 - target) / log(1 - p))``, at least 1; ``inf`` if ``p = 0``."""
    log_miss = np.asarray(log_miss, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        n = np.ceil(np.log1p(-target) / log_miss)
    n = np.where(log_miss < 0, n, np.inf)
    return np.maximum(n, 1.0)


# ==============================================================================
# Helpers
# ==============================================================================


def _mu_grid(
    mu: Union[Tuple[float, float], Sequence[float], np.ndarray], n_points: int
) -> np.ndarray:
    """A 2-tuple is a ``(mu_min, mu_max)`` range; anything else is a grid."""
    if isinstance(mu, tuple) and len(mu) == 2:
        lo, hi = float(mu[0]), float(mu[1])
        if not 0 < lo < hi:
            raise ValueError(
                f"mu range must satisfy 0 < mu_min < mu_max, got {mu}"
            )
        grid = np.linspace(lo, hi, n_points)
    else:
        grid = np.atleast_1d(np.asarray(mu, dtype=np.float64))
        if grid.ndim != 1 or grid.size == 0:
            raise ValueError("mu must be a non-empty 1-D grid or a 2-tuple")
    if np.any(~np.isfinite(grid)) or np.any(grid <= 0):
        raise ValueError("mu values must be positive and finite")
    return grid


def _covariate_vector(
    results, covariate_values: Optional[Mapping[str, float]]
) -> Tuple[np.ndarray, Dict[str, float]]:
    """Covariate values in ``alpha`` order; unspecified covariates are 0."""
    names = tuple(results.model_config.covariates)
    values = dict(covariate_values or {})
    unknown = [k for k in values if k not in names]
    if unknown:
        raise CovariateMismatch(unknown, names)
    resolved = {name: float(values.get(name, 0.0)) for name in names}
    return np.array([resolved[n] for n in names], dtype=np.float64), resolved


def _linear_predictor(alpha: np.ndarray, x: np.ndarray) -> np.ndarray:
    """``beta = alpha[..., 0] + alpha[..., 1:] @ x`` for every draw."""
    return alpha[..., 0] + alpha[..., 1:] @ x


def _gear_scale(results, gear: Optional[int], samples) -> np.ndarray:
    """Per-draw catchability of the requested gear (1 for the reference)."""
    n_draws = samples["alpha"].shape[0]
    if gear is None:
        return np.ones(n_draws)
    if not results.model_config.gear_types:
        raise ValueError("gear was given but the model is not gear-stratified")
    n_gear = results.joint_model.sub_model.n_gear
    if not 0 <= gear < n_gear:
        raise ValueError(f"gear must be in [0, {n_gear}), got {gear}")
    if gear == 0:
        return np.ones(n_draws)
    return samples["q"][:, gear - 1]


def _reduce(n: np.ndarray, how: EffortSummary, ci: float):
    """Summary and credible band of per-draw effort ``(S, G)``."""
    lo_q, hi_q = interval_bounds(ci)
    center = np.median(n, axis=0) if how is EffortSummary.MEDIAN else n.mean(axis=0)
    # Order statistics keep the band well defined when some draws are inf
    lower = np.quantile(n, lo_q, axis=0, method="lower")
    upper = np.quantile(n, hi_q, axis=0, method="higher")
    return center, lower, upper


# ==============================================================================
# Public API
# ==============================================================================


def detection_effort(
    results,
    mu: Union[Tuple[float, float], Sequence[float], np.ndarray],
    target: float = 0.9,
    covariate_values: Optional[Mapping[str, float]] = None,
    pcr_replicates: int = 1,
    summary: Union[str, EffortSummary] = "median",
    n_points: int = 50,
    ci: float = 0.9,
    gear: Optional[int] = None,
) -> EffortCurve:
    """
    Effort needed to detect the species with probability ``target``.

    Parameters
    ----------
    results : TandemMCMCResults
        Fit providing posterior draws of ``alpha`` (and ``phi``, ``q``).
    mu : tuple or array-like
        Either a ``(mu_min, mu_max)`` tuple, evaluated on ``n_points``
        evenly spaced values, or an explicit grid of expected catch rates.
    target : float, default=0.9
        Cumulative detection probability, in ``(0, 1)``.
    covariate_values : mapping, optional
        Value of each covariate at which eDNA sensitivity is evaluated.
        Covariates not given are set to 0 (their mean when standardized).
    pcr_replicates : int, default=1
        qPCR replicates run on each water sample.
    summary : {"median", "mean"}, default="median"
        Statistic used to reduce per-draw effort.
    n_points : int, default=50
        Grid size when ``mu`` is a range.
    ci : float, default=0.9
        Level of the credible band.
    gear : int, optional
        Gear type for the traditional curve (gear-stratified models only);
        the reference gear ``0`` has catchability 1.

    Returns
    -------
    EffortCurve
        Curves that are non-increasing in ``mu`` and non-decreasing in
        ``target``.

    Raises
    ------
    CovariateMismatch
        If ``covariate_values`` names a covariate the model does not use.
    ValueError
        For out-of-range ``target``, ``ci``, ``pcr_replicates`` or ``gear``.
    """
    if not 0.0 < target < 1.0:
        raise ValueError(f"target must be in (0, 1), got {target}")
    if int(pcr_replicates) != pcr_replicates or pcr_replicates < 1:
        raise ValueError(
            f"pcr_replicates must be a positive integer, got {pcr_replicates}"
        )
    check_ci(ci)
    how = EffortSummary(summary)

    grid = _mu_grid(mu, n_points)
    x, resolved = _covariate_vector(results, covariate_values)
    samples = results.get_samples()
    family = results.model_config.family

    # Per-draw quantities broadcast against the grid: (S, 1) x (G,) -> (S, G)
    beta = _linear_predictor(np.asarray(samples["alpha"]), x)[:, None]
    scale = _gear_scale(results, gear, samples)[:, None]
    phi = np.asarray(samples["phi"])[:, None] if family.has_dispersion else None

    n_trad = units_needed(traditional_log_miss(family, grid * scale, phi), target)
    n_edna = units_needed(edna_log_miss(grid, beta, int(pcr_replicates)), target)

    trad, trad_lo, trad_hi = _reduce(n_trad, how, ci)
    edna, edna_lo, edna_hi = _reduce(n_edna, how, ci)
    logger.debug(
        "effort curve: %d mu values, %d draws", grid.size, n_trad.shape[0]
    )

    return EffortCurve(
        mu=grid,
        traditional=trad,
        traditional_lower=trad_lo,
        traditional_upper=trad_hi,
        edna=edna,
        edna_lower=edna_lo,
        edna_upper=edna_hi,
        target=float(target),
        summary=how,
        ci=ci,
        pcr_replicates=int(pcr_replicates),
        covariate_values=resolved,
        gear=gear,
    )


# ------------------------------------------------------------------------------


def mu_critical(
    results,
    covariate_values: Optional[Mapping[str, float]] = None,
    ci: float = 0.9,
) -> ParameterSummary:
    """
    Catch rate at which true- and false-positive PCR rates are equal.

    Below ``mu* = p10 * exp(beta) / (1 - p10)`` a single PCR detection is
    more likely to be a false positive than a true one.

    Parameters
    ----------
    results : TandemMCMCResults
        Fit providing draws of ``p10`` and ``alpha``.
    covariate_values : mapping, optional
        Covariate values for ``beta`` (unspecified covariates are 0).
    ci : float, default=0.9
        Level of the credible interval.

    Returns
    -------
    ParameterSummary
        Posterior summary of ``mu_critical``.
    """
    check_ci(ci)
    x, _ = _covariate_vector(results, covariate_values)
    draws = results.get_samples(group_by_chain=True)
    p10 = np.asarray(draws["p10"])
    beta = _linear_predictor(np.asarray(draws["alpha"]), x)
    critical = np.exp(np.log(p10) - np.log1p(-p10) + beta)
    return summarize_array("mu_critical", critical, ci)
