"""
Convergence diagnostics for multi-chain posterior draws.

Provides the potential scale reduction factor (R-hat, optionally on split
chains) and the autocorrelation-aware effective sample size, plus a report
that flags parameters failing configurable thresholds. Threshold failures are
reported, never raised: callers decide whether a fit is usable.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Mapping, Union

import numpy as np
import pandas as pd
from numpyro.diagnostics import effective_sample_size as _numpyro_ess

from .core.indexing import flatten_draws
from .errors import ConvergenceIssue, ConvergenceWarning

logger = logging.getLogger(__name__)

# Default convergence thresholds
DEFAULT_MAX_RHAT = 1.01
DEFAULT_MIN_ESS = 400.0

# ------------------------------------------------------------------------------
# R-hat
# ------------------------------------------------------------------------------


def split_rhat(
    draws: np.ndarray, split: bool = True
) -> Union[float, np.ndarray]:
    """Potential scale reduction factor.

    With ``n`` draws per chain, within-chain variance ``W`` (mean of the
    per-chain sample variances) and between-chain variance ``B`` (``n``
    times the sample variance of the chain means),

        R-hat = sqrt((W + B / n) / W)

    which is at least 1 and exactly 1 when all chains share the same mean.

    Parameters
    ----------
    draws : np.ndarray, shape ``(n_chains, n_draws, ...)``
        Draws of one parameter; trailing axes are treated elementwise.
    split : bool, default=True
        Split each chain into halves before comparing (detects within-chain
        drift). With ``split=False`` the classic Gelman-Rubin statistic is
        returned.

    Returns
    -------
    float or np.ndarray
        R-hat per element; ``nan`` when fewer than two (split) chains or two
        draws are available.
    """
    x = np.asarray(draws, dtype=np.float64)
    if x.ndim < 2:
        raise ValueError(
            f"draws must have shape (n_chains, n_draws, ...), got {x.shape}"
        )
    if split:
        half = x.shape[1] // 2
        x = np.concatenate([x[:, :half], x[:, x.shape[1] - half :]], axis=0)

    n_chains, n = x.shape[:2]
    if n_chains < 2 or n < 2:
        out = np.full(x.shape[2:], np.nan)
        return float(out) if out.ndim == 0 else out

    chain_mean = x.mean(axis=1)
    W = x.var(axis=1, ddof=1).mean(axis=0)
    B = n * chain_mean.var(axis=0, ddof=1)

    with np.errstate(divide="ignore", invalid="ignore"):
        rhat = np.sqrt((W + B / n) / W)
    # Constant draws: identical chains converge, differing constants do not
    rhat = np.where(W > 0, rhat, np.where(B > 0, np.inf, 1.0))
    return float(rhat) if rhat.ndim == 0 else rhat


# ------------------------------------------------------------------------------
# Effective sample size
# ------------------------------------------------------------------------------


def effective_sample_size(draws: np.ndarray) -> Union[float, np.ndarray]:
    """Effective sample size across chains.

    Uses NumPyro's estimator (FFT autocorrelation with Geyer's initial
    monotone sequence). Constant draws get ``nan``.

    Parameters
    ----------
    draws : np.ndarray, shape ``(n_chains, n_draws, ...)``

    Returns
    -------
    float or np.ndarray
    """
    x = np.asarray(draws, dtype=np.float64)
    if x.ndim < 2:
        raise ValueError(
            f"draws must have shape (n_chains, n_draws, ...), got {x.shape}"
        )
    constant = np.ptp(x.reshape((-1,) + x.shape[2:]), axis=0) == 0
    if x.shape[1] < 2 or np.all(constant):
        out = np.full(x.shape[2:], np.nan)
    else:
        with np.errstate(divide="ignore", invalid="ignore"):
            out = np.asarray(_numpyro_ess(x), dtype=np.float64)
        out = np.where(constant, np.nan, out)
    return float(out) if np.ndim(out) == 0 else out


# ------------------------------------------------------------------------------
# Report
# ------------------------------------------------------------------------------


@dataclass
class ConvergenceReport:
    """Per-element convergence diagnostics.

    Attributes
    ----------
    table : pd.DataFrame
        One row per scalar parameter element with columns ``parameter``,
        ``rhat`` and ``ess``.
    issues : list of ConvergenceIssue
        Threshold failures.
    max_rhat : float
        R-hat threshold used.
    min_ess : float
        ESS threshold used.
    """

    table: pd.DataFrame
    issues: List[ConvergenceIssue] = field(default_factory=list)
    max_rhat: float = DEFAULT_MAX_RHAT
    min_ess: float = DEFAULT_MIN_ESS

    @property
    def converged(self) -> bool:
        """True when no element failed a threshold."""
        return len(self.issues) == 0

    def rhat(self, parameter: str) -> float:
        return float(self.table.set_index("parameter").loc[parameter, "rhat"])

    def ess(self, parameter: str) -> float:
        return float(self.table.set_index("parameter").loc[parameter, "ess"])

    def __repr__(self) -> str:
        return (
            f"ConvergenceReport(n_parameters={len(self.table)}, "
            f"converged={self.converged}, n_issues={len(self.issues)})"
        )


# ------------------------------------------------------------------------------


def diagnose(
    draws: Mapping[str, np.ndarray],
    max_rhat: float = DEFAULT_MAX_RHAT,
    min_ess: float = DEFAULT_MIN_ESS,
    split: bool = True,
    warn: bool = True,
) -> ConvergenceReport:
    """Compute R-hat and ESS for every scalar element of a draw set.

    Parameters
    ----------
    draws : mapping
        Draw set ``{name: (n_chains, n_draws, ...)}``.
    max_rhat : float, default=1.01
        Elements with R-hat above this are flagged.
    min_ess : float, default=400
        Elements with ESS below this are flagged.
    split : bool, default=True
        Use split-chain R-hat.
    warn : bool, default=True
        Emit a single :class:`ConvergenceWarning` summarizing the issues.

    Returns
    -------
    ConvergenceReport
    """
    records = []
    issues: List[ConvergenceIssue] = []
    for name, arr in flatten_draws(draws).items():
        r = split_rhat(arr, split=split)
        e = effective_sample_size(arr)
        records.append({"parameter": name, "rhat": r, "ess": e})
        if r > max_rhat:
            issues.append(ConvergenceIssue(name, "rhat", float(r), max_rhat))
        if e < min_ess:
            issues.append(ConvergenceIssue(name, "ess", float(e), min_ess))

    table = pd.DataFrame.from_records(records, columns=["parameter", "rhat", "ess"])

    if issues:
        logger.info("%d convergence issues detected", len(issues))
        if warn:
            shown = "; ".join(str(i) for i in issues[:5])
            more = f" (+{len(issues) - 5} more)" if len(issues) > 5 else ""
            warnings.warn(
                f"Convergence thresholds not met: {shown}{more}",
                ConvergenceWarning,
                stacklevel=2,
            )

    return ConvergenceReport(
        table=table, issues=issues, max_rhat=max_rhat, min_ess=min_ess
    )
