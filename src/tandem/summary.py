"""
Posterior summaries for named and indexed parameters.

Summaries are pure functions of a draw set: they never modify the draws and
an unknown name only fails the query that asked for it.
"""

from dataclasses import asdict, dataclass
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .core.indexing import flatten_draws, select_parameter
from .diagnostics import effective_sample_size, split_rhat
from .errors import UnknownParameter

# ==============================================================================
# Summary record
# ==============================================================================


@dataclass(frozen=True)
class ParameterSummary:
    """Posterior summary of one scalar parameter element.

    Attributes
    ----------
    parameter : str
        Queried name (e.g. ``"p10"`` or ``"mu[2]"``).
    mean, sd : float
        Posterior mean and standard deviation.
    lower, upper : float
        Bounds of the central credible interval.
    ci : float
        Credible level of the interval.
    ess : float
        Effective sample size.
    rhat : float
        Split R-hat.
    """

    parameter: str
    mean: float
    sd: float
    lower: float
    upper: float
    ci: float
    ess: float
    rhat: float

    def to_dict(self) -> dict:
        return asdict(self)


# ------------------------------------------------------------------------------


def check_ci(ci: float) -> None:
    """Raise ``ValueError`` unless ``0 < ci < 1``."""
    if not 0.0 < ci < 1.0:
        raise ValueError(f"ci must be in (0, 1), got {ci}")


def interval_bounds(ci: float):
    """Lower and upper quantile levels of a central ``ci`` interval."""
    tail = (1.0 - ci) / 2.0
    return tail, 1.0 - tail


# ==============================================================================
# Public API
# ==============================================================================


def summarize(
    draws: Mapping[str, np.ndarray],
    name: str,
    ci: float = 0.95,
    labels: Optional[Mapping[str, Sequence[str]]] = None,
) -> ParameterSummary:
    """Summarize one scalar parameter element.

    Parameters
    ----------
    draws : mapping
        Draw set ``{name: (n_chains, n_draws, ...)}``.
    name : str
        Scalar parameter (``"p10"``) or element (``"mu[3]"``,
        ``"alpha[depth]"``).
    ci : float, default=0.95
        Central credible level.
    labels : mapping, optional
        Axis labels for label-based indexing.

    Returns
    -------
    ParameterSummary

    Raises
    ------
    UnknownParameter
        If ``name`` does not address a scalar element of the draw set.
    ValueError
        If ``ci`` is outside ``(0, 1)``.
    """
    check_ci(ci)
    x = select_parameter(draws, name, labels)
    if x.ndim != 2:
        # Vector-valued parameters must be queried element by element
        raise UnknownParameter(name, list(flatten_draws(draws)))

    return summarize_array(name, x, ci)


# ------------------------------------------------------------------------------


def summarize_array(name: str, x: np.ndarray, ci: float) -> ParameterSummary:
    """Summary of ``(n_chains, n_draws)`` draws.

    The interval is the central ``ci`` interval widened, when needed, to
    contain the mean (heavily skewed draws can put the mean outside it).
    """
    flat = x.reshape(-1)
    mean = float(flat.mean())
    lo_q, hi_q = interval_bounds(ci)
    lower, upper = np.quantile(flat, [lo_q, hi_q])
    lower, upper = min(float(lower), mean), max(float(upper), mean)
    return ParameterSummary(
        parameter=name,
        mean=mean,
        sd=float(flat.std(ddof=1)) if flat.size > 1 else 0.0,
        lower=float(lower),
        upper=float(upper),
        ci=ci,
        ess=float(effective_sample_size(x)),
        rhat=float(split_rhat(x)),
    )


# ------------------------------------------------------------------------------


def summary_table(
    draws: Mapping[str, np.ndarray],
    ci: float = 0.95,
    parameters: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Summarize every scalar element of (a subset of) a draw set.

    Parameters
    ----------
    draws : mapping
        Draw set.
    ci : float, default=0.95
        Central credible level.
    parameters : sequence of str, optional
        Base names to include; defaults to all.

    Returns
    -------
    pd.DataFrame
        One row per element, indexed by element name.
    """
    check_ci(ci)
    if parameters is not None:
        unknown = [p for p in parameters if p not in draws]
        if unknown:
            raise UnknownParameter(unknown[0], list(draws))
        draws = {p: draws[p] for p in parameters}

    rows = [
        summarize_array(elem, arr, ci).to_dict()
        for elem, arr in flatten_draws(draws).items()
    ]
    return pd.DataFrame(rows).set_index("parameter")
