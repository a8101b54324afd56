"""TandemModelComparisonResults: PSIS-LOO comparison of joint-model fits.

This module defines:

- ``TandemModelComparisonResults``: a dataclass that stores each model's
  per-observation log-likelihood matrix and derives PSIS-LOO statistics and
  the model ranking lazily.
- ``compare_models()``: factory function that checks that the fits share
  their data, extracts the log-likelihood matrices and returns a
  ``TandemModelComparisonResults``.

Design decisions
----------------
- Log-likelihood matrices ``(S, n_obs)`` are computed once per fit (and
  cached on the fit). PSIS-LOO is computed on first use and cached.
- Fits are only comparable when they were made on the same observed cells:
  same number of sites and the same observation fingerprint.
- The ranking is a pure function of the set of ``(name, fit)`` pairs: ties
  in ELPD are broken by model name, never by input position.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.special import softmax

from ..errors import IncompatibleModels
from ._psis_loo import compute_psis_loo, psis_loo_summary

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results class
# ---------------------------------------------------------------------------


@dataclass
class TandemModelComparisonResults:
    """Structured results for PSIS-LOO comparison of K fits.

    Parameters
    ----------
    model_names : list of str
        Unique names of the K models.
    log_liks : list of np.ndarray
        K arrays of shape ``(S_k, n_obs)`` with per-observation
        log-likelihoods. The number of draws may differ between models; the
        observed cells may not.
    n_sites : int
        Number of survey sites shared by all fits.
    n_obs : int
        Number of observed cells shared by all fits.
    dtype : numpy dtype, default=np.float64
        Precision used for PSIS-LOO computations.

    Examples
    --------
    >>> mc = compare_models([fit_poisson, fit_negbin],
    ...                     model_names=["poisson", "negbin"])
    >>> mc.rank()
    >>> print(mc.summary())
    """

    model_names: List[str]
    log_liks: List[np.ndarray] = field(repr=False)
    n_sites: int = 0
    n_obs: int = 0
    dtype: type = field(default=np.float64, repr=False)

    _psis_loo_cache: Optional[List[dict]] = field(
        default=None, repr=False, init=False
    )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def K(self) -> int:
        """Number of models being compared."""
        return len(self.model_names)

    # ------------------------------------------------------------------
    # PSIS-LOO
    # ------------------------------------------------------------------

    def psis_loo(
        self, model: Optional[Union[int, str]] = None
    ) -> Union[dict, List[dict]]:
        """PSIS-LOO statistics for one or all models.

        Parameters
        ----------
        model : int or str, optional
            Index or name of a single model. If None, a list for all K
            models is returned (in input order).

        Returns
        -------
        dict or list of dict
            Output of :func:`~tandem.mc._psis_loo.compute_psis_loo`.
        """
        if self._psis_loo_cache is None:
            self._psis_loo_cache = []
            for name, ll in zip(self.model_names, self.log_liks):
                logger.info("Computing PSIS-LOO for %s", name)
                self._psis_loo_cache.append(
                    compute_psis_loo(ll, dtype=self.dtype)
                )
        if model is not None:
            return self._psis_loo_cache[
                _resolve_model_idx(model, self.model_names)
            ]
        return self._psis_loo_cache

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def rank(self) -> pd.DataFrame:
        """Rank models by PSIS-LOO expected log predictive density.

        Returns
        -------
        pd.DataFrame
            One row per model, best first. Columns:

            ``model``
                Model name.
            ``elpd``
                PSIS-LOO ELPD.
            ``se``
                Standard error of ``elpd``.
            ``p_loo``
                Effective number of parameters.
            ``elpd_diff``
                ELPD difference from the best model (0 for the best).
            ``elpd_diff_se``
                Standard error of the difference from pointwise differences.
            ``weight``
                Pseudo-BMA weight ``exp(elpd_k) / sum_j exp(elpd_j)``.
            ``n_bad_k``
                Observed cells with ``k_hat >= 0.7``.
        """
        loo = self.psis_loo()
        elpd = np.array([r["elpd_loo"] for r in loo])

        # Best model: highest elpd, ties broken by name
        order = sorted(range(self.K), key=lambda k: (-elpd[k], self.model_names[k]))
        best = order[0]
        best_pointwise = loo[best]["elpd_loo_i"]

        weights = softmax(elpd)

        records = []
        for k in order:
            d_i = loo[k]["elpd_loo_i"] - best_pointwise
            records.append(
                {
                    "model": self.model_names[k],
                    "elpd": float(elpd[k]),
                    "se": float(loo[k]["elpd_loo_se"]),
                    "p_loo": float(loo[k]["p_loo"]),
                    "elpd_diff": float(elpd[k] - elpd[best]),
                    "elpd_diff_se": float(np.sqrt(np.sum((d_i - d_i.mean()) ** 2))),
                    "weight": float(weights[k]),
                    "n_bad_k": int(loo[k]["n_bad"]),
                }
            )
        return pd.DataFrame.from_records(records)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """Formatted ranking table followed by per-model PSIS diagnostics."""
        table = self.rank()
        lines = [
            f"Model comparison (PSIS-LOO, {self.n_obs} observed cells, "
            f"{self.n_sites} sites)",
            table.to_string(index=False, float_format=lambda x: f"{x:.2f}"),
        ]
        for name in table["model"]:
            lines.append("")
            lines.append(f"[{name}]")
            lines.append(psis_loo_summary(self.psis_loo(name)))
        return "\n".join(lines)

    def diagnostics(self) -> pd.DataFrame:
        """Pareto ``k_hat`` counts per model, in input order."""
        records = []
        for name, r in zip(self.model_names, self.psis_loo()):
            k = r["k_hat"]
            records.append(
                {
                    "model": name,
                    "max_k_hat": float(np.max(k)) if k.size else 0.0,
                    "n_k_below_0.5": int(np.sum(k < 0.5)),
                    "n_k_0.5_to_0.7": int(np.sum((k >= 0.5) & (k < 0.7))),
                    "n_k_above_0.7": int(r["n_bad"]),
                }
            )
        return pd.DataFrame.from_records(records)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _resolve_model_idx(model: Union[int, str], model_names: List[str]) -> int:
    """Resolve a model identifier (index or name) to its index.

    Raises
    ------
    ValueError
        If the name is not found or the index is out of range.
    """
    if isinstance(model, (int, np.integer)):
        if model < 0 or model >= len(model_names):
            raise ValueError(
                f"Model index {model} out of range (K={len(model_names)})."
            )
        return int(model)
    if isinstance(model, str):
        if model not in model_names:
            raise ValueError(
                f"Model '{model}' not found. Available: {model_names}."
            )
        return model_names.index(model)
    raise TypeError(f"model must be int or str, got {type(model)}.")


def _default_model_name(results) -> str:
    """Readable name from a fit's configuration, e.g. ``poisson[depth]``."""
    config = results.model_config
    name = config.family.value
    if config.covariates:
        name += "[" + ",".join(config.covariates) + "]"
    if config.gear_types:
        name += "+gear"
    return name


def _check_compatible(results_list, model_names: Sequence[str]) -> None:
    """Raise ``IncompatibleModels`` unless all fits share their data."""
    ref_name, ref = model_names[0], results_list[0]
    ref_sites = ref.joint_model.n_sites
    ref_print = ref.joint_model.observation_fingerprint()
    for name, results in zip(model_names[1:], results_list[1:]):
        n_sites = results.joint_model.n_sites
        if n_sites != ref_sites:
            raise IncompatibleModels(
                f"Model '{name}' was fit to {n_sites} sites but model "
                f"'{ref_name}' was fit to {ref_sites} sites."
            )
        if results.joint_model.observation_fingerprint() != ref_print:
            raise IncompatibleModels(
                f"Models '{name}' and '{ref_name}' were fit to different "
                "observed cells or values."
            )


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def compare_models(
    results_list,
    model_names: Optional[List[str]] = None,
    dtype_psis: type = np.float64,
) -> TandemModelComparisonResults:
    """Compare fitted joint models by PSIS-LOO.

    For each fit this function retrieves the per-observation log-likelihood
    matrix of shape ``(S, n_obs)`` (traditional cells first, then water
    samples) and returns a :class:`TandemModelComparisonResults` that
    computes PSIS-LOO and the ranking lazily.

    Parameters
    ----------
    results_list : list of TandemMCMCResults
        At least two fits of the same survey data.
    model_names : list of str, optional
        Unique names for the fits. Defaults to names derived from each fit's
        family, covariates and gear flag; required when two fits share one.
    dtype_psis : numpy dtype, default=np.float64
        Precision for PSIS-LOO computation.

    Returns
    -------
    TandemModelComparisonResults

    Raises
    ------
    ValueError
        If fewer than two fits are given, or names are missing or repeated.
    IncompatibleModels
        If the fits differ in number of sites or in the observed cells.
    """
    results_list = list(results_list)
    K = len(results_list)
    if K < 2:
        raise ValueError(f"Model comparison requires at least 2 fits, got {K}.")

    if model_names is None:
        model_names = [_default_model_name(r) for r in results_list]
        repeated = sorted({n for n in model_names if model_names.count(n) > 1})
        if repeated:
            raise ValueError(
                f"Fits share the default name(s) {repeated}; pass model_names "
                "to tell them apart."
            )
    model_names = list(model_names)
    if len(model_names) != K:
        raise ValueError(
            f"model_names has length {len(model_names)} but results_list "
            f"has {K} models."
        )
    if len(set(model_names)) != K:
        raise ValueError(f"model_names must be unique, got {model_names}.")

    _check_compatible(results_list, model_names)

    log_liks = []
    for name, results in zip(model_names, results_list):
        logger.info("Computing log-likelihoods for %s", name)
        log_liks.append(np.asarray(results.log_likelihood()))

    return TandemModelComparisonResults(
        model_names=model_names,
        log_liks=log_liks,
        n_sites=results_list[0].joint_model.n_sites,
        n_obs=log_liks[0].shape[1],
        dtype=dtype_psis,
    )
