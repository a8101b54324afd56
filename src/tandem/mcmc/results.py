"""
Results container for TANDEM MCMC fits.

``TandemMCMCResults`` holds the packaged draws of all completed chains
together with everything needed to reproduce or audit the fit: the model,
the sampler configuration, the per-chain initial values, divergence records
and the ids of discarded chains. Draw arrays are read-only; summaries and
diagnostics are pure functions of them.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..diagnostics import (
    DEFAULT_MAX_RHAT,
    DEFAULT_MIN_ESS,
    ConvergenceReport,
    diagnose,
)
from ..errors import ConvergenceIssue, DivergentChain, UnknownParameter
from ..models.builder import JointModel
from ..models.config import MCMCConfig, ModelConfig
from ..summary import ParameterSummary, summarize, summary_table

# ==============================================================================
# MCMC results class
# ==============================================================================


@dataclass
class TandemMCMCResults:
    """
    Posterior draws from a TANDEM fit.

    Parameters
    ----------
    draws : Mapping[str, np.ndarray]
        Read-only draw set ``{name: (n_chains, n_draws, ...)}``, including the
        derived ``beta`` and ``p11``.
    joint_model : JointModel
        Model (and data) the draws were obtained for.
    mcmc_config : MCMCConfig
        Sampler configuration.
    seed : int
        Seed the chains were derived from.
    chain_ids : tuple of int
        Original index of each retained chain, in draw order.
    initial_values : list of dict
        Starting point of every chain (retained or not), by chain index.
    divergences : list of DivergentChain
        Chains with divergent post-warmup transitions.
    failed_chains : dict
        ``{chain index: reason}`` for discarded chains.
    """

    draws: Mapping[str, np.ndarray]
    joint_model: JointModel
    mcmc_config: MCMCConfig
    seed: int
    chain_ids: Tuple[int, ...]
    initial_values: List[Dict[str, np.ndarray]]
    divergences: List[DivergentChain] = field(default_factory=list)
    failed_chains: Dict[int, str] = field(default_factory=dict)
    _cache: Dict[str, object] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    # --------------------------------------------------------------------------

    def __post_init__(self):
        frozen = {}
        for name, arr in self.draws.items():
            arr = np.array(arr, copy=True)
            arr.setflags(write=False)
            frozen[name] = arr
        self.draws = MappingProxyType(frozen)

    # --------------------------------------------------------------------------
    # Metadata
    # --------------------------------------------------------------------------

    @property
    def model_config(self) -> ModelConfig:
        return self.joint_model.model_config

    @property
    def n_chains(self) -> int:
        """Number of retained chains."""
        return len(self.chain_ids)

    @property
    def n_draws(self) -> int:
        """Draws per chain."""
        return next(iter(self.draws.values())).shape[1]

    @property
    def n_sites(self) -> int:
        return self.joint_model.n_sites

    @property
    def parameter_names(self) -> List[str]:
        return list(self.draws)

    @property
    def labels(self) -> Dict[str, Tuple[str, ...]]:
        """Axis labels for label-based indexing (``alpha[depth]``)."""
        return {"alpha": self.joint_model.alpha_labels}

    # --------------------------------------------------------------------------
    # Sample access
    # --------------------------------------------------------------------------

    def get_samples(self, group_by_chain: bool = False) -> Dict[str, np.ndarray]:
        """
        Get posterior draws.

        Parameters
        ----------
        group_by_chain : bool, default=False
            Keep the chain axis. If False, chains are concatenated along the
            leading axis.

        Returns
        -------
        Dict[str, np.ndarray]
            Read-only arrays keyed by parameter name.
        """
        if group_by_chain:
            return dict(self.draws)
        return {
            name: arr.reshape((-1,) + arr.shape[2:])
            for name, arr in self.draws.items()
        }

    # --------------------------------------------------------------------------

    def get_posterior_quantiles(
        self, param: str, quantiles: Sequence[float] = (0.025, 0.5, 0.975)
    ) -> Dict[float, np.ndarray]:
        """Quantiles of a parameter across all retained draws."""
        samples = self.get_samples()
        if param not in samples:
            raise UnknownParameter(param, list(samples))
        return {
            q: np.quantile(samples[param], q, axis=0) for q in quantiles
        }

    # --------------------------------------------------------------------------
    # Summaries and diagnostics
    # --------------------------------------------------------------------------

    def summary(self, name: str, ci: float = 0.95) -> ParameterSummary:
        """Posterior summary of one scalar element (``"mu[3]"``, ...)."""
        return summarize(self.draws, name, ci=ci, labels=self.labels)

    def summary_table(
        self, ci: float = 0.95, parameters: Optional[Sequence[str]] = None
    ) -> pd.DataFrame:
        """Summaries of every scalar element as a DataFrame."""
        return summary_table(self.draws, ci=ci, parameters=parameters)

    # --------------------------------------------------------------------------

    def diagnostics(
        self,
        max_rhat: float = DEFAULT_MAX_RHAT,
        min_ess: float = DEFAULT_MIN_ESS,
        warn: bool = False,
    ) -> ConvergenceReport:
        """Convergence report for the draw set.

        Reports are cached per threshold pair.
        """
        key = f"diagnostics:{max_rhat}:{min_ess}"
        if key not in self._cache or warn:
            self._cache[key] = diagnose(
                self.draws, max_rhat=max_rhat, min_ess=min_ess, warn=warn
            )
        return self._cache[key]

    # --------------------------------------------------------------------------

    @property
    def warnings(self) -> List[object]:
        """Divergence and convergence records of the fit."""
        records: List[object] = list(self.divergences)
        issues: List[ConvergenceIssue] = self.diagnostics().issues
        records.extend(issues)
        return records

    # --------------------------------------------------------------------------
    # Model selection support
    # --------------------------------------------------------------------------

    def log_likelihood(self) -> np.ndarray:
        """
        Per-observation log-likelihood under every posterior draw.

        Returns
        -------
        np.ndarray, shape ``(n_chains * n_draws, n_obs)``
            Traditional cells first, then water samples, both in row-major
            site order. Computed once and cached.
        """
        if "log_likelihood" not in self._cache:
            samples = self.get_samples()
            latent = {k: samples[k] for k in self.joint_model.latent_shapes}
            ll = self.joint_model.pointwise_log_likelihood(latent)
            ll.setflags(write=False)
            self._cache["log_likelihood"] = ll
        return self._cache["log_likelihood"]

    # --------------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"TandemMCMCResults(family={self.model_config.family.value!r}, "
            f"n_sites={self.n_sites}, n_chains={self.n_chains}, "
            f"n_draws={self.n_draws}, "
            f"n_divergent={sum(d.n_divergent for d in self.divergences)}, "
            f"failed_chains={sorted(self.failed_chains)})"
        )
