"""
Results factory for MCMC inference.

This module packages the per-chain runs of the inference engine into a
``TandemMCMCResults`` object.
"""

import logging
from typing import Dict, List

import numpy as np

from ..errors import DivergentChain, SamplingError
from ..models.builder import JointModel
from ..models.config import MCMCConfig
from .inference_engine import ChainRun
from .results import TandemMCMCResults

logger = logging.getLogger(__name__)


class MCMCResultsFactory:
    """Factory for creating MCMC results objects."""

    @staticmethod
    def create_results(
        runs: List[ChainRun],
        joint_model: JointModel,
        mcmc_config: MCMCConfig,
        seed: int,
    ) -> TandemMCMCResults:
        """Package chain runs into a ``TandemMCMCResults`` object.

        Parameters
        ----------
        runs : list of ChainRun
            Output of :meth:`MCMCInferenceEngine.run_inference`, in chain
            order.
        joint_model : JointModel
            Model the chains were run on.
        mcmc_config : MCMCConfig
            Sampler configuration.
        seed : int
            Seed the chains were derived from.

        Returns
        -------
        TandemMCMCResults
            Draws of the completed chains stacked along a leading chain axis.

        Raises
        ------
        SamplingError
            If no chain completed.
        """
        completed = [run for run in runs if run.completed]
        if not completed:
            raise SamplingError("No completed chains to package.")

        names = list(completed[0].samples)
        draws: Dict[str, np.ndarray] = {
            name: np.stack([run.samples[name] for run in completed], axis=0)
            for name in names
        }

        divergences = [
            DivergentChain(run.chain, run.n_divergent, run.n_draws)
            for run in completed
            if run.n_divergent > 0
        ]
        failed = {run.chain: run.error for run in runs if not run.completed}
        if failed:
            logger.warning(
                "%d of %d chains discarded: %s",
                len(failed),
                len(runs),
                sorted(failed),
            )

        return TandemMCMCResults(
            draws=draws,
            joint_model=joint_model,
            mcmc_config=mcmc_config,
            seed=seed,
            chain_ids=tuple(run.chain for run in completed),
            initial_values=[run.initial_values for run in runs],
            divergences=divergences,
            failed_chains=failed,
        )
