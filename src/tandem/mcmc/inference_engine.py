"""
Inference engine for MCMC.

This module runs NUTS on the joint model, one independent NumPyro ``MCMC``
instance per chain. Chains share nothing but the read-only survey data, so
they can run on a thread pool with a single join before the draws are
packaged.
"""

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
from jax import random
from numpyro.infer import MCMC, NUTS
from numpyro.infer.initialization import init_to_value

from ..errors import DivergenceWarning, DivergentChain, SamplingError
from ..models.builder import JointModel
from ..models.config import MCMCConfig
from ._initialization import check_initial_values, draw_initial_values

logger = logging.getLogger(__name__)


class ChainCancelled(Exception):
    """Raised inside a chain worker when cancellation was requested."""


# ------------------------------------------------------------------------------
# Per-chain output
# ------------------------------------------------------------------------------


@dataclass
class ChainRun:
    """Outcome of one chain.

    Attributes
    ----------
    chain : int
        Chain index.
    initial_values : dict
        Constrained-space starting point.
    samples : dict, optional
        ``{name: (n_draws, ...)}`` for a completed chain, None otherwise.
    n_divergent : int
        Post-warmup divergent transitions.
    error : str, optional
        Reason the chain was discarded.
    """

    chain: int
    initial_values: Dict[str, np.ndarray]
    samples: Optional[Dict[str, np.ndarray]] = None
    n_divergent: int = 0
    error: Optional[str] = field(default=None)

    @property
    def completed(self) -> bool:
        return self.samples is not None and self.error is None

    @property
    def n_draws(self) -> int:
        if self.samples is None:
            return 0
        return next(iter(self.samples.values())).shape[0]


# ------------------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------------------


class MCMCInferenceEngine:
    """Handles MCMC inference execution."""

    @staticmethod
    def _nuts_kernel(
        joint_model: JointModel,
        mcmc_config: MCMCConfig,
        init_values: Mapping[str, np.ndarray],
    ) -> NUTS:
        """NUTS kernel initialized at ``init_values``."""
        kernel_kwargs: Dict[str, Any] = {
            "target_accept_prob": mcmc_config.target_accept_prob,
            "max_tree_depth": mcmc_config.max_tree_depth,
        }
        kernel_kwargs.update(mcmc_config.mcmc_kwargs or {})
        if "init_strategy" in kernel_kwargs:
            warnings.warn(
                "Per-chain initial values override the init_strategy "
                "in mcmc_kwargs.",
                UserWarning,
                stacklevel=3,
            )
        kernel_kwargs["init_strategy"] = init_to_value(
            values={k: np.asarray(v) for k, v in init_values.items()}
        )
        return NUTS(joint_model.model, **kernel_kwargs)

    # --------------------------------------------------------------------------

    @staticmethod
    def run_chain(
        joint_model: JointModel,
        mcmc_config: MCMCConfig,
        chain: int,
        rng_key,
        init_values: Mapping[str, np.ndarray],
        cancel_event: Optional[threading.Event] = None,
    ) -> ChainRun:
        """Run a single chain.

        Parameters
        ----------
        joint_model : JointModel
            Model bound to its data.
        mcmc_config : MCMCConfig
            Warmup/sampling budget and NUTS settings.
        chain : int
            Chain index (for records and messages).
        rng_key : jax.random.PRNGKey
            Chain-specific random key.
        init_values : mapping
            Constrained-space starting point.
        cancel_event : threading.Event, optional
            When set, the chain stops at the next phase boundary.

        Returns
        -------
        ChainRun

        Raises
        ------
        SamplingError
            If the log density is not finite at the starting point.
        ChainCancelled
            If ``cancel_event`` was set before the chain finished.
        """
        log_joint = joint_model.log_density(init_values)
        if not np.isfinite(log_joint):
            raise SamplingError(
                f"Chain {chain}: log density is {log_joint} at the initial "
                "point; cannot start sampling.",
                chain=chain,
            )

        def _check_cancel(phase: str) -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise ChainCancelled(f"chain {chain} cancelled {phase}")

        _check_cancel("before warmup")
        logger.debug("chain %d: warmup (%d iterations)", chain, mcmc_config.n_warmup)

        mcmc = MCMC(
            MCMCInferenceEngine._nuts_kernel(joint_model, mcmc_config, init_values),
            num_warmup=mcmc_config.n_warmup,
            num_samples=mcmc_config.n_samples,
            num_chains=1,
            thinning=mcmc_config.thin,
            progress_bar=False,
        )
        warmup_key, sample_key = random.split(rng_key)
        mcmc.warmup(warmup_key, **joint_model.model_kwargs)

        _check_cancel("after warmup")
        mcmc.run(
            sample_key,
            extra_fields=("diverging",),
            **joint_model.model_kwargs,
        )
        _check_cancel("after sampling")

        samples = {k: np.asarray(v) for k, v in mcmc.get_samples().items()}
        diverging = np.asarray(mcmc.get_extra_fields()["diverging"])
        run = ChainRun(
            chain=chain,
            initial_values=dict(init_values),
            samples=samples,
            n_divergent=int(diverging.sum()),
        )
        logger.debug(
            "chain %d: %d draws, %d divergent", chain, run.n_draws, run.n_divergent
        )
        return run

    # --------------------------------------------------------------------------

    @staticmethod
    def run_inference(
        joint_model: JointModel,
        mcmc_config: MCMCConfig,
        seed: int = 42,
        init_values: Optional[Sequence[Mapping[str, Any]]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ChainRun]:
        """Execute all chains and join.

        Parameters
        ----------
        joint_model : JointModel
            Model bound to its data.
        mcmc_config : MCMCConfig
            Number of chains, budget, parallelism and NUTS settings.
        seed : int, default=42
            Random seed; chain ``c`` uses the ``c``-th split of
            ``PRNGKey(seed)`` and ``default_rng([seed, c])`` for its
            starting point.
        init_values : sequence of mapping, optional
            One starting point per chain, overriding the random draws.
        cancel_event : threading.Event, optional
            Set to abort chains; aborted chains are discarded.

        Returns
        -------
        list of ChainRun
            One entry per chain, in chain order. Failed or cancelled chains
            carry an ``error`` and no samples.
        """
        n_chains = mcmc_config.n_chains
        if init_values is not None:
            if len(init_values) != n_chains:
                raise ValueError(
                    f"Got {len(init_values)} initial-value sets for "
                    f"{n_chains} chains."
                )
            inits = [check_initial_values(joint_model, v) for v in init_values]
        else:
            inits = [
                draw_initial_values(joint_model, np.random.default_rng([seed, c]))
                for c in range(n_chains)
            ]
        keys = random.split(random.PRNGKey(seed), n_chains)

        logger.info(
            "Sampling %d chains (%d warmup + %d draws, %s)",
            n_chains,
            mcmc_config.n_warmup,
            mcmc_config.n_samples,
            "parallel" if mcmc_config.parallel and n_chains > 1 else "sequential",
        )

        def _job(c: int) -> ChainRun:
            try:
                return MCMCInferenceEngine.run_chain(
                    joint_model, mcmc_config, c, keys[c], inits[c], cancel_event
                )
            except ChainCancelled as exc:
                logger.info("chain %d discarded: %s", c, exc)
                return ChainRun(chain=c, initial_values=inits[c], error=str(exc))
            except Exception as exc:
                # Recorded against the chain; re-raised below if none survive
                logger.warning("chain %d failed: %r", c, exc)
                return ChainRun(
                    chain=c,
                    initial_values=inits[c],
                    error=f"{type(exc).__name__}: {exc}",
                )

        if mcmc_config.parallel and n_chains > 1:
            with ThreadPoolExecutor(max_workers=n_chains) as pool:
                futures = [pool.submit(_job, c) for c in range(n_chains)]
                runs = [f.result() for f in futures]
        else:
            runs = [_job(c) for c in range(n_chains)]

        if not any(run.completed for run in runs):
            raise SamplingError(
                "No chain completed: "
                + "; ".join(f"chain {r.chain}: {r.error}" for r in runs)
            )

        for run in runs:
            if run.completed and run.n_divergent > 0:
                record = DivergentChain(run.chain, run.n_divergent, run.n_draws)
                warnings.warn(str(record), DivergenceWarning, stacklevel=2)

        return runs
