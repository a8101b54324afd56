"""
Unified inference interface for TANDEM.

This module provides a single entry point that takes validated
:class:`~tandem.data.SurveyData`, builds the joint model, runs the chains and
packages the draws. Both a simple option-based API and
an advanced ``ModelConfig``-based API are supported.
"""

import logging
import threading
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from .data import SurveyData
from .models import build_joint_model
from .models.config import CountFamily, MCMCConfig, ModelConfig
from .mcmc import MCMCInferenceEngine, MCMCResultsFactory, TandemMCMCResults

logger = logging.getLogger(__name__)

__all__ = ["run_tandem"]


# ==============================================================================
# Public API
# ==============================================================================


def run_tandem(
    data: SurveyData,
    # Simple option-based API
    family: Union[str, CountFamily] = "poisson",
    covariates: Sequence[str] = (),
    p10_prior: Tuple[float, float] = (1.0, 20.0),
    gear_types: bool = False,
    # OR advanced API
    model_config: Optional[ModelConfig] = None,
    mcmc_config: Optional[MCMCConfig] = None,
    # Common parameters
    seed: int = 42,
    init_values: Optional[Sequence[Mapping[str, Any]]] = None,
    cancel_event: Optional[threading.Event] = None,
    check_convergence: bool = True,
) -> TandemMCMCResults:
    """Fit the joint eDNA / traditional-survey model.

    Parameters
    ----------
    data : SurveyData
        Output of :func:`~tandem.data.validate_survey_data`.
    family : str or CountFamily, default="poisson"
        Traditional count family. Only used if ``model_config`` is None.
    covariates : sequence of str, default=()
        Site covariates modulating eDNA sensitivity, in ``alpha`` order.
        Only used if ``model_config`` is None.
    p10_prior : tuple of float, default=(1, 20)
        Beta prior on the false-positive rate. Only used if ``model_config``
        is None.
    gear_types : bool, default=False
        Gear-stratified traditional intensity. Only used if
        ``model_config`` is None.
    model_config : ModelConfig, optional
        Fully configured model. Overrides the option-based parameters.
    mcmc_config : MCMCConfig, optional
        Sampler configuration; defaults to ``MCMCConfig()``.
    seed : int, default=42
        Random seed for chain keys and initial values.
    init_values : sequence of mapping, optional
        One starting point per chain, overriding the random draws.
    cancel_event : threading.Event, optional
        Set from another thread to abort sampling; unfinished chains are
        discarded.
    check_convergence : bool, default=True
        Emit a ``ConvergenceWarning`` when R-hat or ESS thresholds fail.

    Returns
    -------
    TandemMCMCResults

    Raises
    ------
    UnsupportedFamily, CovariateMismatch
        If the configuration does not fit the data.
    SamplingError
        If no chain completes.

    Examples
    --------
    >>> data = validate_survey_data(count, pcr_n, pcr_k)
    >>> results = run_tandem(data, family="negative_binomial",
    ...                      mcmc_config=MCMCConfig(n_chains=4))
    >>> results.summary("p10")
    """
    if model_config is None:
        model_config = ModelConfig.from_options(
            family=family,
            covariates=covariates,
            p10_prior=p10_prior,
            gear_types=gear_types,
        )
    if mcmc_config is None:
        mcmc_config = MCMCConfig()

    joint_model = build_joint_model(data, model_config)
    logger.info(
        "Fitting %s model on %d sites (%d observed cells)",
        model_config.family.value,
        joint_model.n_sites,
        joint_model.n_obs,
    )

    runs = MCMCInferenceEngine.run_inference(
        joint_model,
        mcmc_config,
        seed=seed,
        init_values=init_values,
        cancel_event=cancel_event,
    )
    results = MCMCResultsFactory.create_results(
        runs, joint_model=joint_model, mcmc_config=mcmc_config, seed=seed
    )

    if check_convergence and results.n_chains > 1:
        results.diagnostics(warn=True)
    return results
