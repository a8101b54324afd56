"""
Joint NumPyro model for traditional catch and eDNA qPCR data.

Model Structure
---------------
Site parameters:
    - mu_i ~ Gamma(mu_shape, mu_rate)                 catch intensity
    - beta_i = alpha_0 + sum_p alpha_p * X[i, p]      sensitivity offset
    - p11_i = mu_i / (mu_i + exp(beta_i))              true-positive rate

Global parameters:
    - p10 ~ Beta(a, b)                                false-positive rate
    - alpha_j ~ Normal(loc, scale)
    - phi ~ Gamma(phi_shape, phi_rate)                negbin / gamma only
    - q_g ~ HalfNormal(q_scale), g >= 1               gear-stratified only

Likelihood (observed cells only):
    - C[i, j] ~ Poisson(mu_ij) | NegBinomial2(mu_ij, phi)
                | Gamma(phi, phi / mu_ij)
    - K[i, w] ~ Binomial(N[i, w], p11_i + (1 - p11_i) * p10)

A site is occupied whenever ``mu_i > 0``; a PCR replicate amplifies either
through a true positive (probability ``p11_i``) or, failing that, through a
false positive (probability ``p10``). As ``mu_i -> 0`` the per-replicate
success probability tends to ``p10``.
"""

from typing import Optional

import jax.numpy as jnp
from jax.nn import sigmoid
import numpyro
import numpyro.distributions as dist

from .config import CountFamily, PriorConfig
from .intensity import CountSubModel, cell_intensity, sample_catchability

# ------------------------------------------------------------------------------
# Building blocks
# ------------------------------------------------------------------------------


def count_distribution(
    family: CountFamily, mu: jnp.ndarray, phi: Optional[jnp.ndarray] = None
) -> dist.Distribution:
    """Distribution of a traditional observation with mean ``mu``."""
    if family is CountFamily.POISSON:
        return dist.Poisson(mu)
    if family is CountFamily.NEGATIVE_BINOMIAL:
        return dist.NegativeBinomial2(mean=mu, concentration=phi)
    return dist.Gamma(concentration=phi, rate=phi / mu)


# ------------------------------------------------------------------------------


def true_positive_rate(mu: jnp.ndarray, beta: jnp.ndarray) -> jnp.ndarray:
    """``p11 = mu / (mu + exp(beta))``, written as a logistic of log-odds."""
    return sigmoid(jnp.log(mu) - beta)


# ------------------------------------------------------------------------------


def pcr_success_rate(p11: jnp.ndarray, p10: jnp.ndarray) -> jnp.ndarray:
    """Per-replicate amplification probability at an occupied site."""
    return p11 + (1.0 - p11) * p10


# ------------------------------------------------------------------------------
# Joint model
# ------------------------------------------------------------------------------


def joint_model(
    n_sites: int,
    design: jnp.ndarray,
    count_site: jnp.ndarray,
    count_gear: jnp.ndarray,
    pcr_site: jnp.ndarray,
    pcr_n: jnp.ndarray,
    family: CountFamily,
    sub_model: CountSubModel,
    priors: PriorConfig,
    count_obs: Optional[jnp.ndarray] = None,
    pcr_k: Optional[jnp.ndarray] = None,
):
    """
    NumPyro model for the joint eDNA / traditional survey likelihood.

    Parameters
    ----------
    n_sites : int
        Number of survey sites.
    design : jnp.ndarray, shape ``(S, P)``
        Selected covariate columns, in ``alpha`` order.
    count_site, count_gear : jnp.ndarray, shape ``(n_count,)``
        Site and gear index of every observed traditional cell.
    pcr_site, pcr_n : jnp.ndarray, shape ``(n_pcr,)``
        Site index and qPCR attempts of every observed water sample.
    family : CountFamily
        Traditional count family.
    sub_model : CountSubModel
        Single or gear-stratified intensity.
    priors : PriorConfig
        Prior hyperparameters.
    count_obs : jnp.ndarray, shape ``(n_count,)``, optional
        Observed traditional values. If None, values are sampled.
    pcr_k : jnp.ndarray, shape ``(n_pcr,)``, optional
        Observed qPCR successes. If None, values are sampled.
    """
    n_alpha = design.shape[1] + 1

    with numpyro.plate("sites", n_sites):
        mu = numpyro.sample("mu", dist.Gamma(*priors.mu))

    p10 = numpyro.sample("p10", dist.Beta(*priors.p10))
    alpha = numpyro.sample(
        "alpha", dist.Normal(*priors.alpha).expand([n_alpha]).to_event(1)
    )

    phi = None
    if family.has_dispersion:
        phi = numpyro.sample("phi", dist.Gamma(*priors.phi))

    q = sample_catchability(sub_model, priors.q)

    beta = numpyro.deterministic("beta", alpha[0] + design @ alpha[1:])
    p11 = numpyro.deterministic("p11", true_positive_rate(mu, beta))

    # Traditional observations
    if count_site.shape[0] > 0:
        mu_cell = cell_intensity(sub_model, mu, count_site, count_gear, q)
        with numpyro.plate("count_cells", count_site.shape[0]):
            numpyro.sample(
                "count", count_distribution(family, mu_cell, phi), obs=count_obs
            )

    # eDNA observations
    if pcr_site.shape[0] > 0:
        p = pcr_success_rate(p11[pcr_site], p10)
        with numpyro.plate("pcr_cells", pcr_site.shape[0]):
            numpyro.sample(
                "pcr", dist.Binomial(total_count=pcr_n, probs=p), obs=pcr_k
            )
