"""
Shared test fixtures and configuration for TANDEM tests.
"""

import os

import numpy as np
import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--device",
        default="cpu",
        choices=["cpu", "gpu"],
        help="Device to run tests on: cpu or gpu",
    )


def pytest_configure(config):
    """Configure JAX device before any imports happen."""
    device = config.getoption("--device")
    if device == "cpu":
        os.environ["JAX_PLATFORM_NAME"] = "cpu"
    else:
        # Remove the environment variable to allow JAX to use GPU
        if "JAX_PLATFORM_NAME" in os.environ:
            del os.environ["JAX_PLATFORM_NAME"]


# ------------------------------------------------------------------------------
# Survey matrices
# ------------------------------------------------------------------------------


@pytest.fixture
def survey_matrices():
    """Six sites with ragged replicates (NaN-padded).

    Sites 4 and 5 never caught anything and never amplified.
    """
    nan = np.nan
    count = np.array(
        [
            [3, 1, 4],
            [2, 0, nan],
            [5, 6, 2],
            [1, nan, nan],
            [0, 0, 0],
            [0, 0, nan],
        ],
        dtype=float,
    )
    pcr_n = np.array(
        [
            [3, 3],
            [3, 3],
            [3, nan],
            [3, 3],
            [3, 3],
            [3, 3],
        ],
        dtype=float,
    )
    pcr_k = np.array(
        [
            [2, 3],
            [1, 0],
            [3, nan],
            [1, 0],
            [0, 0],
            [0, 0],
        ],
        dtype=float,
    )
    return count, pcr_n, pcr_k


@pytest.fixture
def site_covariates():
    """One standardized continuous covariate and one binary indicator."""
    depth = np.array([-1.2, -0.6, 0.0, 0.3, 0.6, 0.9])
    depth = (depth - depth.mean()) / depth.std(ddof=1)
    shaded = np.array([0.0, 1.0, 0.0, 1.0, 1.0, 0.0])
    return np.column_stack([depth, shaded]), ("depth", "shaded")


@pytest.fixture
def gear_matrix():
    """Gear type of each count cell in ``survey_matrices`` (0-based)."""
    nan = np.nan
    return np.array(
        [
            [0, 1, 0],
            [1, 0, nan],
            [0, 0, 1],
            [1, nan, nan],
            [0, 1, 0],
            [1, 0, nan],
        ]
    )


@pytest.fixture
def survey_data(survey_matrices, site_covariates):
    """Validated ``SurveyData`` with covariates."""
    from tandem.data import validate_survey_data

    count, pcr_n, pcr_k = survey_matrices
    cov, names = site_covariates
    return validate_survey_data(
        count, pcr_n, pcr_k, site_cov=cov, covariate_names=names
    )


# ------------------------------------------------------------------------------
# Fits (session scoped: sampling is the expensive part of the suite)
# ------------------------------------------------------------------------------


@pytest.fixture(scope="session")
def fast_mcmc_config():
    from tandem.models.config import MCMCConfig

    return MCMCConfig(n_samples=150, n_warmup=150, n_chains=2)


@pytest.fixture(scope="session")
def session_survey():
    """Validated eight-site survey shared by the fitted-model fixtures."""
    from tandem.data import validate_survey_data

    rng = np.random.default_rng(7)
    n_sites = 8
    mu = np.array([4.0, 2.5, 1.0, 3.0, 0.5, 6.0, 0.0, 0.0])
    count = rng.poisson(mu[:, None], size=(n_sites, 4)).astype(float)
    count[2, 3] = np.nan
    count[5, 2:] = np.nan

    beta = 0.5
    p11 = np.where(mu > 0, mu / (mu + np.exp(beta)), 0.0)
    p = p11 + (1 - p11) * 0.01
    pcr_n = np.full((n_sites, 3), 3.0)
    pcr_k = rng.binomial(3, p[:, None], size=(n_sites, 3)).astype(float)
    pcr_n[1, 2] = pcr_k[1, 2] = np.nan

    depth = np.linspace(-1.5, 1.5, n_sites)
    depth = (depth - depth.mean()) / depth.std(ddof=1)
    return validate_survey_data(
        count,
        pcr_n,
        pcr_k,
        site_cov=depth[:, None],
        covariate_names=["depth"],
    )


@pytest.fixture(scope="session")
def poisson_fit(session_survey, fast_mcmc_config):
    from tandem.inference import run_tandem

    return run_tandem(
        session_survey,
        family="poisson",
        covariates=["depth"],
        mcmc_config=fast_mcmc_config,
        seed=1,
        check_convergence=False,
    )


@pytest.fixture(scope="session")
def negbin_fit(session_survey, fast_mcmc_config):
    from tandem.inference import run_tandem

    return run_tandem(
        session_survey,
        family="negative_binomial",
        mcmc_config=fast_mcmc_config,
        seed=2,
        check_convergence=False,
    )


def _raw_matrices(data):
    """NaN-padded count, pcr_n and pcr_k matrices of validated survey data."""
    count = np.where(data.count_observed, data.count, np.nan)
    pcr_n = np.where(data.pcr_observed, data.pcr_n, np.nan)
    pcr_k = np.where(data.pcr_observed, data.pcr_k, np.nan)
    return count, pcr_n, pcr_k


@pytest.fixture(scope="session")
def gear_survey(session_survey):
    """``session_survey`` with a second gear on alternating count replicates."""
    from tandem.data import validate_survey_data

    count, pcr_n, pcr_k = _raw_matrices(session_survey)
    gear = np.tile([0.0, 1.0], (count.shape[0], count.shape[1] // 2))
    gear[np.isnan(count)] = np.nan
    return validate_survey_data(
        count,
        pcr_n,
        pcr_k,
        site_cov=np.array(session_survey.site_cov),
        covariate_names=session_survey.covariate_names,
        count_type=gear,
    )


@pytest.fixture(scope="session")
def gear_fit(gear_survey, fast_mcmc_config):
    from tandem.inference import run_tandem

    return run_tandem(
        gear_survey,
        gear_types=True,
        mcmc_config=fast_mcmc_config,
        seed=3,
        check_convergence=False,
    )


@pytest.fixture(scope="session")
def gamma_survey(session_survey):
    """Continuous, strictly positive catch (e.g. biomass) at the same sites."""
    from tandem.data import validate_survey_data

    rng = np.random.default_rng(9)
    count, pcr_n, pcr_k = _raw_matrices(session_survey)
    observed = ~np.isnan(count)
    count[observed] = rng.gamma(2.0, 1.5, size=int(observed.sum()))
    return validate_survey_data(
        count,
        pcr_n,
        pcr_k,
        site_cov=np.array(session_survey.site_cov),
        covariate_names=session_survey.covariate_names,
    )


@pytest.fixture(scope="session")
def gamma_fit(gamma_survey, fast_mcmc_config):
    from tandem.inference import run_tandem

    return run_tandem(
        gamma_survey,
        family="gamma",
        mcmc_config=fast_mcmc_config,
        seed=4,
        check_convergence=False,
    )
