"""
Tests for convergence diagnostics (tandem.diagnostics).
"""

import warnings

import numpy as np
import pytest

from tandem.diagnostics import (
    ConvergenceReport,
    diagnose,
    effective_sample_size,
    split_rhat,
)
from tandem.errors import ConvergenceWarning

# --------------------------------------------------------------------------
# Fixtures
# --------------------------------------------------------------------------


@pytest.fixture
def iid_draws():
    """Four well-mixed chains of 1000 independent normal draws."""
    rng = np.random.default_rng(0)
    return rng.normal(size=(4, 1000))


def _ar1(rng, rho, n_chains, n_draws):
    x = np.zeros((n_chains, n_draws))
    x[:, 0] = rng.normal(size=n_chains)
    noise = rng.normal(size=(n_chains, n_draws)) * np.sqrt(1 - rho**2)
    for t in range(1, n_draws):
        x[:, t] = rho * x[:, t - 1] + noise[:, t]
    return x


# --------------------------------------------------------------------------
# R-hat
# --------------------------------------------------------------------------


def test_rhat_of_duplicated_chain_is_exactly_one():
    """A single chain duplicated four times has no between-chain variance."""
    rng = np.random.default_rng(1)
    chain = rng.gamma(2.0, 1.5, size=500)
    draws = np.tile(chain, (4, 1))
    assert split_rhat(draws, split=False) == 1.0


def test_rhat_well_mixed_chains(iid_draws):
    assert split_rhat(iid_draws) < 1.01
    assert split_rhat(iid_draws, split=False) < 1.01


def test_rhat_detects_shifted_chain(iid_draws):
    draws = iid_draws.copy()
    draws[0] += 3.0
    assert split_rhat(draws) > 1.1


def test_split_rhat_detects_drift():
    """Each chain drifts: only the split statistic notices."""
    rng = np.random.default_rng(2)
    trend = np.linspace(-2.0, 2.0, 1000)
    draws = trend[None, :] + 0.3 * rng.normal(size=(4, 1000))
    assert split_rhat(draws, split=False) < 1.01
    assert split_rhat(draws, split=True) > 1.1


def test_rhat_elementwise_shape(iid_draws):
    draws = np.stack([iid_draws, iid_draws + 1.0], axis=-1)
    out = split_rhat(draws)
    assert out.shape == (2,)


def test_rhat_constant_draws():
    identical = np.full((4, 100), 0.5)
    assert split_rhat(identical) == 1.0
    differing = np.repeat(np.array([[0.1], [0.2], [0.3], [0.4]]), 100, axis=1)
    assert np.isinf(split_rhat(differing, split=False))


def test_rhat_requires_chain_axis():
    with pytest.raises(ValueError):
        split_rhat(np.zeros(10))


def test_rhat_single_chain_is_nan():
    assert np.isnan(split_rhat(np.zeros((1, 100)) + np.arange(100), split=False))


# --------------------------------------------------------------------------
# Effective sample size
# --------------------------------------------------------------------------


def test_ess_iid_close_to_number_of_draws(iid_draws):
    n_total = iid_draws.size
    ess = effective_sample_size(iid_draws)
    assert 0.6 * n_total < ess < 1.5 * n_total


def test_ess_autocorrelated_chain_is_small():
    rng = np.random.default_rng(3)
    draws = _ar1(rng, rho=0.9, n_chains=4, n_draws=2000)
    ess = effective_sample_size(draws)
    assert ess < 0.2 * draws.size


def test_ess_constant_is_nan():
    assert np.isnan(effective_sample_size(np.ones((2, 50))))


# --------------------------------------------------------------------------
# Report
# --------------------------------------------------------------------------


def test_diagnose_converged(iid_draws):
    rng = np.random.default_rng(4)
    draws = {"p10": iid_draws, "mu": rng.normal(size=(4, 1000, 3))}
    with warnings.catch_warnings():
        warnings.simplefilter("error", ConvergenceWarning)
        report = diagnose(draws)

    assert isinstance(report, ConvergenceReport)
    assert report.converged
    assert list(report.table["parameter"]) == ["p10", "mu[0]", "mu[1]", "mu[2]"]
    assert report.rhat("mu[1]") < 1.01
    assert report.ess("p10") > 400


def test_diagnose_flags_and_warns(iid_draws):
    bad = iid_draws.copy()
    bad[0] += 5.0
    with pytest.warns(ConvergenceWarning, match="alpha"):
        report = diagnose({"alpha": bad[..., None]})

    assert not report.converged
    stats = {issue.statistic for issue in report.issues}
    assert "rhat" in stats
    assert all(issue.parameter == "alpha[0]" for issue in report.issues)


def test_diagnose_thresholds_are_configurable(iid_draws):
    report = diagnose({"x": iid_draws}, min_ess=1e6, warn=False)
    assert [issue.statistic for issue in report.issues] == ["ess"]
