"""
Tests for model configuration and the joint-model builder (tandem.models).
"""

import warnings

import jax.numpy as jnp
import numpy as np
import numpyro.distributions as dist
import pytest
from pydantic import ValidationError
from scipy import stats

from tandem.data import validate_survey_data
from tandem.errors import (
    CovariateMismatch,
    InvalidValue,
    ShapeMismatch,
    UnsupportedFamily,
)
from tandem.mcmc import draw_initial_values
from tandem.models import (
    CountFamily,
    GearStratifiedIntensity,
    JointModel,
    ModelConfig,
    PriorConfig,
    SingleIntensity,
    build_joint_model,
    count_distribution,
    pcr_success_rate,
    true_positive_rate,
)
from tandem.models.intensity import cell_intensity

# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------


def test_model_config_defaults():
    config = ModelConfig()
    assert config.family is CountFamily.POISSON
    assert config.covariates == ()
    assert config.n_alpha == 1
    assert config.priors.p10 == (1.0, 20.0)
    assert config.priors.mu == (1.0, 0.1)
    assert config.priors.phi == (0.25, 0.25)


def test_model_config_is_immutable():
    config = ModelConfig()
    with pytest.raises(ValidationError):
        config.family = CountFamily.GAMMA


def test_model_config_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        ModelConfig(n_components=3)


def test_model_config_rejects_repeated_covariates():
    with pytest.raises(ValidationError):
        ModelConfig(covariates=("depth", "depth"))


def test_from_options():
    config = ModelConfig.from_options(
        "negative_binomial", covariates=["depth", "shaded"], p10_prior=(1, 50)
    )
    assert config.family is CountFamily.NEGATIVE_BINOMIAL
    assert config.covariates == ("depth", "shaded")
    assert config.n_alpha == 3
    assert config.priors.p10 == (1.0, 50.0)
    assert config.priors.p10_mean == pytest.approx(1 / 51)


def test_from_options_unknown_family():
    with pytest.raises(UnsupportedFamily) as exc_info:
        ModelConfig.from_options("zero_inflated")
    assert exc_info.value.family == "zero_inflated"


def test_model_config_rejects_unknown_family():
    with pytest.raises(ValidationError):
        ModelConfig(family="zero_inflated")
    assert ModelConfig(family="gamma").family is CountFamily.GAMMA


def test_with_updated_priors():
    config = ModelConfig()
    updated = config.with_updated_priors(p10=(2.0, 40.0))
    assert updated.priors.p10 == (2.0, 40.0)
    assert config.priors.p10 == (1.0, 20.0)


@pytest.mark.parametrize(
    "kwargs",
    [{"p10": (0.0, 20.0)}, {"mu": (1.0, -0.1)}, {"alpha": (0.0, 0.0)}, {"q": -1.0}],
)
def test_prior_config_validation(kwargs):
    with pytest.raises(ValidationError):
        PriorConfig(**kwargs)


# ------------------------------------------------------------------------------
# Building blocks
# ------------------------------------------------------------------------------


def test_true_positive_rate():
    mu = jnp.array([1e-8, 1.0, 1e4])
    beta = jnp.zeros(3)
    p11 = np.asarray(true_positive_rate(mu, beta))
    np.testing.assert_allclose(p11, [0.0, 0.5, 1.0], atol=1e-3)


def test_pcr_success_rate_tends_to_false_positive_rate():
    p10 = 0.03
    assert float(pcr_success_rate(jnp.asarray(0.0), p10)) == pytest.approx(p10)
    assert float(pcr_success_rate(jnp.asarray(1.0), p10)) == pytest.approx(1.0)


def test_count_distribution_families():
    mu = jnp.array([2.0])
    assert isinstance(count_distribution(CountFamily.POISSON, mu), dist.Poisson)
    negbin = count_distribution(CountFamily.NEGATIVE_BINOMIAL, mu, jnp.asarray(1.5))
    np.testing.assert_allclose(np.asarray(negbin.mean), [2.0], rtol=1e-5)
    gamma = count_distribution(CountFamily.GAMMA, mu, jnp.asarray(3.0))
    np.testing.assert_allclose(np.asarray(gamma.mean), [2.0], rtol=1e-5)


def test_cell_intensity_scales_by_gear():
    mu = jnp.array([2.0, 4.0])
    q = jnp.array([0.5, 3.0])
    sub_model = GearStratifiedIntensity(n_gear=3)
    out = cell_intensity(
        sub_model, mu, jnp.array([0, 0, 1, 1]), jnp.array([0, 1, 2, 0]), q
    )
    np.testing.assert_allclose(np.asarray(out), [2.0, 1.0, 12.0, 4.0])

    single = cell_intensity(
        SingleIntensity(), mu, jnp.array([1, 0]), jnp.array([0, 0]), None
    )
    np.testing.assert_allclose(np.asarray(single), [4.0, 2.0])


def test_gear_intensity_keeps_input_precision(survey_matrices, gear_matrix):
    """Host float64 draws must not request an unavailable float64 dtype."""
    q = np.array([0.5, 3.0])
    mu = np.array([2.0, 4.0])
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message="Explicitly requested dtype")
        out = cell_intensity(
            GearStratifiedIntensity(n_gear=3),
            mu,
            jnp.array([0, 1]),
            jnp.array([2, 1]),
            q,
        )
    np.testing.assert_allclose(np.asarray(out), [6.0, 2.0])

    count, pcr_n, pcr_k = survey_matrices
    data = validate_survey_data(count, pcr_n, pcr_k, count_type=gear_matrix)
    model = build_joint_model(data, ModelConfig(gear_types=True))
    init = draw_initial_values(model, np.random.default_rng(2))
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message="Explicitly requested dtype")
        assert np.isfinite(model.log_density(init))


# ------------------------------------------------------------------------------
# Builder
# ------------------------------------------------------------------------------


def test_build_poisson_model(survey_data):
    model = build_joint_model(survey_data, ModelConfig(covariates=("depth",)))

    assert isinstance(model, JointModel)
    assert isinstance(model.sub_model, SingleIntensity)
    assert model.latent_shapes == {"mu": (6,), "p10": (), "alpha": (2,)}
    assert model.parameter_shapes["p11"] == (6,)
    assert model.alpha_labels == ("intercept", "depth")
    assert model.n_obs == survey_data.n_count_obs + survey_data.n_pcr_obs


def test_build_dispersion_and_gear_models(survey_matrices, gear_matrix):
    count, pcr_n, pcr_k = survey_matrices
    data = validate_survey_data(count, pcr_n, pcr_k, count_type=gear_matrix)
    model = build_joint_model(
        data, ModelConfig(family="negative_binomial", gear_types=True)
    )
    assert model.latent_shapes["phi"] == ()
    assert model.latent_shapes["q"] == (1,)
    assert isinstance(model.sub_model, GearStratifiedIntensity)


def test_unknown_covariate(survey_data):
    with pytest.raises(CovariateMismatch) as exc_info:
        build_joint_model(survey_data, ModelConfig(covariates=("turbidity",)))
    assert exc_info.value.missing == ["turbidity"]
    assert "depth" in exc_info.value.available


def test_gear_model_requires_gear_matrix(survey_data):
    with pytest.raises(ShapeMismatch):
        build_joint_model(survey_data, ModelConfig(gear_types=True))


def test_gamma_requires_positive_values(survey_data):
    with pytest.raises(InvalidValue) as exc_info:
        build_joint_model(survey_data, ModelConfig(family="gamma"))
    # First zero catch in row-major order
    assert exc_info.value.cell == (1, 1)


def test_discrete_family_requires_integer_counts():
    count = np.array([[1.5, 2.0], [0.0, 1.0]])
    pcr = np.array([[3.0], [3.0]])
    data = validate_survey_data(count, pcr, np.zeros_like(pcr))
    with pytest.raises(InvalidValue):
        build_joint_model(data, ModelConfig(family="poisson"))
    # Biomass-like data is fine for the gamma family
    biomass = validate_survey_data(count + 0.1, pcr, np.zeros_like(pcr))
    build_joint_model(biomass, ModelConfig(family="gamma"))


# ------------------------------------------------------------------------------
# Densities
# ------------------------------------------------------------------------------


def test_log_density_is_finite_at_initial_values(survey_data):
    model = build_joint_model(survey_data, ModelConfig(covariates=("depth",)))
    init = draw_initial_values(model, np.random.default_rng(0))
    assert np.isfinite(model.log_density(init))


def test_pointwise_log_likelihood_matches_closed_form(survey_data):
    model = build_joint_model(survey_data, ModelConfig())
    rng = np.random.default_rng(3)
    S = 4
    samples = {
        "mu": rng.uniform(0.5, 5.0, size=(S, 6)),
        "p10": rng.uniform(0.01, 0.1, size=S),
        "alpha": rng.normal(0.0, 1.0, size=(S, 1)),
    }
    ll = model.pointwise_log_likelihood(samples)
    assert ll.shape == (S, model.n_obs)

    data = survey_data
    mu_cell = samples["mu"][:, data.count_site_index]
    expected_count = stats.poisson.logpmf(data.count_values, mu_cell)

    p11 = samples["mu"] / (samples["mu"] + np.exp(samples["alpha"][:, :1]))
    p = p11 + (1 - p11) * samples["p10"][:, None]
    expected_pcr = stats.binom.logpmf(
        data.pcr_k_values, data.pcr_n_values, p[:, data.pcr_site_index]
    )
    expected = np.concatenate([expected_count, expected_pcr], axis=1)
    np.testing.assert_allclose(ll, expected, rtol=1e-4, atol=1e-4)
