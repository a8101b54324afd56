"""
Model specification builder.

Turns validated :class:`~tandem.data.SurveyData` and a :class:`ModelConfig`
into a :class:`JointModel`: the NumPyro model callable bound to its data,
plus the closed-form log density and per-observation log-likelihood used by
the sampler and the model selector.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

import numpy as np
import jax.numpy as jnp
from numpyro.infer import log_likelihood
from numpyro.infer.util import log_density

from ..data import SurveyData
from ..errors import (
    CovariateMismatch,
    InvalidValue,
    ShapeMismatch,
)
from .config import CountFamily, ModelConfig
from .intensity import CountSubModel, GearStratifiedIntensity, SingleIntensity
from .joint import joint_model

# Sites reported in the order they are sampled by ``joint_model``
OBSERVED_SITES = ("count", "pcr")

# ==============================================================================
# Joint model container
# ==============================================================================


@dataclass(frozen=True)
class JointModel:
    """
    A joint model bound to its data.

    Parameters
    ----------
    data : SurveyData
        Validated survey data.
    model_config : ModelConfig
        Configuration the model was built from.
    sub_model : CountSubModel
        Selected traditional count sub-model.
    model_kwargs : dict
        Keyword arguments passed to :func:`~tandem.models.joint.joint_model`.
    """

    data: SurveyData
    model_config: ModelConfig
    sub_model: CountSubModel
    model_kwargs: Dict[str, Any] = field(repr=False)

    # --------------------------------------------------------------------------

    @property
    def model(self):
        """The NumPyro model callable."""
        return joint_model

    @property
    def family(self) -> CountFamily:
        return self.model_config.family

    @property
    def n_sites(self) -> int:
        return self.data.n_sites

    @property
    def n_obs(self) -> int:
        """Number of observed cells (traditional + eDNA)."""
        return self.data.n_count_obs + self.data.n_pcr_obs

    # --------------------------------------------------------------------------
    # Parameter index
    # --------------------------------------------------------------------------

    @property
    def latent_shapes(self) -> Dict[str, Tuple[int, ...]]:
        """Shapes of the sampled parameters."""
        shapes = {
            "mu": (self.n_sites,),
            "p10": (),
            "alpha": (self.model_config.n_alpha,),
        }
        if self.family.has_dispersion:
            shapes["phi"] = ()
        if self.sub_model.n_q > 0:
            shapes["q"] = (self.sub_model.n_q,)
        return shapes

    @property
    def parameter_shapes(self) -> Dict[str, Tuple[int, ...]]:
        """Shapes of the sampled and derived parameters."""
        shapes = dict(self.latent_shapes)
        shapes["beta"] = (self.n_sites,)
        shapes["p11"] = (self.n_sites,)
        return shapes

    @property
    def alpha_labels(self) -> Tuple[str, ...]:
        """Labels of the ``alpha`` elements (intercept first)."""
        return ("intercept",) + tuple(self.model_config.covariates)

    # --------------------------------------------------------------------------
    # Densities
    # --------------------------------------------------------------------------

    def log_density(self, params: Mapping[str, Any]) -> float:
        """Joint log density (priors + likelihood) at constrained ``params``.

        Parameters
        ----------
        params : mapping
            Values for every sampled parameter (see :attr:`latent_shapes`).

        Returns
        -------
        float
            ``log p(params, data)``; may be ``nan`` or ``-inf``.
        """
        values = {k: jnp.asarray(params[k]) for k in self.latent_shapes}
        log_joint, _ = log_density(self.model, (), self.model_kwargs, values)
        return float(log_joint)

    # --------------------------------------------------------------------------

    def pointwise_log_likelihood(
        self, samples: Mapping[str, Any]
    ) -> np.ndarray:
        """Per-observation log-likelihood for every posterior draw.

        Parameters
        ----------
        samples : mapping
            Sampled parameters with a single leading draw axis of size ``S``.

        Returns
        -------
        np.ndarray, shape ``(S, n_obs)``
            Traditional cells first, then water samples, both in row-major
            site order.
        """
        latent = {k: jnp.asarray(samples[k]) for k in self.latent_shapes}
        ll = log_likelihood(self.model, latent, **self.model_kwargs)
        blocks = [np.asarray(ll[name]) for name in OBSERVED_SITES if name in ll]
        return np.concatenate(blocks, axis=-1)

    # --------------------------------------------------------------------------

    def observation_fingerprint(self) -> str:
        """Digest identifying the observed data (see ``SurveyData``)."""
        return self.data.observation_fingerprint()


# ==============================================================================
# Builder
# ==============================================================================


def _select_sub_model(data: SurveyData, gear_types: bool) -> CountSubModel:
    """Pick the count sub-model variant for the configuration."""
    if not gear_types:
        return SingleIntensity()
    if data.count_type is None:
        raise ShapeMismatch(
            "gear_types=True requires a 'count_type' matrix of gear indices.",
            matrix="count_type",
        )
    return GearStratifiedIntensity(n_gear=data.n_gear)


# ------------------------------------------------------------------------------


def build_joint_model(data: SurveyData, model_config: ModelConfig) -> JointModel:
    """
    Build the joint model for validated data and a configuration.

    Parameters
    ----------
    data : SurveyData
        Output of :func:`~tandem.data.validate_survey_data`.
    model_config : ModelConfig
        Family, covariates, priors and gear-type flag.

    Returns
    -------
    JointModel

    Raises
    ------
    CovariateMismatch
        If a requested covariate is not a column of ``data.site_cov``.
    ShapeMismatch
        If gear stratification is requested without a gear matrix.
    InvalidValue
        If the family cannot produce an observed value (non-integer counts
        for discrete families, non-positive values for ``gamma``).
    """
    family = model_config.family

    missing = [c for c in model_config.covariates if c not in data.covariate_names]
    if missing:
        raise CovariateMismatch(missing, data.covariate_names)

    values = data.count_values
    if family is CountFamily.GAMMA:
        bad = data.count_observed & (data.count <= 0)
        message = "the gamma family requires strictly positive catch"
    else:
        bad = data.count_observed & (data.count != np.round(data.count))
        message = f"the {family.value} family requires integer counts"
    if bad.any():
        row, col = (int(i) for i in np.argwhere(bad)[0])
        raise InvalidValue(
            f"Matrix 'count' at row {row}, column {col}: {message}.",
            matrix="count",
            row=row,
            column=col,
        )

    sub_model = _select_sub_model(data, model_config.gear_types)

    model_kwargs = {
        "n_sites": data.n_sites,
        "design": jnp.asarray(data.covariate_columns(model_config.covariates)),
        "count_site": jnp.asarray(data.count_site_index),
        "count_gear": jnp.asarray(data.count_gear_index),
        "pcr_site": jnp.asarray(data.pcr_site_index),
        "pcr_n": jnp.asarray(data.pcr_n_values),
        "family": family,
        "sub_model": sub_model,
        "priors": model_config.priors,
        "count_obs": jnp.asarray(values),
        "pcr_k": jnp.asarray(data.pcr_k_values),
    }

    return JointModel(
        data=data,
        model_config=model_config,
        sub_model=sub_model,
        model_kwargs=model_kwargs,
    )
