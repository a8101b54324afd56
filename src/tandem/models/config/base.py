"""Joint model configuration using Pydantic."""

from typing import Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from ...errors import UnsupportedFamily
from .enums import CountFamily
from .groups import PriorConfig

# ==============================================================================
# Joint Model Configuration Class
# ==============================================================================


class ModelConfig(BaseModel):
    """
    Configuration of the joint eDNA / traditional-survey model.

    Parameters
    ----------
    family : CountFamily
        Distribution of traditional catch data: ``poisson``,
        ``negative_binomial`` or ``gamma``.
    covariates : tuple of str
        Ordered names of the site covariates that modulate eDNA sensitivity.
        The order fixes the indexing of ``alpha``: ``alpha[0]`` is the
        intercept and ``alpha[j]`` multiplies ``covariates[j - 1]``.
    gear_types : bool
        If True, traditional samples are stratified by gear type and each
        non-reference gear gets its own catchability ``q``.
    priors : PriorConfig
        Prior hyperparameters.

    Notes
    -----
    Configurations are immutable; use :meth:`with_updated_priors` or
    ``model_copy(update=...)`` to derive variants.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    family: CountFamily = Field(
        CountFamily.POISSON, description="Traditional count family"
    )
    covariates: Tuple[str, ...] = Field(
        (), description="Ordered covariate names"
    )
    gear_types: bool = Field(False, description="Gear-stratified intensity")
    priors: PriorConfig = Field(default_factory=PriorConfig)

    # --------------------------------------------------------------------------
    # Validation Methods
    # --------------------------------------------------------------------------

    @field_validator("covariates")
    @classmethod
    def validate_unique_covariates(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Reject repeated covariate names."""
        if len(set(v)) != len(v):
            raise ValueError(f"Covariate names must be unique, got {v}")
        return v

    # --------------------------------------------------------------------------
    # Computed Fields
    # --------------------------------------------------------------------------

    @computed_field
    @property
    def n_alpha(self) -> int:
        """Number of regression coefficients (intercept included)."""
        return len(self.covariates) + 1

    # --------------------------------------------------------------------------

    @classmethod
    def from_options(
        cls,
        family: Union[str, CountFamily] = "poisson",
        covariates=(),
        p10_prior: Tuple[float, float] = (1.0, 20.0),
        gear_types: bool = False,
        **prior_kwargs,
    ) -> "ModelConfig":
        """Build a configuration from plain options.

        Raises
        ------
        UnsupportedFamily
            If ``family`` is not one of the recognized families.
        """
        try:
            family = CountFamily(family)
        except ValueError:
            raise UnsupportedFamily(family) from None
        return cls(
            family=family,
            covariates=tuple(covariates),
            gear_types=gear_types,
            priors=PriorConfig(p10=p10_prior, **prior_kwargs),
        )

    # --------------------------------------------------------------------------

    def with_updated_priors(self, **priors) -> "ModelConfig":
        """Create a new config with updated priors (immutable pattern)."""
        return self.model_copy(
            update={"priors": self.priors.model_copy(update=priors)}
        )
