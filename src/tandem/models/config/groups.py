"""
Parameter group definitions for model configuration using Pydantic for type
safety and validation.

Each group collects a logically related set of options (priors, sampler
settings) that compose the overall TANDEM configuration. All groups are
immutable and reject unknown fields.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ==============================================================================
# Prior Configuration Group
# ==============================================================================


class PriorConfig(BaseModel):
    """Prior hyperparameters with automatic validation.

    Attributes
    ----------
    p10 : tuple of float
        ``(shape1, shape2)`` of the Beta prior on the false-positive rate.
    alpha : tuple of float
        ``(loc, scale)`` of the Normal prior on every regression coefficient.
    mu : tuple of float
        ``(shape, rate)`` of the Gamma prior on site catch intensities.
    phi : tuple of float
        ``(shape, rate)`` of the Gamma prior on the dispersion/shape
        parameter (negative binomial and gamma families only).
    q : float
        Scale of the HalfNormal prior on relative gear catchability.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    p10: Tuple[float, float] = Field(
        (1.0, 20.0), description="False-positive rate prior (Beta)"
    )
    alpha: Tuple[float, float] = Field(
        (0.0, 10.0), description="Regression coefficient prior (Normal)"
    )
    mu: Tuple[float, float] = Field(
        (1.0, 0.1), description="Catch intensity prior (Gamma)"
    )
    phi: Tuple[float, float] = Field(
        (0.25, 0.25), description="Dispersion prior (Gamma)"
    )
    q: float = Field(
        10.0, gt=0, description="Gear catchability prior scale (HalfNormal)"
    )

    # --------------------------------------------------------------------------
    # Validation Methods
    # --------------------------------------------------------------------------

    @field_validator("p10", "mu", "phi")
    @classmethod
    def validate_positive_params(
        cls, v: Tuple[float, float]
    ) -> Tuple[float, float]:
        """Validate that both shape/rate parameters are positive."""
        if any(x <= 0 for x in v):
            raise ValueError(f"Prior parameters must be positive, got {v}")
        return v

    # --------------------------------------------------------------------------

    @field_validator("alpha")
    @classmethod
    def validate_scale(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        """Validate that the Normal scale is positive."""
        if v[1] <= 0:
            raise ValueError(f"Prior scale must be positive, got {v[1]}")
        return v

    # --------------------------------------------------------------------------

    @property
    def p10_mean(self) -> float:
        """Prior mean of the false-positive rate."""
        a, b = self.p10
        return a / (a + b)


# ==============================================================================
# MCMC Configuration Group
# ==============================================================================


class MCMCConfig(BaseModel):
    """Configuration for Markov Chain Monte Carlo inference.

    Attributes
    ----------
    n_samples : int
        Post-warmup draws kept per chain (before thinning).
    n_warmup : int
        Warmup (adaptation) iterations per chain.
    n_chains : int
        Number of independent chains.
    thin : int
        Keep every ``thin``-th post-warmup draw.
    parallel : bool
        Run chains on a thread pool, one worker per chain.
    target_accept_prob : float
        NUTS step-size adaptation target.
    max_tree_depth : int
        NUTS maximum tree depth.
    mcmc_kwargs : dict, optional
        Additional keyword arguments for the NUTS kernel.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    n_samples: int = Field(1_000, gt=0, description="Number of MCMC samples")
    n_warmup: int = Field(500, gt=0, description="Number of warmup samples")
    n_chains: int = Field(4, gt=0, description="Number of independent chains")
    thin: int = Field(1, gt=0, description="Thinning interval")
    parallel: bool = Field(False, description="Run chains on worker threads")
    target_accept_prob: float = Field(
        0.9, gt=0, lt=1, description="NUTS target acceptance probability"
    )
    max_tree_depth: int = Field(10, gt=0, description="NUTS max tree depth")
    mcmc_kwargs: Optional[Dict[str, Any]] = Field(
        None, description="Additional keyword arguments for MCMC kernel"
    )

    # --------------------------------------------------------------------------

    @property
    def n_draws(self) -> int:
        """Draws kept per chain after thinning."""
        return -(-self.n_samples // self.thin)
