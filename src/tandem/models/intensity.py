"""
Traditional count sub-models.

The count sub-model is a tagged union chosen once at build time:

- ``SingleIntensity``: every traditional replicate at site ``i`` has
  expected catch ``mu_i``.
- ``GearStratifiedIntensity``: replicate ``j`` at site ``i`` caught with
  gear ``g`` has expected catch ``mu_i * q_g``; the reference gear ``0`` has
  ``q_0 = 1`` so ``mu_i`` stays comparable with the eDNA link.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

import jax.numpy as jnp
import numpyro
import numpyro.distributions as dist


@dataclass(frozen=True)
class SingleIntensity:
    """One catch intensity per site."""

    kind: Literal["single"] = "single"

    @property
    def n_q(self) -> int:
        return 0


@dataclass(frozen=True)
class GearStratifiedIntensity:
    """One catch intensity per site and gear type.

    Parameters
    ----------
    n_gear : int
        Number of gear types (reference gear included).
    """

    n_gear: int
    kind: Literal["gear"] = "gear"

    @property
    def n_q(self) -> int:
        """Number of free catchability coefficients."""
        return self.n_gear - 1


CountSubModel = Union[SingleIntensity, GearStratifiedIntensity]


# ------------------------------------------------------------------------------


def sample_catchability(
    sub_model: CountSubModel, q_scale: float
) -> Optional[jnp.ndarray]:
    """Sample ``q`` for gear-stratified models inside a NumPyro model.

    Returns ``None`` when the sub-model has no free catchability.
    """
    if sub_model.kind == "single" or sub_model.n_q == 0:
        return None
    return numpyro.sample(
        "q", dist.HalfNormal(q_scale).expand([sub_model.n_q]).to_event(1)
    )


# ------------------------------------------------------------------------------


def cell_intensity(
    sub_model: CountSubModel,
    mu: jnp.ndarray,
    site_index: jnp.ndarray,
    gear_index: jnp.ndarray,
    q: Optional[jnp.ndarray],
) -> jnp.ndarray:
    """Expected catch of every observed traditional cell.

    Parameters
    ----------
    sub_model : CountSubModel
        Selected count sub-model.
    mu : jnp.ndarray, shape ``(..., S)``
        Site intensities (reference gear).
    site_index : jnp.ndarray, shape ``(n_obs,)``
        Site of each observed cell.
    gear_index : jnp.ndarray, shape ``(n_obs,)``
        Gear of each observed cell.
    q : jnp.ndarray, shape ``(..., n_gear - 1)``, optional
        Catchability of the non-reference gears.

    Returns
    -------
    jnp.ndarray, shape ``(..., n_obs)``
    """
    site_mu = jnp.take(mu, site_index, axis=-1)
    if sub_model.kind == "single" or q is None:
        return site_mu
    ones = jnp.ones_like(q[..., :1])
    q_full = jnp.concatenate([ones, q], axis=-1)
    return site_mu * jnp.take(q_full, gear_index, axis=-1)
