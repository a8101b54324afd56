"""
Joint eDNA / traditional survey models.
"""

from .config import CountFamily, MCMCConfig, ModelConfig, PriorConfig
from .intensity import CountSubModel, GearStratifiedIntensity, SingleIntensity
from .joint import (
    count_distribution,
    joint_model,
    pcr_success_rate,
    true_positive_rate,
)
from .builder import JointModel, build_joint_model

__all__ = [
    "CountFamily",
    "MCMCConfig",
    "ModelConfig",
    "PriorConfig",
    "CountSubModel",
    "GearStratifiedIntensity",
    "SingleIntensity",
    "count_distribution",
    "joint_model",
    "pcr_success_rate",
    "true_positive_rate",
    "JointModel",
    "build_joint_model",
]
