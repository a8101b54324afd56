"""
Configuration system for TANDEM models.

Uses Pydantic for validation and enums for type safety. All configs are
immutable.
"""

from .enums import CountFamily, EffortSummary
from .groups import PriorConfig, MCMCConfig
from .base import ModelConfig

__all__ = [
    "ModelConfig",
    "PriorConfig",
    "MCMCConfig",
    "CountFamily",
    "EffortSummary",
]
