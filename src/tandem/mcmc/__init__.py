"""
Markov Chain Monte Carlo (MCMC) module for joint eDNA / traditional survey
data.

This module implements MCMC inference for TANDEM models using NumPyro's NUTS,
one independent chain per worker.
"""

from ._initialization import (
    check_initial_values,
    clamp_init_values,
    draw_initial_values,
)
from .inference_engine import ChainCancelled, ChainRun, MCMCInferenceEngine
from .results import TandemMCMCResults
from .results_factory import MCMCResultsFactory

__all__ = [
    "ChainCancelled",
    "ChainRun",
    "MCMCInferenceEngine",
    "MCMCResultsFactory",
    "TandemMCMCResults",
    "check_initial_values",
    "clamp_init_values",
    "draw_initial_values",
]
