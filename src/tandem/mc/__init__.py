"""
Model comparison for TANDEM fits.

Provides PSIS-LOO cross-validation and a ranking of competing joint models
(count family, covariates, gear stratification) fit to the same survey.
"""

from ._psis_loo import compute_psis_loo, psis_loo_summary
from .results import TandemModelComparisonResults, compare_models

__all__ = [
    "TandemModelComparisonResults",
    "compare_models",
    "compute_psis_loo",
    "psis_loo_summary",
]
