"""
TANDEM: Traditional And eDNA Detection Modeling

A Bayesian joint model of traditional catch data and eDNA qPCR detections
that estimates site catch intensities, eDNA sensitivity and the qPCR
false-positive rate, compares competing models and turns posteriors into
sampling-effort recommendations.
"""

from .data import SurveyData, validate_survey_data
from .diagnostics import ConvergenceReport, diagnose, effective_sample_size, split_rhat
from .effort import EffortCurve, detection_effort, mu_critical
from .errors import (
    ConfigurationError,
    ConvergenceIssue,
    ConvergenceWarning,
    CovariateMismatch,
    CovariateScalingWarning,
    DataValidationError,
    DivergenceWarning,
    DivergentChain,
    IncompatibleModels,
    InvalidValue,
    MissingnessMismatch,
    SamplingError,
    ShapeMismatch,
    TandemError,
    TandemWarning,
    UnknownParameter,
    UnsupportedFamily,
)
from .inference import run_tandem
from .mc import TandemModelComparisonResults, compare_models
from .mcmc import MCMCInferenceEngine, TandemMCMCResults
from .models import JointModel, build_joint_model
from .models.config import (
    CountFamily,
    EffortSummary,
    MCMCConfig,
    ModelConfig,
    PriorConfig,
)
from .summary import ParameterSummary, summarize, summary_table

__version__ = "0.1.0"

__all__ = [
    # Data
    "SurveyData",
    "validate_survey_data",
    # Configuration
    "CountFamily",
    "EffortSummary",
    "MCMCConfig",
    "ModelConfig",
    "PriorConfig",
    # Models and inference
    "JointModel",
    "build_joint_model",
    "MCMCInferenceEngine",
    "TandemMCMCResults",
    "run_tandem",
    # Posterior analysis
    "ConvergenceReport",
    "diagnose",
    "effective_sample_size",
    "split_rhat",
    "ParameterSummary",
    "summarize",
    "summary_table",
    "TandemModelComparisonResults",
    "compare_models",
    "EffortCurve",
    "detection_effort",
    "mu_critical",
    # Errors and warnings
    "TandemError",
    "DataValidationError",
    "ShapeMismatch",
    "MissingnessMismatch",
    "InvalidValue",
    "ConfigurationError",
    "UnsupportedFamily",
    "CovariateMismatch",
    "SamplingError",
    "UnknownParameter",
    "IncompatibleModels",
    "TandemWarning",
    "CovariateScalingWarning",
    "DivergenceWarning",
    "ConvergenceWarning",
    "DivergentChain",
    "ConvergenceIssue",
]
