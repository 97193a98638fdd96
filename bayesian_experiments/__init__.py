"""Sequential Bayesian A/B/N testing.

Public API:
- Sufficient statistics: BernoulliStats, ExponentialStats, PoissonStats,
  NormalStats, LogNormalStats, TwoSampleStats, StudentTStats
- Conjugate models: BernoulliModel, ExponentialModel, PoissonModel,
  NormalModel, LogNormalModel, ChainedModel
- Bayes factor models: NormalEffectSize, StudentTEffectSize
- Stopping rules: ExpectedLossThresh, ProbabilityBeatAllThresh,
  OneSidedBFThresh, TwoSidedBFThresh
- Experiments: ExperimentABN, ExperimentAB, ExperimentBF
"""

from bayesian_experiments.core.errors import (
    BayesianExperimentError,
    ConfigurationError,
    NumericNonConvergence,
    PreconditionViolation,
    ShapeMismatch,
)
from bayesian_experiments.experiment import ExperimentAB, ExperimentABN, ExperimentBF
from bayesian_experiments.stats.bayesfactor import NormalEffectSize, StudentTEffectSize
from bayesian_experiments.stats.conjugate import (
    BernoulliModel,
    ChainedModel,
    ChainOperator,
    ExponentialModel,
    LogNormalModel,
    NormalModel,
    PoissonModel,
    hdi_from_samples,
)
from bayesian_experiments.stats.decisions import (
    approx_expected_loss,
    approx_expected_losses,
    expected_loss,
    probability_beat_all,
    uplift_loss,
)
from bayesian_experiments.stats.rules import (
    ExpectedLossThresh,
    OneSidedBFThresh,
    ProbabilityBeatAllThresh,
    TwoSidedBFThresh,
)
from bayesian_experiments.stats.statistics import (
    BernoulliStats,
    ExponentialStats,
    LogNormalStats,
    NormalStats,
    PoissonStats,
    StudentTStats,
    TwoSampleStats,
    effect_size,
    merge,
    update_stats,
)

__all__ = [
    "BayesianExperimentError",
    "ConfigurationError",
    "NumericNonConvergence",
    "PreconditionViolation",
    "ShapeMismatch",
    "ExperimentAB",
    "ExperimentABN",
    "ExperimentBF",
    "NormalEffectSize",
    "StudentTEffectSize",
    "BernoulliModel",
    "ChainedModel",
    "ChainOperator",
    "ExponentialModel",
    "LogNormalModel",
    "NormalModel",
    "PoissonModel",
    "hdi_from_samples",
    "approx_expected_loss",
    "approx_expected_losses",
    "expected_loss",
    "probability_beat_all",
    "uplift_loss",
    "ExpectedLossThresh",
    "OneSidedBFThresh",
    "ProbabilityBeatAllThresh",
    "TwoSidedBFThresh",
    "BernoulliStats",
    "ExponentialStats",
    "LogNormalStats",
    "NormalStats",
    "PoissonStats",
    "StudentTStats",
    "TwoSampleStats",
    "effect_size",
    "merge",
    "update_stats",
]
