"""Experiment orchestrators: models + a stopping rule + the winner state.

``ExperimentABN`` compares N posterior models under an expected-loss or
probability-to-beat-all rule.  ``ExperimentBF`` accumulates normal
statistics and tests them with a Bayes factor model.

``decide()`` always clears the winner before evaluating the rule, so the
winner is only ever set when the rule's condition holds for the current
data.  Instances are not safe for concurrent mutation; callers that share
one across threads must serialise ``update``/``decide`` themselves.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from bayesian_experiments.core.config import settings
from bayesian_experiments.core.errors import (
    ConfigurationError,
    PreconditionViolation,
    ShapeMismatch,
)
from bayesian_experiments.schemas import BayesFactorMetrics, ExperimentMetrics, ModelMetric
from bayesian_experiments.stats.bayesfactor import BayesFactorModel, prob_null_from_bayes_factor
from bayesian_experiments.stats.conjugate import ChainedModel, ProbabilisticModel
from bayesian_experiments.stats.decisions import (
    LossFunction,
    approx_expected_losses,
    probability_beat_all,
    uplift_loss,
)
from bayesian_experiments.stats.rules import (
    ExpectedLossThresh,
    OneSidedBFThresh,
    ProbabilityBeatAllThresh,
    RuleKind,
    TwoSidedBFThresh,
)
from bayesian_experiments.stats.statistics import NormalStats, TwoSampleStats

logger = logging.getLogger(__name__)


def default_model_names(num_models: int) -> list[str]:
    """``control``, ``variant 1``, ``variant 2``, ..."""
    return ["control"] + [f"variant {i}" for i in range(1, num_models)]


def _model_signature(model: ProbabilisticModel) -> tuple:
    if isinstance(model, ChainedModel):
        return (model.family, model.signature, tuple(model.operators))
    return (model.family,)


class Experiment:
    """State shared by both experiment types."""

    def __init__(self, rule) -> None:
        self.rule = rule
        self.winner: str | None = None

    def decide(self) -> str | None:
        raise NotImplementedError


# ======================================================================
# A/B/N experiment on posterior models
# ======================================================================

class ExperimentABN(Experiment):
    """An experiment comparing ``n`` models with a posterior stopping rule.

    Parameters
    ----------
    models : list
        Conjugate or chained models, all of the same family.
    rule : ExpectedLossThresh | ProbabilityBeatAllThresh
        Stopping rule.
    model_names : list[str] | None
        Unique names, defaults to ``control``, ``variant 1``, ...
    n : int | None
        Declared number of models; checked against ``len(models)``.
    seed : int | None
        When set, every ``metrics``/``decide`` call draws from a fresh
        ``default_rng(seed)`` so repeated calls on unchanged data agree.
        When ``None`` each call uses new randomness.
    num_samples : int | None
        Monte Carlo draws per metric, ``settings.NUM_SAMPLES`` by default.
    parameter : str | list[str] | None
        Posterior parameter to compare; each family's default when ``None``.
    loss_fn : callable
        Loss used by the expected-loss rule.
    """

    def __init__(
        self,
        models: Sequence[ProbabilisticModel],
        rule: ExpectedLossThresh | ProbabilityBeatAllThresh,
        model_names: Sequence[str] | None = None,
        n: int | None = None,
        seed: int | None = None,
        num_samples: int | None = None,
        parameter: str | Sequence[str] | None = None,
        loss_fn: LossFunction = uplift_loss,
    ) -> None:
        if not isinstance(rule, (ExpectedLossThresh, ProbabilityBeatAllThresh)):
            raise ConfigurationError(f"{type(rule).__name__} cannot be used with ExperimentABN")
        if len(models) < 2:
            raise ConfigurationError("Number of models needs to be greater than 1.")
        if n is not None and len(models) != n:
            raise ConfigurationError(f"Number of models needs to be equal to {n}.")
        if model_names is None:
            model_names = default_model_names(len(models))
        if len(model_names) != len(models):
            raise ConfigurationError("Number of model names is different from number of models.")
        if len(set(model_names)) != len(model_names):
            raise ConfigurationError("Model names must be unique.")
        signatures = {_model_signature(model) for model in models}
        if len(signatures) != 1:
            raise ConfigurationError("All models in an experiment must be of the same type.")

        super().__init__(rule)
        self.model_names = list(model_names)
        self.models = dict(zip(self.model_names, models))
        self.seed = seed
        self.num_samples = num_samples or settings.NUM_SAMPLES
        self.parameter = parameter
        self.loss_fn = loss_fn

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, stats: Sequence) -> None:
        """Update every model with its statistics, in model-name order.

        For chained models each entry is itself a list of per-stage stats.
        """
        if len(stats) != len(self.model_names):
            raise ShapeMismatch("Need one set of statistics per model.")
        for name, model_stats in zip(self.model_names, stats):
            self.update_model(name, model_stats)

    def update_model(self, model_name: str, stats) -> None:
        """Update a single model by name."""
        if model_name not in self.models:
            raise ConfigurationError(f"Unknown model name {model_name!r}")
        self.models[model_name].update(stats)

    # ------------------------------------------------------------------
    # Metrics and decision
    # ------------------------------------------------------------------

    def _rng(self) -> np.random.Generator:
        return np.random.default_rng(self.seed)

    def metric_values(self, num_samples: int | None = None) -> list[float]:
        """Raw metric per model, in model-name order."""
        num_samples = num_samples or self.num_samples
        models = [self.models[name] for name in self.model_names]
        if self.rule.kind is RuleKind.expected_loss:
            return approx_expected_losses(
                models,
                parameter=self.parameter,
                loss_fn=self.loss_fn,
                num_samples=num_samples,
                rng=self._rng(),
            )
        return probability_beat_all(
            models,
            parameter=self.parameter,
            num_samples=num_samples,
            rng=self._rng(),
        )

    def metrics(self, num_samples: int | None = None) -> ExperimentMetrics:
        """Compute the rule's metric for every model without touching ``winner``."""
        values = self.metric_values(num_samples)
        leader_index = self.rule.select(values)
        leader_value = values[leader_index]
        return ExperimentMetrics(
            metric=self.rule.kind,
            threshold=self.rule.threshold,
            models=[ModelMetric(name=name, value=value) for name, value in zip(self.model_names, values)],
            leader=self.model_names[leader_index],
            leader_value=leader_value,
            passes_threshold=self.rule.check(leader_value),
        )

    def decide(self, num_samples: int | None = None) -> str | None:
        """Evaluate the stopping rule and set ``winner`` (or clear it)."""
        self.winner = None
        result = self.metrics(num_samples)
        if result.passes_threshold:
            self.winner = result.leader
            logger.info(
                "Winner %r selected by %s: %.6g (threshold %.6g)",
                result.leader,
                result.metric.value,
                result.leader_value,
                result.threshold,
            )
        else:
            logger.debug(
                "No winner by %s: leader %r at %.6g (threshold %.6g)",
                result.metric.value,
                result.leader,
                result.leader_value,
                result.threshold,
            )
        return self.winner

    def __repr__(self) -> str:
        lines = [f"{type(self).__name__}({self.rule})"]
        lines.extend(f'  "{name}": {self.models[name]!r}' for name in self.model_names)
        return "\n".join(lines)


class ExperimentAB(ExperimentABN):
    """An ``ExperimentABN`` with exactly two models."""

    def __init__(
        self,
        models: Sequence[ProbabilisticModel],
        rule: ExpectedLossThresh | ProbabilityBeatAllThresh,
        model_names: Sequence[str] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(models, rule, model_names=model_names, n=2, **kwargs)


# ======================================================================
# Bayes factor experiment
# ======================================================================

class ExperimentBF(Experiment):
    """Sequential Bayes factor test on accumulated normal statistics.

    Parameters
    ----------
    model : NormalEffectSize | StudentTEffectSize
        Bayes factor model; it carries the prior probability of the null.
    rule : OneSidedBFThresh | TwoSidedBFThresh
        Stopping rule; winners are ``"alternative"`` or ``"null"``.
    """

    def __init__(
        self,
        model: BayesFactorModel,
        rule: OneSidedBFThresh | TwoSidedBFThresh,
    ) -> None:
        if not isinstance(rule, (OneSidedBFThresh, TwoSidedBFThresh)):
            raise ConfigurationError(f"{type(rule).__name__} cannot be used with ExperimentBF")
        if not isinstance(model, BayesFactorModel):
            raise ConfigurationError("ExperimentBF requires a Bayes factor model")
        super().__init__(rule)
        self.model = model
        self.stats: NormalStats | TwoSampleStats | None = None

    @property
    def prior_prob_null(self) -> float:
        return self.model.prior_prob_null

    def update(self, stats: NormalStats | TwoSampleStats) -> None:
        """Fold a new batch into the running statistics."""
        if not isinstance(stats, (NormalStats, TwoSampleStats)):
            raise PreconditionViolation(f"ExperimentBF expects NormalStats or TwoSampleStats, got {type(stats).__name__}")
        if self.stats is None:
            self.stats = stats
            return
        if type(stats) is not type(self.stats):
            raise PreconditionViolation("cannot mix one-group and two-group statistics")
        self.stats = self.stats.update(stats)

    def metrics(self) -> BayesFactorMetrics:
        if self.stats is None:
            raise PreconditionViolation("no statistics to compute a Bayes factor from")
        bf = self.model.bayes_factor(self.stats)
        return BayesFactorMetrics(
            metric=self.rule.kind,
            threshold=self.rule.threshold,
            bayes_factor=bf,
            prior_prob_null=self.prior_prob_null,
            posterior_prob_null=prob_null_from_bayes_factor(bf),
            verdict=self.rule.verdict(bf),
        )

    def decide(self) -> str | None:
        """Evaluate the Bayes factor rule and set ``winner`` (or clear it)."""
        self.winner = None
        result = self.metrics()
        self.winner = result.verdict
        if self.winner is not None:
            logger.info("Accepted %s hypothesis: BF10 %.6g (threshold %.6g)", self.winner, result.bayes_factor, result.threshold)
        else:
            logger.debug("No decision: BF10 %.6g (threshold %.6g)", result.bayes_factor, result.threshold)
        return self.winner

    def __repr__(self) -> str:
        return f"ExperimentBF({self.model!r}, {self.rule}, stats={self.stats})"
