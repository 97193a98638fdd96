"""Tests for the experiment orchestrators.

Tests cover:
- Configuration validation of ExperimentABN / ExperimentAB / ExperimentBF
- Seeded reproducibility and idempotent decide()
- Winner selection under both posterior rules
- Chained (conversion x revenue) experiments
- Bayes factor experiments with one- and two-sided rules
"""

import logging

import numpy as np
import pytest

from bayesian_experiments import (
    BernoulliModel,
    BernoulliStats,
    ChainedModel,
    ConfigurationError,
    ExpectedLossThresh,
    ExperimentAB,
    ExperimentABN,
    ExperimentBF,
    LogNormalModel,
    LogNormalStats,
    NormalEffectSize,
    NormalModel,
    NormalStats,
    OneSidedBFThresh,
    PreconditionViolation,
    ProbabilityBeatAllThresh,
    ShapeMismatch,
    StudentTEffectSize,
    TwoSampleStats,
    TwoSidedBFThresh,
)
from bayesian_experiments.experiment import default_model_names
from bayesian_experiments.schemas import ExperimentMetrics
from bayesian_experiments.stats.rules import RuleKind


def _ab(rule=None, **kwargs):
    return ExperimentAB(
        [BernoulliModel(), BernoulliModel()],
        rule or ExpectedLossThresh(1e-3),
        **kwargs,
    )


# ======================================================================
# Configuration
# ======================================================================


class TestConfiguration:
    """Invalid setups are rejected at construction."""

    def test_default_names(self):
        assert default_model_names(3) == ["control", "variant 1", "variant 2"]
        experiment = ExperimentABN([BernoulliModel()] * 3, ExpectedLossThresh(0.01))
        assert experiment.model_names == ["control", "variant 1", "variant 2"]

    def test_needs_two_models(self):
        with pytest.raises(ConfigurationError):
            ExperimentABN([BernoulliModel()], ExpectedLossThresh(0.01))

    def test_ab_needs_exactly_two(self):
        with pytest.raises(ConfigurationError):
            ExperimentAB([BernoulliModel() for _ in range(3)], ExpectedLossThresh(0.01))

    def test_declared_n_must_match(self):
        with pytest.raises(ConfigurationError):
            ExperimentABN([BernoulliModel(), BernoulliModel()], ExpectedLossThresh(0.01), n=3)

    def test_names_count_must_match(self):
        with pytest.raises(ConfigurationError):
            _ab(model_names=["a", "b", "c"])

    def test_names_must_be_unique(self):
        with pytest.raises(ConfigurationError):
            _ab(model_names=["a", "a"])

    def test_models_must_share_family(self):
        with pytest.raises(ConfigurationError, match="same type"):
            ExperimentAB([BernoulliModel(), NormalModel(0, 1, 1, 1)], ExpectedLossThresh(0.01))

    def test_chained_models_must_share_stages(self):
        a = ChainedModel([BernoulliModel(), LogNormalModel(0, 1, 1, 1)])
        b = ChainedModel([BernoulliModel(), BernoulliModel()])
        with pytest.raises(ConfigurationError):
            ExperimentAB([a, b], ExpectedLossThresh(0.01))

    def test_bayes_factor_rule_rejected(self):
        with pytest.raises(ConfigurationError):
            _ab(rule=OneSidedBFThresh(3))

    def test_posterior_rule_rejected_for_bf(self):
        with pytest.raises(ConfigurationError):
            ExperimentBF(NormalEffectSize(), ExpectedLossThresh(0.01))

    def test_invalid_thresholds(self):
        with pytest.raises(PreconditionViolation):
            ExpectedLossThresh(0)
        with pytest.raises(PreconditionViolation):
            ProbabilityBeatAllThresh(1.0)
        with pytest.raises(PreconditionViolation):
            TwoSidedBFThresh(1.0)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            ExperimentABN([BernoulliModel()], ExpectedLossThresh(0.01))


# ======================================================================
# Updates
# ======================================================================


class TestUpdates:
    """Routing statistics to models."""

    def test_update_all_models(self):
        experiment = _ab()
        experiment.update([BernoulliStats(10, 100), BernoulliStats(20, 100)])
        assert experiment.models["control"].dist.alpha == 11
        assert experiment.models["variant 1"].dist.alpha == 21

    def test_update_count_mismatch(self):
        with pytest.raises(ShapeMismatch):
            _ab().update([BernoulliStats(10, 100)])

    def test_update_single_model(self):
        experiment = _ab(model_names=["old", "new"])
        experiment.update_model("new", BernoulliStats(5, 10))
        assert experiment.models["new"].dist.alpha == 6
        assert experiment.models["old"].dist.alpha == 1

    def test_unknown_model_name(self):
        with pytest.raises(ConfigurationError):
            _ab().update_model("variant 7", BernoulliStats(5, 10))

    def test_wrong_stats_type(self):
        with pytest.raises(PreconditionViolation):
            _ab().update_model("control", NormalStats(n=5, mean=0.0, sd=1.0))


# ======================================================================
# Decisions
# ======================================================================


def _simulated_ab(seed=1234):
    rng = np.random.default_rng(42)
    experiment = ExperimentAB(
        [BernoulliModel(), BernoulliModel()],
        ExpectedLossThresh(2e-4),
        seed=seed,
    )
    experiment.update([
        BernoulliStats.from_data(rng.random(1000) < 0.15),
        BernoulliStats.from_data(rng.random(1000) < 0.16),
    ])
    return experiment


class TestDecide:
    """Winner selection and reproducibility."""

    def test_seeded_experiments_agree(self):
        first = _simulated_ab()
        second = _simulated_ab()
        assert first.metrics().values == second.metrics().values
        assert first.decide() == second.decide()

    def test_decide_is_idempotent(self):
        experiment = _simulated_ab()
        first = experiment.decide()
        metrics = experiment.metrics()
        assert experiment.decide() == first
        assert experiment.metrics() == metrics

    def test_expected_loss_winner(self):
        experiment = _ab(seed=1)
        experiment.update([BernoulliStats(100, 1000), BernoulliStats(200, 1000)])
        assert experiment.decide() == "variant 1"
        assert experiment.winner == "variant 1"

        metrics = experiment.metrics()
        assert isinstance(metrics, ExperimentMetrics)
        assert metrics.metric is RuleKind.expected_loss
        assert metrics.leader == "variant 1"
        assert metrics.passes_threshold
        assert metrics.as_dict()["control"] == pytest.approx(0.1, abs=0.01)

    def test_probability_beat_all_winner(self):
        experiment = ExperimentABN(
            [BernoulliModel(), BernoulliModel(), BernoulliModel()],
            ProbabilityBeatAllThresh(0.95),
            model_names=["a", "b", "c"],
            seed=2,
        )
        experiment.update([BernoulliStats(100, 1000), BernoulliStats(200, 1000), BernoulliStats(110, 1000)])
        assert experiment.decide() == "b"
        assert sum(experiment.metrics().values) == pytest.approx(1.0)

    def test_no_winner_without_data(self):
        experiment = _ab(rule=ProbabilityBeatAllThresh(0.99), seed=3)
        assert experiment.decide() is None

    def test_decide_clears_stale_winner(self):
        experiment = _ab(rule=ProbabilityBeatAllThresh(0.99), seed=3)
        experiment.winner = "control"
        assert experiment.decide() is None
        assert experiment.winner is None

    def test_metrics_do_not_touch_winner(self):
        experiment = _ab(seed=1)
        experiment.update([BernoulliStats(100, 1000), BernoulliStats(200, 1000)])
        experiment.metrics()
        assert experiment.winner is None

    def test_winner_is_logged(self, caplog):
        experiment = _ab(seed=1)
        experiment.update([BernoulliStats(100, 1000), BernoulliStats(200, 1000)])
        with caplog.at_level(logging.INFO, logger="bayesian_experiments.experiment"):
            experiment.decide()
        assert "variant 1" in caplog.text

    def test_chained_experiment(self):
        def revenue_model():
            return ChainedModel([BernoulliModel(), LogNormalModel(mu=0, v=1, alpha=0.001, theta=0.001)])

        experiment = ExperimentAB([revenue_model(), revenue_model()], ExpectedLossThresh(0.01), seed=4)
        experiment.update([
            [BernoulliStats(500, 10_000), LogNormalStats(n=500, mean_log=1.0, sd_log=1.0)],
            [BernoulliStats(1000, 10_000), LogNormalStats(n=1000, mean_log=1.0, sd_log=1.0)],
        ])
        assert experiment.decide() == "variant 1"


# ======================================================================
# Bayes factor experiments
# ======================================================================


class TestExperimentBF:
    """Sequential Bayes factor decisions."""

    def _large_sample(self):
        return NormalStats(n=1.0449e8, mean=0.500177, sd=0.5)

    def _model(self):
        return NormalEffectSize(null_mean=0.5, prior_sd=1 / 32.7)

    def test_one_sided_accepts_alternative(self):
        experiment = ExperimentBF(self._model(), OneSidedBFThresh(2))
        experiment.update(self._large_sample())
        assert experiment.decide() == "alternative"

    def test_two_sided_undecided(self):
        experiment = ExperimentBF(self._model(), TwoSidedBFThresh(3))
        experiment.update(self._large_sample())
        assert experiment.decide() is None
        assert experiment.metrics().bayes_factor == pytest.approx(2.2303, rel=1e-3)

    def test_two_sided_accepts_null(self):
        experiment = ExperimentBF(NormalEffectSize(prior_sd=1.0), TwoSidedBFThresh(3))
        experiment.update(NormalStats(n=10_000, mean=0.0, sd=1.0))
        assert experiment.decide() == "null"

    def test_one_sided_never_accepts_null(self):
        experiment = ExperimentBF(NormalEffectSize(prior_sd=1.0), OneSidedBFThresh(3))
        experiment.update(NormalStats(n=10_000, mean=0.0, sd=1.0))
        assert experiment.decide() is None

    def test_overwhelming_normal_evidence_accepts_alternative(self):
        experiment = ExperimentBF(NormalEffectSize(prior_sd=1.0), TwoSidedBFThresh(3))
        experiment.update(NormalStats(n=1_000_000, mean=0.1, sd=1.0))
        assert experiment.decide() == "alternative"
        assert experiment.metrics().posterior_prob_null == 0.0

    def test_overwhelming_t_evidence_accepts_alternative(self):
        experiment = ExperimentBF(StudentTEffectSize(), TwoSidedBFThresh(3))
        experiment.update(NormalStats(n=10_000, mean=1.0, sd=1.0))
        assert experiment.decide() == "alternative"

    def test_metrics_require_data(self):
        experiment = ExperimentBF(NormalEffectSize(), TwoSidedBFThresh(3))
        with pytest.raises(PreconditionViolation):
            experiment.metrics()

    def test_batches_accumulate(self):
        experiment = ExperimentBF(StudentTEffectSize(), TwoSidedBFThresh(10))
        experiment.update(NormalStats.from_data([-1.2, -2.4, -1.3, -1.3, 0.0]))
        experiment.update(NormalStats.from_data([-1.0, -1.8, -0.8, -4.6, -1.4]))
        assert experiment.stats.n == 10
        assert experiment.stats.mean == pytest.approx(-1.58)

    def test_two_sample_batches(self):
        experiment = ExperimentBF(StudentTEffectSize(), TwoSidedBFThresh(10))
        batch = TwoSampleStats(NormalStats(n=50, mean=1.0, sd=1.0), NormalStats(n=50, mean=0.0, sd=1.0))
        experiment.update(batch)
        experiment.update(batch)
        assert experiment.stats.first.n == 100
        assert experiment.decide() == "alternative"

    def test_cannot_mix_one_and_two_sample(self):
        experiment = ExperimentBF(NormalEffectSize(), TwoSidedBFThresh(3))
        experiment.update(NormalStats(n=10, mean=0.0, sd=1.0))
        with pytest.raises(PreconditionViolation):
            experiment.update(TwoSampleStats(NormalStats(n=5, mean=0.0, sd=1.0), NormalStats(n=5, mean=0.0, sd=1.0)))

    def test_prior_prob_null(self):
        experiment = ExperimentBF(NormalEffectSize(prior_prob_null=0.8), TwoSidedBFThresh(3))
        assert experiment.prior_prob_null == 0.8
        experiment.update(NormalStats(n=100, mean=0.1, sd=1.0))
        metrics = experiment.metrics()
        assert metrics.prior_prob_null == 0.8
        assert metrics.posterior_prob_null == pytest.approx(1 / (1 + metrics.bayes_factor))
