"""Conjugate models with closed-form posterior updates.

Every model owns exactly one posterior parameter record in ``dist``.
``update()`` computes a *new* record from the sufficient statistics and
reassigns ``dist`` in a single step, so a model is never observed in a
half-updated state.  Sampling reads ``dist`` and never mutates the model.

Supported families:

- ``BernoulliModel``: Bernoulli likelihood, Beta(alpha, beta) prior
- ``ExponentialModel``: Exponential likelihood, Gamma(alpha, theta) prior on the rate
- ``PoissonModel``: Poisson likelihood, Gamma(alpha, theta) prior on the rate
- ``NormalModel``: Normal likelihood, Normal-Inverse-Gamma prior
- ``LogNormalModel``: Normal likelihood on log data, Normal-Inverse-Gamma prior
- ``ChainedModel``: stages combined elementwise at sampling time
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from scipy import stats as sp_stats

from bayesian_experiments.core.errors import PreconditionViolation, ShapeMismatch
from bayesian_experiments.stats.statistics import (
    BernoulliStats,
    ExponentialStats,
    LogNormalStats,
    NormalStats,
    PoissonStats,
)

RandomSource = Union[np.random.Generator, int, None]


class ModelFamily(str, enum.Enum):
    bernoulli = "bernoulli"
    exponential = "exponential"
    poisson = "poisson"
    normal = "normal"
    lognormal = "lognormal"
    chained = "chained"


# ======================================================================
# Posterior parameter records
# ======================================================================

@dataclass(frozen=True)
class BetaParams:
    alpha: float
    beta: float

    def __post_init__(self) -> None:
        if self.alpha <= 0 or self.beta <= 0:
            raise PreconditionViolation("Alpha and beta must be positive")


@dataclass(frozen=True)
class GammaParams:
    """Gamma distribution in shape/scale form."""

    alpha: float
    theta: float

    def __post_init__(self) -> None:
        if self.alpha <= 0 or self.theta <= 0:
            raise PreconditionViolation("alpha and theta must be positive")


@dataclass(frozen=True)
class NormalInverseGamma:
    """Normal-Inverse-Gamma distribution.

    ``sigma2 ~ InverseGamma(alpha, theta)`` and
    ``mu | sigma2 ~ Normal(mu, sqrt(sigma2 * v))``.
    """

    mu: float
    v: float
    alpha: float
    theta: float

    def __post_init__(self) -> None:
        if self.v <= 0 or self.alpha <= 0 or self.theta <= 0:
            raise PreconditionViolation("v, alpha and theta must be positive")

    def sample(self, num_samples: int, rng: RandomSource = None) -> tuple[np.ndarray, np.ndarray]:
        """Draw ``(mu, sigma2)`` pairs; each mu is paired with its own sigma2 draw."""
        rng = np.random.default_rng(rng)
        sigma2 = 1.0 / rng.gamma(self.alpha, 1.0 / self.theta, size=num_samples)
        mu = rng.normal(self.mu, np.sqrt(sigma2 * self.v))
        return mu, sigma2


def lognormal_params(mu_log: np.ndarray, sigma2_log: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Convert log-scale normal parameters to natural-scale mean and variance."""
    mu_x = np.exp(mu_log + sigma2_log / 2)
    sigma2_x = (np.exp(sigma2_log) - 1) * np.exp(2 * mu_log + sigma2_log)
    return mu_x, sigma2_x


# ======================================================================
# HDI
# ======================================================================

def hdi_from_samples(samples: np.ndarray, credible_mass: float = 0.95) -> tuple[float, float]:
    """Compute the Highest Density Interval from Monte Carlo samples.

    Uses the sorted-interval method: find the shortest interval containing
    ``credible_mass`` proportion of sorted samples.

    Parameters
    ----------
    samples : np.ndarray
        1-D array of Monte Carlo samples.
    credible_mass : float
        Probability mass to include (e.g. 0.95 for 95% HDI).

    Returns
    -------
    tuple[float, float]
        (lower_bound, upper_bound)
    """
    if not 0 < credible_mass < 1:
        raise PreconditionViolation("credible_mass must be between 0 and 1 exclusive")
    sorted_samples = np.sort(samples)
    n = len(sorted_samples)
    interval_size = int(np.ceil(credible_mass * n))
    if interval_size >= n:
        return (float(sorted_samples[0]), float(sorted_samples[-1]))

    widths = sorted_samples[interval_size:] - sorted_samples[: n - interval_size]
    best_idx = int(np.argmin(widths))
    return (float(sorted_samples[best_idx]), float(sorted_samples[best_idx + interval_size - 1]))


# ======================================================================
# Models
# ======================================================================

class ConjugateModel:
    """Common sampling helpers for the conjugate families.

    Subclasses set ``family``, ``stats_type`` and ``default_parameter`` and
    implement ``_posterior(stats)`` and ``sample_posterior()``.
    """

    __slots__ = ("dist",)

    family: ModelFamily
    stats_type: type
    default_parameter: str

    def update(self, stats) -> None:
        """Update the posterior in place with one batch of statistics."""
        if not isinstance(stats, self.stats_type):
            raise PreconditionViolation(
                f"{type(self).__name__} expects {self.stats_type.__name__}, got {type(stats).__name__}"
            )
        self.dist = self._posterior(stats)

    def _posterior(self, stats):
        raise NotImplementedError

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        raise NotImplementedError

    def sample_parameter(
        self,
        num_samples: int,
        parameter: str | None = None,
        rng: RandomSource = None,
    ) -> np.ndarray:
        """Draw posterior samples of a single named parameter."""
        parameter = parameter or self.default_parameter
        samples = self.sample_posterior(num_samples, rng=rng)
        if parameter not in samples:
            raise PreconditionViolation(
                f"unknown parameter {parameter!r} for {type(self).__name__}; "
                f"expected one of {sorted(samples)}"
            )
        return samples[parameter]

    def posterior_means(self, num_samples: int = 10_000, rng: RandomSource = None) -> dict[str, float]:
        """Monte Carlo posterior mean of every sampled parameter."""
        samples = self.sample_posterior(num_samples, rng=rng)
        return {name: float(np.mean(values)) for name, values in samples.items()}

    def hdi(
        self,
        parameter: str | None = None,
        credible_mass: float = 0.95,
        num_samples: int = 10_000,
        rng: RandomSource = None,
    ) -> tuple[float, float]:
        """Highest Density Interval of a parameter's posterior via Monte Carlo."""
        samples = self.sample_parameter(num_samples, parameter=parameter, rng=rng)
        return hdi_from_samples(samples, credible_mass)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.dist})"


class BernoulliModel(ConjugateModel):
    """Bernoulli likelihood with a Beta(alpha, beta) conjugate prior.

    Parameters
    ----------
    alpha : float
        Prior pseudo-successes.
    beta : float
        Prior pseudo-failures.
    """

    __slots__ = ()

    family = ModelFamily.bernoulli
    stats_type = BernoulliStats
    default_parameter = "theta"

    def __init__(self, alpha: float = 1.0, beta: float = 1.0) -> None:
        self.dist = BetaParams(alpha, beta)

    def _posterior(self, stats: BernoulliStats) -> BetaParams:
        return BetaParams(
            alpha=self.dist.alpha + stats.successes,
            beta=self.dist.beta + (stats.trials - stats.successes),
        )

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        rng = np.random.default_rng(rng)
        return {"theta": rng.beta(self.dist.alpha, self.dist.beta, size=num_samples)}

    def posterior_mean(self) -> float:
        """Expected value of the posterior Beta distribution: alpha / (alpha + beta)."""
        return self.dist.alpha / (self.dist.alpha + self.dist.beta)

    def credible_interval(self, width: float = 0.95) -> tuple[float, float]:
        """Equal-tailed credible interval for the success probability."""
        if not 0 < width < 1:
            raise PreconditionViolation("width must be between 0 and 1 exclusive")
        lower_tail = (1 - width) / 2
        dist = sp_stats.beta(self.dist.alpha, self.dist.beta)
        return (float(dist.ppf(lower_tail)), float(dist.ppf(1 - lower_tail)))


class ExponentialModel(ConjugateModel):
    """Exponential likelihood with a Gamma(alpha, theta) prior on the rate.

    The Gamma is in shape/scale form.  Posterior draws are reported as the
    exponential *scale* (the mean), i.e. the reciprocal of the sampled rate.
    """

    __slots__ = ()

    family = ModelFamily.exponential
    stats_type = ExponentialStats
    default_parameter = "theta"

    def __init__(self, alpha: float, theta: float) -> None:
        self.dist = GammaParams(alpha, theta)

    def _posterior(self, stats: ExponentialStats) -> GammaParams:
        alpha0, theta0 = self.dist.alpha, self.dist.theta
        return GammaParams(
            alpha=alpha0 + stats.n,
            theta=theta0 / (1 + theta0 * stats.n * stats.mean),
        )

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        rng = np.random.default_rng(rng)
        rates = rng.gamma(self.dist.alpha, self.dist.theta, size=num_samples)
        return {"theta": 1.0 / rates}


class PoissonModel(ConjugateModel):
    """Poisson likelihood with a Gamma(alpha, theta) prior on the rate."""

    __slots__ = ()

    family = ModelFamily.poisson
    stats_type = PoissonStats
    default_parameter = "lambda"

    def __init__(self, alpha: float, theta: float) -> None:
        self.dist = GammaParams(alpha, theta)

    def _posterior(self, stats: PoissonStats) -> GammaParams:
        alpha0, theta0 = self.dist.alpha, self.dist.theta
        return GammaParams(
            alpha=alpha0 + stats.n * stats.mean,
            theta=theta0 / (1 + theta0 * stats.n),
        )

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        rng = np.random.default_rng(rng)
        return {"lambda": rng.gamma(self.dist.alpha, self.dist.theta, size=num_samples)}


def _nig_posterior(dist: NormalInverseGamma, n: float, xbar: float, sd: float) -> NormalInverseGamma:
    sum_sq = sd**2 * (n - 1)

    inv_v0 = 1.0 / dist.v
    inv_v = inv_v0 + n

    mu = (inv_v0 * dist.mu + n * xbar) / inv_v
    v = 1.0 / inv_v
    alpha = dist.alpha + n / 2
    # v must be the posterior value here
    theta = dist.theta + 0.5 * (sum_sq + (n * inv_v0) * (xbar - dist.mu) ** 2 * v)
    return NormalInverseGamma(mu, v, alpha, theta)


class NormalModel(ConjugateModel):
    """Normal likelihood with a Normal-Inverse-Gamma conjugate prior.

    Parameters
    ----------
    mu : float
        Prior mean.
    v : float
        Scale of the prior variance of the mean.
    alpha : float
        Shape of the Inverse-Gamma on the variance.
    theta : float
        Scale of the Inverse-Gamma on the variance.
    """

    __slots__ = ()

    family = ModelFamily.normal
    stats_type = NormalStats
    default_parameter = "mu"

    def __init__(self, mu: float, v: float, alpha: float, theta: float) -> None:
        self.dist = NormalInverseGamma(mu, v, alpha, theta)

    def _posterior(self, stats: NormalStats) -> NormalInverseGamma:
        return _nig_posterior(self.dist, stats.n, stats.mean, stats.sd)

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        mu, sigma2 = self.dist.sample(num_samples, rng=rng)
        return {"mu": mu, "sigma2": sigma2}


class LogNormalModel(ConjugateModel):
    """Normal-Inverse-Gamma model of log-transformed positive data.

    Draws are reported on both scales: ``mu_log``/``sigma2_log`` for the log
    data and ``mu_x``/``sigma2_x`` for the mean and variance of the data
    itself.  The default decision parameter is ``mu_x``.
    """

    __slots__ = ()

    family = ModelFamily.lognormal
    stats_type = LogNormalStats
    default_parameter = "mu_x"

    def __init__(self, mu: float, v: float, alpha: float, theta: float) -> None:
        self.dist = NormalInverseGamma(mu, v, alpha, theta)

    def _posterior(self, stats: LogNormalStats) -> NormalInverseGamma:
        return _nig_posterior(self.dist, stats.n, stats.mean_log, stats.sd_log)

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        mu_log, sigma2_log = self.dist.sample(num_samples, rng=rng)
        mu_x, sigma2_x = lognormal_params(mu_log, sigma2_log)
        return {"mu_log": mu_log, "sigma2_log": sigma2_log, "mu_x": mu_x, "sigma2_x": sigma2_x}


# ======================================================================
# Chained model
# ======================================================================

class ChainOperator(str, enum.Enum):
    """Elementwise operator combining the draws of two consecutive stages."""

    multiply = "multiply"
    divide = "divide"

    def apply(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        if self is ChainOperator.multiply:
            return a * b
        return a / b


class ChainedModel:
    """A multi-stage process, e.g. conversion x revenue per conversion.

    Each stage is updated independently; stages are only coupled when
    sampling, where the per-stage draws are folded left to right through
    ``operators``.

    Parameters
    ----------
    models : list[ConjugateModel]
        Stages in order.
    operators : list[ChainOperator] | None
        ``len(models) - 1`` operators.  Defaults to elementwise multiply.
    """

    __slots__ = ("models", "operators")

    family = ModelFamily.chained

    def __init__(
        self,
        models: Sequence[ConjugateModel],
        operators: Sequence[ChainOperator | str] | None = None,
    ) -> None:
        if not models:
            raise ShapeMismatch("ChainedModel needs at least one stage")
        if operators is None:
            operators = [ChainOperator.multiply] * (len(models) - 1)
        if len(operators) != len(models) - 1:
            raise ShapeMismatch("need to specify (number of models - 1) chaining operators")
        self.models = list(models)
        self.operators = [ChainOperator(op) for op in operators]

    @property
    def default_parameter(self) -> list[str]:
        return [model.default_parameter for model in self.models]

    @property
    def signature(self) -> tuple[ModelFamily, ...]:
        return tuple(model.family for model in self.models)

    def update(self, stats: Sequence) -> None:
        """Update each stage with its own statistics, in stage order."""
        if isinstance(stats, (str, bytes)) or not isinstance(stats, Sequence):
            raise ShapeMismatch("ChainedModel.update expects one statistics object per stage")
        if len(stats) != len(self.models):
            raise ShapeMismatch("Number of models should be equal to number of statistics.")
        # validate every stage first so a bad stage leaves the chain untouched
        for model, stage_stats in zip(self.models, stats):
            if not isinstance(stage_stats, model.stats_type):
                raise PreconditionViolation(
                    f"{type(model).__name__} expects {model.stats_type.__name__}, "
                    f"got {type(stage_stats).__name__}"
                )
        for model, stage_stats in zip(self.models, stats):
            model.update(stage_stats)

    def sample_parameter(
        self,
        num_samples: int,
        parameter: Sequence[str] | None = None,
        rng: RandomSource = None,
    ) -> np.ndarray:
        """Draw composite samples by folding per-stage draws through the operators."""
        if isinstance(parameter, (str, bytes)):
            raise ShapeMismatch("ChainedModel needs one parameter name per stage, not a single name")
        parameters = list(parameter) if parameter is not None else self.default_parameter
        if len(parameters) != len(self.models):
            raise ShapeMismatch("Number of parameters must be equal to number of chained models")
        rng = np.random.default_rng(rng)
        stage_samples = [
            model.sample_parameter(num_samples, parameter=name, rng=rng)
            for model, name in zip(self.models, parameters)
        ]
        chained = stage_samples[0]
        for operator, samples in zip(self.operators, stage_samples[1:]):
            chained = operator.apply(chained, samples)
        return chained

    def sample_posterior(self, num_samples: int, rng: RandomSource = None) -> dict[str, np.ndarray]:
        return {"value": self.sample_parameter(num_samples, rng=rng)}

    def posterior_means(self, num_samples: int = 10_000, rng: RandomSource = None) -> dict[str, float]:
        return {"value": float(np.mean(self.sample_parameter(num_samples, rng=rng)))}

    def hdi(
        self,
        credible_mass: float = 0.95,
        num_samples: int = 10_000,
        rng: RandomSource = None,
    ) -> tuple[float, float]:
        return hdi_from_samples(self.sample_parameter(num_samples, rng=rng), credible_mass)

    def __repr__(self) -> str:
        stages = ", ".join(repr(model) for model in self.models)
        ops = ", ".join(op.value for op in self.operators)
        return f"ChainedModel([{stages}], [{ops}])"


ProbabilisticModel = Union[ConjugateModel, ChainedModel]


def draw_sample_matrix(
    models: Sequence[ProbabilisticModel],
    num_samples: int,
    rng: RandomSource = None,
    parameter: str | Sequence[str] | None = None,
) -> np.ndarray:
    """Draw a (num_samples, num_models) matrix, one posterior per column.

    Used by probability_beat_all so that the columns come from one shared
    draw and can be compared row by row.
    """
    rng = np.random.default_rng(rng)
    return np.column_stack(
        [m.sample_parameter(num_samples, parameter=parameter, rng=rng) for m in models]
    )
