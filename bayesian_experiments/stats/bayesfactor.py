"""Bayes factor models for testing a standardised effect size.

Both models compare H0 (effect size is zero) against H1 (effect size has a
prior distribution centred at zero) and return BF10 scaled by the prior odds
``(1 - prior_prob_null) / prior_prob_null``.  With the default
``prior_prob_null = 0.5`` the odds are 1 and the value is the plain Bayes
factor.

References
----------
- Deng, Lu and Chen (2016), "Continuous monitoring of A/B tests without
  pain: optional stopping in Bayesian testing".
- Rouder et al. (2009), "Bayesian t tests for accepting and rejecting the
  null hypothesis" (JZS prior).
"""

from __future__ import annotations

import logging
import math
from typing import Union

from scipy import integrate, optimize
from scipy import stats as sp_stats

from bayesian_experiments.core.config import settings
from bayesian_experiments.core.errors import NumericNonConvergence, PreconditionViolation
from bayesian_experiments.stats.statistics import (
    NormalStats,
    StudentTStats,
    TwoSampleStats,
    effect_size,
    merge,
)

logger = logging.getLogger(__name__)

EffectSizeStats = Union[NormalStats, TwoSampleStats]


def _check_prior_prob_null(prior_prob_null: float) -> None:
    if not 0 < prior_prob_null < 1:
        raise PreconditionViolation("prior_prob_null must be between 0 and 1 exclusive")


def _exp_or_inf(log_value: float) -> float:
    """``exp(log_value)``, saturating to ``inf`` beyond the float range."""
    try:
        return math.exp(log_value)
    except OverflowError:
        return math.inf


def prob_null_from_bayes_factor(bayes_factor: float) -> float:
    """P(H0 | data) from a Bayes factor that already includes the prior odds."""
    return 1.0 / (1.0 + bayes_factor)


class BayesFactorModel:
    """Shared prior-odds handling for the effect size models."""

    __slots__ = ("prior_prob_null",)

    @property
    def prior_odds(self) -> float:
        """Prior odds of the alternative over the null."""
        return (1 - self.prior_prob_null) / self.prior_prob_null

    def bayes_factor(self, stats) -> float:
        raise NotImplementedError

    def posterior_prob_null(self, stats) -> float:
        """Posterior probability of the null hypothesis.

        ``bayes_factor`` already includes the prior odds, so it is the
        posterior odds of H1 over H0.
        """
        return prob_null_from_bayes_factor(self.bayes_factor(stats))


class NormalEffectSize(BayesFactorModel):
    """Normal prior on the standardised effect size.

    Under H1 the effect size ``delta = (mu - null_mean) / sigma`` follows
    ``Normal(0, prior_sd)``.  The sample standard deviation is treated as
    known, which is appropriate for large samples.

    Parameters
    ----------
    null_mean : float
        Mean under the null hypothesis.
    prior_sd : float
        Standard deviation of the effect size prior under H1.
    prior_prob_null : float
        Prior probability of H0.
    """

    __slots__ = ("null_mean", "prior_sd")

    def __init__(
        self,
        null_mean: float = 0.0,
        prior_sd: float | None = None,
        prior_prob_null: float = 0.5,
    ) -> None:
        prior_sd = settings.DEFAULT_PRIOR_SD if prior_sd is None else prior_sd
        if prior_sd <= 0:
            raise PreconditionViolation("prior_sd must be positive")
        _check_prior_prob_null(prior_prob_null)
        self.null_mean = null_mean
        self.prior_sd = prior_sd
        self.prior_prob_null = prior_prob_null

    def bayes_factor(self, stats: EffectSizeStats) -> float:
        """BF10 (times prior odds) from one group or a pair of groups.

        ``BF10 = pdf(Normal(0, sqrt(prior_sd^2 + 1/n)), delta) / pdf(Normal(0, sqrt(1/n)), delta)``
        """
        if isinstance(stats, TwoSampleStats):
            stats = merge(stats)
        if not isinstance(stats, NormalStats):
            raise PreconditionViolation(f"NormalEffectSize expects NormalStats, got {type(stats).__name__}")
        n = stats.n
        delta = effect_size(stats, null_mean=self.null_mean)
        # ratio of densities in log space; pdf underflows for large n
        log_bf = sp_stats.norm.logpdf(delta, 0, math.sqrt(self.prior_sd**2 + 1 / n)) - sp_stats.norm.logpdf(
            delta, 0, math.sqrt(1 / n)
        )
        return _exp_or_inf(float(log_bf) + math.log(self.prior_odds))

    def __repr__(self) -> str:
        return (
            f"NormalEffectSize(null_mean={self.null_mean}, prior_sd={self.prior_sd}, "
            f"prior_prob_null={self.prior_prob_null})"
        )


class StudentTEffectSize(BayesFactorModel):
    """JZS (Cauchy prior) Bayes factor for one- and two-sample t-tests.

    The Cauchy prior on the effect size is written as a scale mixture of
    normals with an Inverse-Gamma(1/2, 1/2) mixing density over ``g``; the
    marginal likelihood under H1 is a one-dimensional integral over ``g``
    on ``(0, inf)`` that is evaluated by adaptive quadrature.

    Parameters
    ----------
    r : float
        Scale of the Cauchy prior on the effect size (``sqrt(2)/2`` is "medium").
    rtol : float
        Relative tolerance the quadrature must reach.
    prior_prob_null : float
        Prior probability of H0.
    limit : int
        Maximum number of quadrature subintervals.
    """

    __slots__ = ("r", "rtol", "limit")

    def __init__(
        self,
        r: float = math.sqrt(2) / 2,
        rtol: float | None = None,
        prior_prob_null: float = 0.5,
        limit: int | None = None,
    ) -> None:
        if r <= 0:
            raise PreconditionViolation("r must be positive")
        _check_prior_prob_null(prior_prob_null)
        self.r = r
        self.rtol = settings.BF_RTOL if rtol is None else rtol
        self.limit = settings.QUAD_LIMIT if limit is None else limit
        self.prior_prob_null = prior_prob_null

    @staticmethod
    def _to_tstats(stats: StudentTStats | EffectSizeStats) -> StudentTStats:
        if isinstance(stats, StudentTStats):
            return stats
        if isinstance(stats, TwoSampleStats):
            return StudentTStats.from_two_sample(stats)
        if isinstance(stats, NormalStats):
            return StudentTStats.from_normal(stats)
        raise PreconditionViolation(f"StudentTEffectSize cannot use {type(stats).__name__}")

    def _quad(self, integrand, lower: float, upper: float, tstats: StudentTStats) -> float:
        result = integrate.quad(
            integrand, lower, upper, epsabs=0.0, epsrel=self.rtol, limit=self.limit, full_output=1
        )
        if len(result) > 3:
            # quad appends a message when it fails to converge
            logger.error("JZS Bayes factor quadrature failed for %s: %s", tstats, result[3])
            raise NumericNonConvergence(
                f"quadrature did not reach rtol={self.rtol} (abs error {result[1]:.3g}): {result[3]}"
            )
        return result[0]

    def bayes_factor(self, stats: StudentTStats | EffectSizeStats) -> float:
        """BF10 (times prior odds).

        ::

            BF10 = int_0^inf (1 + n g r^2)^(-1/2)
                             * (1 + t^2 / ((1 + n g r^2) v))^(-(v+1)/2)
                             * (2 pi)^(-1/2) g^(-3/2) exp(-1/(2g)) dg
                   / (1 + t^2/v)^(-(v+1)/2)

        The denominator is folded into the integrand and the whole integrand
        is evaluated in log space, shifted by its peak.  Evidence beyond the
        float range returns ``inf``.
        """
        tstats = self._to_tstats(stats)
        t2, v, n = tstats.t**2, tstats.dof, tstats.n
        r2 = self.r**2
        log_null = math.log1p(t2 / v)

        def log_integrand(g: float) -> float:
            if g <= 0:
                return -math.inf
            scale = 1 + n * g * r2
            return (
                -0.5 * math.log(scale)
                - (v + 1) / 2 * (math.log1p(t2 / (scale * v)) - log_null)
                - 0.5 * math.log(2 * math.pi)
                - 1.5 * math.log(g)
                - 1 / (2 * g)
            )

        # peak located over log(g); the integral is split there so quad sees it
        peak = optimize.minimize_scalar(
            lambda x: -log_integrand(math.exp(x)), bounds=(-50.0, 50.0), method="bounded"
        )
        peak_g = math.exp(peak.x)
        log_peak = log_integrand(peak_g)

        def integrand(g: float) -> float:
            return math.exp(log_integrand(g) - log_peak)

        area = self._quad(integrand, 0.0, peak_g, tstats) + self._quad(integrand, peak_g, math.inf, tstats)
        return _exp_or_inf(log_peak + math.log(area) + math.log(self.prior_odds))

    def __repr__(self) -> str:
        return f"StudentTEffectSize(r={self.r}, rtol={self.rtol}, prior_prob_null={self.prior_prob_null})"
