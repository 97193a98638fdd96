"""Sufficient statistics for the conjugate models and Bayes factor tests.

Each statistics class is an immutable summary of observed data that is
enough to perform a closed-form posterior update without keeping the raw
observations around.  Combining statistics (streaming updates, pooling two
groups, deriving a t-statistic) always returns a *new* instance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from bayesian_experiments.core.errors import PreconditionViolation


def _as_array(data: Sequence[float] | np.ndarray) -> np.ndarray:
    arr = np.asarray(data, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise PreconditionViolation("data must be a non-empty 1-D sequence")
    return arr


def _sample_sd(arr: np.ndarray) -> float:
    # ddof=1 is undefined for a single observation
    if arr.size < 2:
        return 0.0
    return float(np.std(arr, ddof=1))


# ======================================================================
# Single-group statistics
# ======================================================================

@dataclass(frozen=True)
class BernoulliStats:
    """Number of successes out of a number of Bernoulli trials."""

    successes: int
    trials: int

    def __post_init__(self) -> None:
        if self.successes < 0:
            raise PreconditionViolation("successes must be non-negative")
        if self.trials < self.successes:
            raise PreconditionViolation("trials must be equal or larger than successes")

    @classmethod
    def from_data(cls, data: Sequence[float] | np.ndarray) -> BernoulliStats:
        arr = _as_array(data)
        if not np.all((arr == 0) | (arr == 1)):
            raise PreconditionViolation("Bernoulli data must be 0/1 or boolean")
        return cls(successes=int(np.count_nonzero(arr)), trials=int(arr.size))


@dataclass(frozen=True)
class ExponentialStats:
    """Sample size and sample mean of exponentially distributed data."""

    n: int
    mean: float

    def __post_init__(self) -> None:
        if self.n <= 0:
            raise PreconditionViolation("n must be positive")
        if self.mean <= 0:
            raise PreconditionViolation("mean of exponential data must be positive")

    @classmethod
    def from_data(cls, data: Sequence[float] | np.ndarray) -> ExponentialStats:
        arr = _as_array(data)
        return cls(n=int(arr.size), mean=float(np.mean(arr)))


@dataclass(frozen=True)
class PoissonStats:
    """Sample size and mean count of Poisson distributed data."""

    n: int
    mean: float

    def __post_init__(self) -> None:
        if self.n <= 0:
            raise PreconditionViolation("n must be positive")
        if self.mean < 0:
            raise PreconditionViolation("mean count must be non-negative")

    @classmethod
    def from_data(cls, data: Sequence[float] | np.ndarray) -> PoissonStats:
        arr = _as_array(data)
        if np.any(arr < 0):
            raise PreconditionViolation("counts must be non-negative")
        return cls(n=int(arr.size), mean=float(np.mean(arr)))


@dataclass(frozen=True)
class NormalStats:
    """Sample size, mean and standard deviation of normally distributed data.

    ``n`` may be a non-integer effective sample size, e.g. the result of
    merging two independent groups with :func:`merge`.
    """

    n: float
    mean: float
    sd: float

    def __post_init__(self) -> None:
        if not self.n > 0:
            raise PreconditionViolation("n must be positive")
        if self.sd < 0:
            raise PreconditionViolation("sd must be non-negative")

    @classmethod
    def from_data(cls, data: Sequence[float] | np.ndarray) -> NormalStats:
        arr = _as_array(data)
        return cls(n=int(arr.size), mean=float(np.mean(arr)), sd=_sample_sd(arr))

    def update(self, other: NormalStats) -> NormalStats:
        """Return the statistics of both batches combined."""
        return update_stats(self, other)


@dataclass(frozen=True)
class LogNormalStats:
    """Sample size, mean and standard deviation of log-transformed data."""

    n: int
    mean_log: float
    sd_log: float

    def __post_init__(self) -> None:
        if self.n <= 0:
            raise PreconditionViolation("n must be positive")
        if self.sd_log < 0:
            raise PreconditionViolation("sd_log must be non-negative")

    @classmethod
    def from_data(cls, data: Sequence[float] | np.ndarray) -> LogNormalStats:
        arr = _as_array(data)
        if np.any(arr <= 0):
            raise PreconditionViolation("data must be positive for lognormal data")
        logs = np.log(arr)
        return cls(n=int(arr.size), mean_log=float(np.mean(logs)), sd_log=_sample_sd(logs))

    def update(self, other: LogNormalStats) -> LogNormalStats:
        """Return the statistics of both batches combined."""
        return update_stats(self, other)


# ======================================================================
# Two-group and derived statistics
# ======================================================================

@dataclass(frozen=True)
class TwoSampleStats:
    """Statistics of two independent groups, in (first, second) order."""

    first: NormalStats
    second: NormalStats

    def __post_init__(self) -> None:
        if not isinstance(self.first, NormalStats) or not isinstance(self.second, NormalStats):
            raise PreconditionViolation("TwoSampleStats requires two NormalStats")

    @classmethod
    def from_data(
        cls,
        first: Sequence[float] | np.ndarray,
        second: Sequence[float] | np.ndarray,
    ) -> TwoSampleStats:
        return cls(NormalStats.from_data(first), NormalStats.from_data(second))

    def update(self, other: TwoSampleStats) -> TwoSampleStats:
        """Combine group-wise with another pair of batches."""
        return TwoSampleStats(
            update_stats(self.first, other.first),
            update_stats(self.second, other.second),
        )

    def merge(self, null_mean: float = 0.0) -> NormalStats:
        return merge(self, null_mean=null_mean)


@dataclass(frozen=True)
class StudentTStats:
    """t-statistic, degrees of freedom and (effective) sample size."""

    t: float
    dof: float
    n: float

    def __post_init__(self) -> None:
        if not self.dof > 0:
            raise PreconditionViolation("degrees of freedom must be positive")
        if not self.n > 0:
            raise PreconditionViolation("n must be positive")

    @classmethod
    def from_normal(cls, stats: NormalStats, null_mean: float = 0.0) -> StudentTStats:
        """One-sample t-statistic against ``null_mean``."""
        t = effect_size(stats, null_mean=null_mean) * math.sqrt(stats.n)
        return cls(t=t, dof=stats.n - 1, n=stats.n)

    @classmethod
    def from_two_sample(
        cls,
        stats: TwoSampleStats,
        null_mean: float = 0.0,
        welch: bool = False,
    ) -> StudentTStats:
        """Two-sample t-statistic, pooled (Student) or Welch.

        Both variants report the effective sample size as ``n``.
        """
        n1, n2 = stats.first.n, stats.second.n
        eff_n = effective_sample_size(n1, n2)
        if welch:
            t, dof = welch_t(stats, null_mean=null_mean)
            return cls(t=t, dof=dof, n=eff_n)
        merged = merge(stats)
        t = effect_size(merged, null_mean=null_mean) * math.sqrt(eff_n)
        return cls(t=t, dof=n1 + n2 - 2, n=eff_n)


NormalLike = Union[NormalStats, LogNormalStats]


# ======================================================================
# Combinators
# ======================================================================

def _parts(stats: NormalLike) -> tuple[float, float, float]:
    if isinstance(stats, LogNormalStats):
        return stats.n, stats.mean_log, stats.sd_log
    return stats.n, stats.mean, stats.sd


def update_stats(old: NormalLike, new: NormalLike) -> NormalLike:
    """Batch update of normal statistics.

    Combines the mean and standard deviation of two batches with the
    weighted-mean / weighted-variance formulas, so that streaming updates
    give the same result as computing the statistics on the concatenated
    data::

        n'    = n1 + n2
        mean' = w1*m1 + w2*m2                          (w_i = n_i / n')
        sd'^2 = w1*s1^2 + w2*s2^2 + n1*n2/n'^2 * (m1 - m2)^2

    Works for :class:`NormalStats` and :class:`LogNormalStats`; both
    arguments must be of the same type.
    """
    if type(old) is not type(new):
        raise PreconditionViolation("cannot combine statistics of different types")
    n1, m1, s1 = _parts(old)
    n2, m2, s2 = _parts(new)
    if n1 <= 0 or n2 <= 0:
        raise PreconditionViolation("sample sizes must be positive")

    n = n1 + n2
    w1 = n1 / n
    w2 = n2 / n
    mean = w1 * m1 + w2 * m2
    sd = math.sqrt(w1 * s1**2 + w2 * s2**2 + n1 * n2 / n**2 * (m1 - m2) ** 2)

    if isinstance(old, LogNormalStats):
        return LogNormalStats(n=n, mean_log=mean, sd_log=sd)
    return NormalStats(n=n, mean=mean, sd=sd)


def effective_sample_size(n1: float, n2: float) -> float:
    """Effective sample size of two independent groups: 1 / (1/n1 + 1/n2)."""
    if n1 <= 0 or n2 <= 0:
        raise PreconditionViolation("sample sizes must be positive")
    return 1.0 / (1.0 / n1 + 1.0 / n2)


def pooled_sd(sd1: float, sd2: float, n1: float, n2: float) -> float:
    """Pooled standard deviation of two independent groups."""
    if n1 + n2 <= 2:
        raise PreconditionViolation("pooled sd requires more than two observations in total")
    return math.sqrt(((n1 - 1) * sd1**2 + (n2 - 1) * sd2**2) / (n1 + n2 - 2))


def merge(stats: TwoSampleStats, null_mean: float = 0.0) -> NormalStats:
    """Collapse two groups into one contrast.

    The mean is the difference of group means minus ``null_mean``, the
    standard deviation is the pooled sd and ``n`` the effective sample size.
    """
    first, second = stats.first, stats.second
    return NormalStats(
        n=effective_sample_size(first.n, second.n),
        mean=(first.mean - second.mean) - null_mean,
        sd=pooled_sd(first.sd, second.sd, first.n, second.n),
    )


def effect_size(stats: NormalStats | TwoSampleStats, null_mean: float = 0.0) -> float:
    """Standardised effect size (mean - null_mean) / sd.

    Two-group statistics are merged first.
    """
    if isinstance(stats, TwoSampleStats):
        stats = merge(stats)
    if not (stats.n > 0 and stats.sd > 0):
        raise PreconditionViolation(f"invalid statistics for effect size: {stats}")
    return (stats.mean - null_mean) / stats.sd


def welch_t(stats: TwoSampleStats, null_mean: float = 0.0) -> tuple[float, float]:
    """Welch's t-statistic and Welch-Satterthwaite degrees of freedom."""
    first, second = stats.first, stats.second
    n1, n2 = first.n, second.n
    if n1 <= 1 or n2 <= 1:
        raise PreconditionViolation("Welch's test needs more than one observation per group")
    var1 = first.sd**2 / n1
    var2 = second.sd**2 / n2
    if var1 + var2 <= 0:
        raise PreconditionViolation("standard errors must not both be zero")
    t = (first.mean - second.mean - null_mean) / math.sqrt(var1 + var2)
    dof = (var1 + var2) ** 2 / (var1**2 / (n1 - 1) + var2**2 / (n2 - 1))
    return t, dof
