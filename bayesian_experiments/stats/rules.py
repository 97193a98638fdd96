"""Stopping rules: a metric, a threshold and the way the decision is made."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

from bayesian_experiments.core.errors import PreconditionViolation


class RuleKind(str, enum.Enum):
    expected_loss = "expected_loss"
    probability_beat_all = "probability_beat_all"
    one_sided_bf = "one_sided_bf"
    two_sided_bf = "two_sided_bf"


ALTERNATIVE = "alternative"
NULL = "null"


@dataclass(frozen=True)
class ExpectedLossThresh:
    """Winner is the model with the smallest expected loss, if below ``threshold``."""

    threshold: float
    kind = RuleKind.expected_loss

    def __post_init__(self) -> None:
        if self.threshold <= 0:
            raise PreconditionViolation("expected loss threshold must be positive")

    def select(self, values: list[float]) -> int:
        # first model wins ties
        return min(range(len(values)), key=values.__getitem__)

    def check(self, value: float) -> bool:
        return value < self.threshold


@dataclass(frozen=True)
class ProbabilityBeatAllThresh:
    """Winner is the model most likely to beat all others, if above ``threshold``."""

    threshold: float
    kind = RuleKind.probability_beat_all

    def __post_init__(self) -> None:
        if not 0 < self.threshold < 1:
            raise PreconditionViolation("probability threshold must be between 0 and 1 exclusive")

    def select(self, values: list[float]) -> int:
        return max(range(len(values)), key=values.__getitem__)

    def check(self, value: float) -> bool:
        return value > self.threshold


@dataclass(frozen=True)
class OneSidedBFThresh:
    """Accept the alternative once BF10 exceeds ``threshold``."""

    threshold: float
    kind = RuleKind.one_sided_bf

    def __post_init__(self) -> None:
        if self.threshold <= 1:
            raise PreconditionViolation("Bayes factor threshold must be larger than 1")

    def verdict(self, bayes_factor: float) -> Optional[str]:
        if bayes_factor > self.threshold:
            return ALTERNATIVE
        return None


@dataclass(frozen=True)
class TwoSidedBFThresh:
    """Accept the alternative if BF10 > ``threshold``, the null if BF10 < 1/``threshold``."""

    threshold: float
    kind = RuleKind.two_sided_bf

    def __post_init__(self) -> None:
        if self.threshold <= 1:
            raise PreconditionViolation("Bayes factor threshold must be larger than 1")

    def verdict(self, bayes_factor: float) -> Optional[str]:
        if bayes_factor > self.threshold:
            return ALTERNATIVE
        if bayes_factor < 1 / self.threshold:
            return NULL
        return None


PosteriorRule = Union[ExpectedLossThresh, ProbabilityBeatAllThresh]
BayesFactorRule = Union[OneSidedBFThresh, TwoSidedBFThresh]
StoppingRule = Union[PosteriorRule, BayesFactorRule]
