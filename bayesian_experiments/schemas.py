"""Result schemas returned by the experiment orchestrators."""

from __future__ import annotations

from pydantic import BaseModel

from bayesian_experiments.stats.rules import RuleKind


class ModelMetric(BaseModel):
    name: str
    value: float


class ExperimentMetrics(BaseModel):
    metric: RuleKind
    threshold: float
    models: list[ModelMetric]
    leader: str
    leader_value: float
    passes_threshold: bool

    @property
    def values(self) -> list[float]:
        return [m.value for m in self.models]

    def as_dict(self) -> dict[str, float]:
        return {m.name: m.value for m in self.models}


class BayesFactorMetrics(BaseModel):
    metric: RuleKind
    threshold: float
    bayes_factor: float
    prior_prob_null: float
    posterior_prob_null: float
    verdict: str | None = None
