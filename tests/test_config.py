"""Tests for environment-driven settings."""

from bayesian_experiments.core.config import Settings


def test_defaults():
    config = Settings(_env_file=None)
    assert config.NUM_SAMPLES == 10_000
    assert config.BF_RTOL == 1e-8
    assert config.QUAD_LIMIT == 200
    assert config.DEFAULT_PRIOR_SD == 1.0


def test_environment_override(monkeypatch):
    monkeypatch.setenv("BAYESEXP_NUM_SAMPLES", "2500")
    monkeypatch.setenv("BAYESEXP_DEFAULT_PRIOR_SD", "0.25")
    config = Settings(_env_file=None)
    assert config.NUM_SAMPLES == 2500
    assert config.DEFAULT_PRIOR_SD == 0.25
