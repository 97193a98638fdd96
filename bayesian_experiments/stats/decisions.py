"""Decision metrics computed from posterior samples.

Expected loss is the Bayesian answer to "how much am I leaving on the table
if I pick the wrong variant?".  Probability-to-beat-all is the posterior
probability that a variant's draw is at least as large as every rival's
draw in the same row of a joint sample.

The two metrics handle correlation differently: expected loss
redraws independent samples for every pairwise comparison, while
probability-to-beat-all compares the columns of one shared sample matrix.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from bayesian_experiments.core.config import settings
from bayesian_experiments.core.errors import ShapeMismatch
from bayesian_experiments.stats.conjugate import ProbabilisticModel, RandomSource, draw_sample_matrix

LossFunction = Callable[[np.ndarray, np.ndarray], np.ndarray]


def uplift_loss(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """The lost uplift when we choose ``a`` but ``b`` is actually better."""
    return np.maximum(np.asarray(b, dtype=float) - np.asarray(a, dtype=float), 0.0)


# ======================================================================
# Expected loss
# ======================================================================

def expected_loss(
    samples_a: np.ndarray,
    samples_b: np.ndarray,
    loss_fn: LossFunction = uplift_loss,
) -> float:
    """Mean loss of choosing A over B across paired posterior draws.

    Parameters
    ----------
    samples_a, samples_b : np.ndarray
        Equal-length posterior draws of the two variants.
    loss_fn : callable
        Elementwise loss, ``uplift_loss`` by default.

    Returns
    -------
    float
        ``mean(loss_fn(samples_a, samples_b))``
    """
    samples_a = np.asarray(samples_a)
    samples_b = np.asarray(samples_b)
    if samples_a.shape != samples_b.shape:
        raise ShapeMismatch("Approximating expected loss requires equal length.")
    return float(np.mean(loss_fn(samples_a, samples_b)))


def approx_expected_loss(
    model_a: ProbabilisticModel,
    model_b: ProbabilisticModel,
    parameter: str | Sequence[str] | None = None,
    loss_fn: LossFunction = uplift_loss,
    num_samples: int | None = None,
    rng: RandomSource = None,
) -> float:
    """Monte Carlo expected loss of choosing ``model_a`` over ``model_b``."""
    num_samples = num_samples or settings.NUM_SAMPLES
    rng = np.random.default_rng(rng)
    samples_a = model_a.sample_parameter(num_samples, parameter=parameter, rng=rng)
    samples_b = model_b.sample_parameter(num_samples, parameter=parameter, rng=rng)
    return expected_loss(samples_a, samples_b, loss_fn)


def approx_expected_losses(
    models: Sequence[ProbabilisticModel],
    parameter: str | Sequence[str] | None = None,
    loss_fn: LossFunction = uplift_loss,
    num_samples: int | None = None,
    rng: RandomSource = None,
) -> list[float]:
    """Expected loss for every model against its worst rival.

    For model *i* this is ``max_j E[loss(theta_i, theta_j)]`` over all
    ``j != i``: the maximum pairwise loss, not an average.  Each pair is
    evaluated with fresh posterior draws.
    """
    rng = np.random.default_rng(rng)
    losses = []
    for ref_index, ref_model in enumerate(models):
        max_loss = -np.inf
        for comp_index, comp_model in enumerate(models):
            if comp_index == ref_index:
                continue
            loss = approx_expected_loss(
                ref_model,
                comp_model,
                parameter=parameter,
                loss_fn=loss_fn,
                num_samples=num_samples,
                rng=rng,
            )
            if loss > max_loss:
                max_loss = loss
        losses.append(float(max_loss))
    return losses


# ======================================================================
# Probability to beat all
# ======================================================================

def probability_beat_all_from_samples(samples: np.ndarray) -> list[float]:
    """Per column, the share of rows where it is >= every other column."""
    samples = np.asarray(samples)
    if samples.ndim != 2:
        raise ShapeMismatch("expected a (num_samples, num_models) matrix")
    num_samples, num_models = samples.shape
    probs = []
    for ref_index in range(num_models):
        beats = samples[:, [ref_index]] >= samples  # (num_samples, num_models)
        num_beats_all = int(np.sum(np.all(beats, axis=1)))
        probs.append(num_beats_all / num_samples)
    return probs


def probability_beat_all(
    models: Sequence[ProbabilisticModel],
    parameter: str | Sequence[str] | None = None,
    num_samples: int | None = None,
    rng: RandomSource = None,
) -> list[float]:
    """Monte Carlo estimate of P(model_i >= all rivals) for each model.

    Parameters
    ----------
    models : list
        One posterior model per variant.
    num_samples : int | None
        Rows of the joint sample matrix; ``settings.NUM_SAMPLES`` by default.
    rng : Generator | int | None
        Random source.

    Returns
    -------
    list[float]
        One probability per model.  Exact ties count for every tied model,
        so the values can sum to slightly more than 1.
    """
    num_samples = num_samples or settings.NUM_SAMPLES
    samples = draw_sample_matrix(models, num_samples, rng=rng, parameter=parameter)
    return probability_beat_all_from_samples(samples)
