"""Exception hierarchy for the experiment engine.

Every error is a caller/programmer error surfaced synchronously.  They all
derive from ``ValueError`` so code that guards input validation with
``except ValueError`` keeps working.
"""


class BayesianExperimentError(ValueError):
    """Base class for all errors raised by this package."""


class PreconditionViolation(BayesianExperimentError):
    """Malformed statistics or model parameters (e.g. successes > trials)."""


class ShapeMismatch(BayesianExperimentError):
    """Mismatched lengths: draw vectors, chained stages, per-model statistics."""


class ConfigurationError(BayesianExperimentError):
    """Invalid experiment setup: too few models, bad names, wrong rule type."""


class NumericNonConvergence(BayesianExperimentError):
    """Numerical integration did not reach the requested tolerance."""
