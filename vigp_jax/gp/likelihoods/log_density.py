# vigp_jax/gp/likelihoods/log_density.py
from .base import Likelihood, SamplingOnly


class LogDensityLikelihood(Likelihood, SamplingOnly):
    """
    Arbitrary user log density ``fn(y, f, params) -> scalar``.

    No smoothness or integrability is assumed, so this likelihood is only
    accepted by the sampling strategy.
    """

    name = "log_density"

    def __init__(self, fn):
        self.fn = fn

    def log_prob_1d(self, y, f, params):
        return self.fn(y, f, params)

    def __repr__(self):
        return f"LogDensityLikelihood({getattr(self.fn, '__name__', self.fn)!r})"
