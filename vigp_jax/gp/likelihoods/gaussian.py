# vigp_jax/gp/likelihoods/gaussian.py
import jax.numpy as jnp

from .base import Likelihood, AnalyticCompatible, NumericallyIntegrable


class GaussianLikelihood(Likelihood, AnalyticCompatible, NumericallyIntegrable):
    """
    Gaussian likelihood:
        p(y | f, params) = N(y; f, sigma^2)

    params:
        {"noise_var": sigma^2}
    """

    name = "gaussian"

    def log_prob_1d(self, y, f, params):
        sigma2 = params["noise_var"]
        return -0.5 * (jnp.log(2.0 * jnp.pi * sigma2) + (y - f) ** 2 / sigma2)

    def expected_loglik(self, y, m, v, params):
        sigma2 = params["noise_var"]
        return -0.5 * (jnp.log(2.0 * jnp.pi * sigma2) + ((y - m) ** 2 + v) / sigma2)

    def grad_expected_loglik(self, y, m, v, params):
        sigma2 = params["noise_var"]
        dm = (y - m) / sigma2
        dv = -0.5 / sigma2 * jnp.ones_like(m)
        return dm, dv


gaussian = GaussianLikelihood()
