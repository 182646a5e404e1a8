# vigp_jax/gp/likelihoods/poisson.py
import jax.numpy as jnp
import jax.scipy.special as jsp

from .base import Likelihood, NumericallyIntegrable


class PoissonLikelihood(Likelihood, NumericallyIntegrable):
    """Poisson counts with log link, rate = exp(f)."""

    name = "poisson"

    def log_prob_1d(self, y, f, params=None):
        return y * f - jnp.exp(f) - jsp.gammaln(y + 1.0)


poisson = PoissonLikelihood()
