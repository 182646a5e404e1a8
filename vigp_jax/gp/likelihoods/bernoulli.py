# vigp_jax/gp/likelihoods/bernoulli.py
import jax.numpy as jnp
import jax.nn as jnn

from .base import Likelihood, AnalyticCompatible, NumericallyIntegrable


def _polya_gamma_mean(c):
    """E[ω] for ω ~ PG(1, c), i.e. tanh(c/2) / (2c), with the c → 0 limit 1/4."""
    small = c < 1e-6
    c_safe = jnp.where(small, 1.0, c)
    return jnp.where(small, 0.25, jnp.tanh(0.5 * c_safe) / (2.0 * c_safe))


class BernoulliLikelihood(Likelihood, AnalyticCompatible, NumericallyIntegrable):
    """
    Bernoulli likelihood with logistic link:
        p(y | f) = Bernoulli(sigmoid(f)),  y in {0, 1}

    The analytic path uses the Pólya-Gamma augmentation: with the optimal
    q(ω) = PG(1, c), c = sqrt(m² + v), the augmented bound is

        E = log σ(c) + (s·m − c) / 2,   s = 2y − 1

    and is conditionally conjugate in f, with
        ∂E/∂m = s/2 − θ m,   ∂E/∂v = −θ/2,   θ = E[ω].
    """

    name = "bernoulli"

    def log_prob_1d(self, y, f, params=None):
        # Stable log-sigmoid cross entropy
        return y * f - jnn.softplus(f)

    def expected_loglik(self, y, m, v, params=None):
        s = 2.0 * y - 1.0
        c = jnp.sqrt(m ** 2 + v)
        return -jnn.softplus(-c) + 0.5 * (s * m - c)

    def grad_expected_loglik(self, y, m, v, params=None):
        s = 2.0 * y - 1.0
        theta = _polya_gamma_mean(jnp.sqrt(m ** 2 + v))
        return 0.5 * s - theta * m, -0.5 * theta


bernoulli = BernoulliLikelihood()
