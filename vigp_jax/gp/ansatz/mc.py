# vigp_jax/gp/ansatz/mc.py
"""
Monte Carlo estimator for non-conjugate likelihoods.

For q(f_i) = N(m_i, v_i) draws f_i^s = m_i + √v_i ε_i^s and averages

    log p(y_i | f_i^s),   ∂ log p/∂f,   ½ ∂² log p/∂f²

over s. The noise ε_i for data point i comes from ``fold_in(key, i)`` with
i the point's global index, so an estimate does not depend on which
minibatch the point was drawn in, its position in the batch, or the order
in which points are evaluated.
"""
from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp

from .base import EPS_VAR, check_marginals, nodewise


@dataclass(frozen=True)
class MonteCarlo:
    """
    Monte Carlo expectations under Gaussian marginals.

    n_samples: draws per data point
    """
    n_samples: int = 200
    name: str = "monte_carlo"

    def __post_init__(self):
        if self.n_samples < 1:
            raise ValueError(f"n_samples must be positive; got {self.n_samples}.")

    def noise(self, key, indices):
        """(N, n_samples) standard normals, one index-addressed stream per point."""
        if key is None:
            raise ValueError("MonteCarlo expectations need a PRNG key.")
        draw = lambda i: jax.random.normal(jax.random.fold_in(key, i), (self.n_samples,))
        return jax.vmap(draw)(indices)

    def _points(self, mean, var, key, indices):
        if indices is None:
            indices = jnp.arange(mean.shape[0])
        eps = self.noise(key, indices)
        return mean[:, None] + jnp.sqrt(jnp.maximum(var, EPS_VAR))[:, None] * eps

    def expected_loglik(self, likelihood, y, mean, var, params, *, key=None, indices=None):
        check_marginals(y, mean, var, indices)
        lp, _, _ = nodewise(likelihood, params)
        vals = lp(y, self._points(mean, var, key, indices))
        return jnp.sum(jnp.mean(vals, axis=1))

    def grad_expected_loglik(self, likelihood, y, mean, var, params, *, key=None, indices=None):
        check_marginals(y, mean, var, indices)
        _, d1, d2 = nodewise(likelihood, params)
        f = self._points(mean, var, key, indices)
        dm = jnp.mean(d1(y, f), axis=1)
        dv = 0.5 * jnp.mean(d2(y, f), axis=1)
        return dm, dv
