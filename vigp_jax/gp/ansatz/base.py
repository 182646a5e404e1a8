# vigp_jax/gp/ansatz/base.py
"""
Expectation providers.

An expectation provider turns a likelihood into the two quantities the
variational updates consume, for Gaussian marginals q(f_i) = N(m_i, v_i):

    expected_loglik       Σ_i E_q[log p(y_i | f_i)]             (scalar)
    grad_expected_loglik  (∂E_i/∂m_i, ∂E_i/∂v_i)                (two (N,) vectors)

Closed-form providers use the likelihood's own formulas; Gauss-Hermite and
Monte Carlo providers integrate ``log_prob_1d`` and its derivatives
numerically, using ∂E/∂v = ½ E[∂² log p/∂f²].
"""
from __future__ import annotations

from typing import Optional, Protocol, Tuple, runtime_checkable

import jax
import jax.numpy as jnp

from ...core.errors import DimensionMismatchError

EPS_VAR = 1e-12


@runtime_checkable
class ExpectationProvider(Protocol):
    name: str

    def expected_loglik(
        self, likelihood, y, mean, var, params, *, key=None, indices=None
    ) -> jnp.ndarray:
        ...

    def grad_expected_loglik(
        self, likelihood, y, mean, var, params, *, key=None, indices=None
    ) -> Tuple[jnp.ndarray, jnp.ndarray]:
        ...


def nodewise(likelihood, params):
    """
    log p and its first two f-derivatives, vectorised over a (N,) vector of
    observations and an (N, S) array of latent evaluation points.
    """
    lp = likelihood.log_prob_1d
    d1 = jax.grad(lp, argnums=1)
    d2 = jax.grad(d1, argnums=1)

    def over_nodes(fn):
        inner = jax.vmap(lambda y, f: fn(y, f, params), in_axes=(None, 0))
        return jax.vmap(inner, in_axes=(0, 0))

    return over_nodes(lp), over_nodes(d1), over_nodes(d2)


def check_marginals(y, mean, var, indices: Optional[jnp.ndarray] = None):
    n = y.shape[0]
    if mean.shape != (n,) or var.shape != (n,):
        raise DimensionMismatchError(
            f"observations {y.shape}, means {mean.shape} and variances {var.shape} disagree."
        )
    if indices is not None and indices.shape != (n,):
        raise DimensionMismatchError(
            f"{indices.shape[0]} indices supplied for {n} observations."
        )
