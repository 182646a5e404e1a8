# vigp_jax/inference/sampling/joint.py
"""
Joint log density of observations and latent GP values.

    log p(y, f) = Σ_k Σ_i log p(y_ik | f_ki) + Σ_k log N(f_k; μ₀_k, K_k)

with gradient ∇_f log p(y | f) + (−K_k⁻¹(f_k − μ₀_k)) per latent. Latent
values are stacked as an (L, N) array.
"""
from __future__ import annotations

from typing import Optional, Sequence

import jax
import jax.numpy as jnp

from ...core.errors import DimensionMismatchError
from ...gp.utils import cho_inverse, logdet_from_chol, safe_cholesky


class LogJoint:
    """
    Args:
        likelihood: likelihood with ``log_prob_1d``, or None for prior only
        Y: (N, L) observations, or None for prior only
        params: likelihood parameters
        prior_means: (L, N)
        prior_covariances: sequence of L (N, N) matrices
    """

    def __init__(self, likelihood, Y, params, prior_means, prior_covariances: Sequence[jnp.ndarray]):
        self.likelihood = likelihood
        self.params = params
        self.prior_means = jnp.asarray(prior_means)
        L, N = self.prior_means.shape
        if len(prior_covariances) != L:
            raise DimensionMismatchError(f"{len(prior_covariances)} prior covariances for {L} latent GP(s).")
        chols = [safe_cholesky(K) for K in prior_covariances]
        self.prior_precisions = jnp.stack([cho_inverse(c) for c in chols])
        self.prior_logdets = jnp.stack([logdet_from_chol(c) for c in chols])
        if (likelihood is None) != (Y is None):
            raise ValueError("likelihood and Y must be given together.")
        if Y is not None and Y.shape != (N, L):
            raise DimensionMismatchError(f"observations {Y.shape} do not match latent values ({L}, {N}).")
        self.Y = Y
        self.shape = (L, N)

    def log_prior(self, f):
        delta = f - self.prior_means
        quad = jnp.einsum("kn,knm,km->k", delta, self.prior_precisions, delta)
        N = self.shape[1]
        return -0.5 * jnp.sum(quad + self.prior_logdets + N * jnp.log(2.0 * jnp.pi))

    def grad_log_prior(self, f):
        return -jnp.einsum("knm,km->kn", self.prior_precisions, f - self.prior_means)

    def log_likelihood(self, f):
        if self.likelihood is None:
            return jnp.zeros((), dtype=f.dtype)
        # f is (L, N); Y.T is (L, N)
        per_latent = jax.vmap(lambda y, fk: self.likelihood.log_prob(y, fk, self.params))
        return jnp.sum(per_latent(self.Y.T, f))

    def __call__(self, f):
        return self.log_likelihood(f) + self.log_prior(f)

    def grad(self, f):
        return jax.grad(self.log_likelihood)(f) + self.grad_log_prior(f)

    def value_and_grad(self, f):
        value, g_lik = jax.value_and_grad(self.log_likelihood)(f)
        return value + self.log_prior(f), g_lik + self.grad_log_prior(f)

    def check(self, f: Optional[jnp.ndarray]) -> None:
        if f is not None and f.shape != self.shape:
            raise DimensionMismatchError(f"latent values {f.shape}; expected {self.shape}.")
