# vigp_jax/gp/sparsify.py
"""
Inducing-point projection.

For inducing locations Z and a batch of inputs X:

    κ = K_xz K_zz⁻¹                 (N, M)
    k̃ = diag(K_xx) − diag(κ K_zx)   (N,)   conditional variance of f | u

so that q(u) = N(μ, Σ) induces the marginals

    q(f_i) = N(κ_i μ, κ_i Σ κ_iᵗ + k̃_i).
"""
from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp

from .kernels.derivatives import kernel_matrix, kernel_matrix_diag


@dataclass(frozen=True)
class Projection:
    """κ mapping for one minibatch."""
    kappa: jnp.ndarray    # (N, M)
    k_tilde: jnp.ndarray  # (N,)
    K_xz: jnp.ndarray     # (N, M), kept for hyperparameter gradients

    @property
    def n_batch(self) -> int:
        return self.kappa.shape[0]


def residual_diag(K_xx_diag, K_xz, kappa):
    """
    diag(K_xx − Q_xx) with Q_xx = κ K_zx.

    Round-off can push diag(Q_xx) above diag(K_xx); the residual is clipped
    at zero so the implied marginal variances stay non-negative.
    """
    return jnp.maximum(K_xx_diag - jnp.sum(kappa * K_xz, axis=1), 0.0)


def compute_projection(kernel, X, Z, params, L_zz) -> Projection:
    """
    Build κ and k̃ for inputs X.

    Args:
        kernel: kernel function k(A, B, params)
        X: (N, Q) batch inputs
        Z: (M, Q) inducing locations
        params: KernelParams
        L_zz: lower Cholesky factor of K_zz (jitter included)
    """
    K_xz = kernel_matrix(kernel, X, Z, params)
    kappa = jax.scipy.linalg.cho_solve((L_zz, True), K_xz.T).T
    k_tilde = residual_diag(kernel_matrix_diag(kernel, X, params), K_xz, kappa)
    return Projection(kappa=kappa, k_tilde=k_tilde, K_xz=K_xz)
