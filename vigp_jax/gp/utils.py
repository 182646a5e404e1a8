# vigp_jax/gp/utils.py
"""
Numerical linear-algebra helpers for SPD matrices.

JAX's Cholesky does not raise on failure: the factor comes back filled
with NaN. Feasibility is therefore tested by checking the factor for
finiteness.
"""
from __future__ import annotations

import logging

import jax.numpy as jnp
import jax.scipy.linalg as jsl
from numpy.linalg import LinAlgError

logger = logging.getLogger(__name__)


def symmetrize(A: jnp.ndarray) -> jnp.ndarray:
    return 0.5 * (A + A.T)


def cholesky_or_nan(A: jnp.ndarray) -> jnp.ndarray:
    """Lower Cholesky factor of sym(A); NaN-filled if sym(A) is not SPD."""
    return jnp.linalg.cholesky(symmetrize(A))


def is_positive_definite(A: jnp.ndarray) -> bool:
    """Cholesky-feasibility test."""
    return bool(jnp.all(jnp.isfinite(cholesky_or_nan(A))))


def safe_cholesky(
    K: jnp.ndarray,
    jitter: float = 0.0,
    max_jitter: float = 1e-2,
) -> jnp.ndarray:
    """
    Cholesky factor of K, escalating diagonal jitter by 10x until it succeeds.

    Args:
        K: symmetric matrix (M, M)
        jitter: first jitter to try when the plain factorisation fails
            (1e-10 × mean diagonal if 0)
        max_jitter: largest jitter attempted

    Returns:
        L: lower triangular factor

    Raises:
        numpy.linalg.LinAlgError if K + max_jitter·I is still not SPD.
    """
    K = symmetrize(K)
    L = jnp.linalg.cholesky(K)
    if bool(jnp.all(jnp.isfinite(L))):
        return L
    eye = jnp.eye(K.shape[0], dtype=K.dtype)
    current = jitter if jitter > 0.0 else 1e-10 * float(jnp.mean(jnp.diag(K)))
    current = max(current, 1e-12)
    while current <= max_jitter:
        L = jnp.linalg.cholesky(K + current * eye)
        if bool(jnp.all(jnp.isfinite(L))):
            logger.debug("Cholesky needed extra jitter %.3g", current)
            return L
        current *= 10.0
    raise LinAlgError(
        f"Matrix is not positive definite even with jitter {max_jitter:g}."
    )


def cho_inverse(L: jnp.ndarray) -> jnp.ndarray:
    """A⁻¹ from the lower Cholesky factor of A."""
    eye = jnp.eye(L.shape[0], dtype=L.dtype)
    return symmetrize(jsl.cho_solve((L, True), eye))


def cho_solve(L: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    return jsl.cho_solve((L, True), b)


def logdet_from_chol(L: jnp.ndarray) -> jnp.ndarray:
    return 2.0 * jnp.sum(jnp.log(jnp.diag(L)))
