# vigp_jax/gp/kernels/derivatives.py
"""
Kernel matrices and their derivatives.

These are the only entry points the inference layer uses to talk to a
kernel: the Gram matrix, its diagonal, dK/dθ for every hyperparameter leaf,
and dK with respect to the rows of either input (for inducing-point
locations).
"""
from __future__ import annotations

from typing import Callable, Tuple

import jax
import jax.numpy as jnp
from jax.tree_util import tree_map

from .params import KernelParams

KernelFn = Callable[[jnp.ndarray, jnp.ndarray, KernelParams], jnp.ndarray]


def kernel_matrix(kernel: KernelFn, A, B, params: KernelParams) -> jnp.ndarray:
    """K(A, B), shape (|A|, |B|)."""
    return kernel(A, B, params)


def kernel_matrix_diag(kernel: KernelFn, A, params: KernelParams) -> jnp.ndarray:
    """diag K(A, A) without forming the full matrix, shape (|A|,)."""
    return jax.vmap(lambda a: kernel(a[None, :], a[None, :], params)[0, 0])(A)


def kernel_matrix_grad(kernel: KernelFn, A, B, params: KernelParams) -> KernelParams:
    """
    dK(A, B)/dθ for every hyperparameter leaf.

    Returns a KernelParams whose leaves have shape (|A|, |B|) + leaf.shape.
    """
    return jax.jacfwd(lambda p: kernel(A, B, p))(params)


def kernel_matrix_diag_grad(kernel: KernelFn, A, params: KernelParams) -> KernelParams:
    """d diag K(A, A)/dθ, leaves of shape (|A|,) + leaf.shape."""
    return jax.jacfwd(lambda p: kernel_matrix_diag(kernel, A, p))(params)


def kernel_matrix_grad_inputs(
    kernel: KernelFn, A, B, params: KernelParams
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Derivatives of K(A, B) with respect to input rows.

    Returns:
        dA: (|A|, |B|, Q), dA[i, j] = ∂k(a_i, b_j)/∂a_i
        dB: (|A|, |B|, Q), dB[i, j] = ∂k(a_i, b_j)/∂b_j
    """
    def k(a, b):
        return kernel(a[None, :], b[None, :], params)[0, 0]

    dA = jax.vmap(jax.vmap(jax.grad(k, argnums=0), (None, 0)), (0, None))(A, B)
    dB = jax.vmap(jax.vmap(jax.grad(k, argnums=1), (None, 0)), (0, None))(A, B)
    return dA, dB


def contract(S: jnp.ndarray, dK) -> KernelParams:
    """
    ⟨S, dK/dθ⟩ for each leaf: sums over the leading matrix axes of dK.
    Works for both matrix blocks (S of shape (N, M)) and diagonals (S of shape (N,)).
    """
    axes = tuple(range(S.ndim))
    return tree_map(lambda d: jnp.tensordot(S, d, axes=(axes, axes)), dK)


def contract_inputs(S: jnp.ndarray, dA: jnp.ndarray, dB: jnp.ndarray, symmetric: bool = False):
    """
    Gradient with respect to input rows given sensitivities S = ∂L/∂K.

    For K(X, Z) (``symmetric=False``) returns ∂L/∂Z from dB only.
    For K(Z, Z) (``symmetric=True``) both arguments move with Z.
    """
    gB = jnp.einsum("ij,ijq->jq", S, dB)
    if not symmetric:
        return gB
    return gB + jnp.einsum("ij,ijq->iq", S, dA)
