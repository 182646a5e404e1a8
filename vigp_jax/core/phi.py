# vigp_jax/core/phi.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from ..gp.kernels.params import KernelParams


@register_pytree_node_class
@dataclass(frozen=True)
class Phi:
    """
    Structural (slow) parameters φ.

    kernel_params: KernelParams shared by every latent GP, or a tuple with
        one KernelParams per latent GP
    Z: inducing locations (M, Q), or None for a full-batch model
    likelihood_params: dict pytree (e.g. {"noise_var": ...})
    jitter: diagonal added to every prior covariance (static)

    The engine owns φ and swaps in a new instance whenever hyperparameters
    or inducing locations change; the variational updates never touch it.
    """
    kernel_params: Union[KernelParams, Tuple[KernelParams, ...]]
    Z: Optional[jnp.ndarray] = None
    likelihood_params: dict = field(default_factory=dict)
    jitter: float = 1e-6

    @property
    def sparse(self) -> bool:
        return self.Z is not None

    @property
    def shared_kernel(self) -> bool:
        return isinstance(self.kernel_params, KernelParams)

    def kernel_params_for(self, k: int) -> KernelParams:
        if self.shared_kernel:
            return self.kernel_params
        return self.kernel_params[k]

    def replace(self, **changes) -> Phi:
        return dataclasses.replace(self, **changes)

    def tree_flatten(self):
        children = (self.kernel_params, self.Z, self.likelihood_params)
        return children, self.jitter

    @classmethod
    def tree_unflatten(cls, jitter, children):
        kernel_params, Z, likelihood_params = children
        return cls(
            kernel_params=kernel_params,
            Z=Z,
            likelihood_params=likelihood_params,
            jitter=jitter,
        )
