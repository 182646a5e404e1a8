# vigp_jax/gp/kernels/params.py
from __future__ import annotations
from dataclasses import dataclass, field
import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class


@register_pytree_node_class
@dataclass(frozen=True)
class KernelParams:
    """
    Stationary kernel hyperparameters as a pytree.

    lengthscale: scalar, or (Q,) for per-dimension (ARD) lengthscales
    variance: scalar signal variance (the kernel coefficient)

    Both leaves are what the hyperparameter optimiser differentiates and
    steps; kernels read them directly.
    """

    lengthscale: jnp.ndarray = field(default_factory=lambda: jnp.array(1.0))
    variance: jnp.ndarray = field(default_factory=lambda: jnp.array(1.0))

    def tree_flatten(self):
        return (self.lengthscale, self.variance), None

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        return cls(lengthscale=children[0], variance=children[1])

    @classmethod
    def create(cls, lengthscale=1.0, variance=1.0) -> KernelParams:
        return cls(
            lengthscale=jnp.asarray(lengthscale, dtype=float),
            variance=jnp.asarray(variance, dtype=float),
        )
