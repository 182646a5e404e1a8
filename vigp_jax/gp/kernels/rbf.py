# vigp_jax/gp/kernels/rbf.py
import jax.numpy as jnp
from .params import KernelParams
from .utils import scaled_sqdist


def rbf(X, Z, params: KernelParams):
    """
    Squared exponential:
        k(x, z) = σ² exp(-r² / 2),  r = ||(x - z)/ℓ||
    """
    r2 = scaled_sqdist(X, Z, params.lengthscale)
    return params.variance * jnp.exp(-0.5 * r2)
