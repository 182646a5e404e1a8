# vigp_jax/gp/kernels/matern12.py
import jax.numpy as jnp
from .utils import scaled_sqdist
from .params import KernelParams


def matern12(X, Z, params: KernelParams):
    """
    Matérn ν=1/2:
        k(r) = σ² exp(-r)
    where r = ||(x - z)/ℓ||.
    """
    r2 = scaled_sqdist(X, Z, params.lengthscale)
    r = jnp.sqrt(r2 + 1e-12)
    return params.variance * jnp.exp(-r)
