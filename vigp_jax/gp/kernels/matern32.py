# vigp_jax/gp/kernels/matern32.py
import jax.numpy as jnp
from .params import KernelParams
from .utils import scaled_sqdist


def matern32(X, Z, params: KernelParams):
    r = jnp.sqrt(scaled_sqdist(X, Z, params.lengthscale) + 1e-12)
    s3r = jnp.sqrt(3.0) * r
    return params.variance * (1.0 + s3r) * jnp.exp(-s3r)
