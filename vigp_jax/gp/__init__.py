# vigp_jax/gp/__init__.py
"""
Gaussian Process components.

This package provides:
  - kernels: kernel functions, parameters and derivative matrices
  - likelihoods: observation models tagged by capability
  - ansatz: variational state and expectation providers
  - sparsify: the κ projection for inducing-point models
  - inducing: fixed and streaming inducing locations
"""
from .kernels import get as get_kernel
from .likelihoods import get as get_likelihood

__all__ = [
    "get_kernel",
    "get_likelihood",
]
