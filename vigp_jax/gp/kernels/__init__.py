# vigp_jax/gp/kernels/__init__.py

from .base import register, get

from .params import KernelParams
from .rbf import rbf
from .matern12 import matern12
from .matern32 import matern32
from .matern52 import matern52
from .utils import scaled_sqdist
from .derivatives import (
    kernel_matrix,
    kernel_matrix_diag,
    kernel_matrix_grad,
    kernel_matrix_diag_grad,
    kernel_matrix_grad_inputs,
)

# --------------------------------------------------
# Registry
# --------------------------------------------------
register("rbf", rbf)
register("matern12", matern12)
register("matern32", matern32)
register("matern52", matern52)

__all__ = [
    "get",
    "KernelParams",
    "rbf",
    "matern12",
    "matern32",
    "matern52",
    "scaled_sqdist",
    "kernel_matrix",
    "kernel_matrix_diag",
    "kernel_matrix_grad",
    "kernel_matrix_diag_grad",
    "kernel_matrix_grad_inputs",
]
