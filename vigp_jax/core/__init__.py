# vigp_jax/core/__init__.py
from .phi import Phi
from .data import SupervisedData, MinibatchSelection, select_minibatch, full_batch
from .errors import (
    Diagnostics,
    IncompatibleLikelihoodError,
    DimensionMismatchError,
    NonPositiveDefiniteCovarianceWarning,
    DivergentTrajectoryWarning,
    DegenerateKernelWarning,
)

__all__ = [
    "Phi",
    "SupervisedData",
    "MinibatchSelection",
    "select_minibatch",
    "full_batch",
    "Diagnostics",
    "IncompatibleLikelihoodError",
    "DimensionMismatchError",
    "NonPositiveDefiniteCovarianceWarning",
    "DivergentTrajectoryWarning",
    "DegenerateKernelWarning",
]
