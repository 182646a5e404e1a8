# vigp_jax/gp/ansatz/__init__.py
"""
Variational state and expectation providers.

Analytic (conjugate) likelihoods use ClosedForm; everything else goes
through Gauss-Hermite quadrature or Monte Carlo.
"""
from .state import NaturalParamState
from .base import ExpectationProvider
from .closed_form import ClosedForm, require_analytic
from .gh import GaussHermite
from .mc import MonteCarlo

__all__ = [
    "NaturalParamState",
    "ExpectationProvider",
    "ClosedForm",
    "require_analytic",
    "GaussHermite",
    "MonteCarlo",
]
