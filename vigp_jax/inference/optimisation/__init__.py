# vigp_jax/inference/optimisation/__init__.py
"""
Optimisation-side variational inference.

This module provides:
- AnalyticUpdateStrategy / NumericalUpdateStrategy: natural gradients from
  closed-form or numerically integrated expectations
- GlobalUpdateController: optax steps with covariance back-off
- ELBOAccumulator: the monitored bound
- HyperparameterGradient: kernel / inducing-point ascent
- VariationalEngine: the iteration loop
"""
from .natural import NaturalGradient, GradientAccumulator, natural_gradient, to_natural_direction
from .analytic import AnalyticUpdateStrategy
from .numerical import NumericalUpdateStrategy
from .optimizers import OptimizerCFG, build_optimizer, alrsvi, robbins_monro_schedule
from .controller import GlobalUpdateController, backoff
from .elbo import ELBOAccumulator, ELBOTerms, gaussian_kl
from .typeii import HyperCFG, HyperGrads, HyperparameterGradient
from .engine import VICFG, VIRun, VariationalEngine

__all__ = [
    "NaturalGradient", "GradientAccumulator", "natural_gradient", "to_natural_direction",
    "AnalyticUpdateStrategy", "NumericalUpdateStrategy",
    "OptimizerCFG", "build_optimizer", "alrsvi", "robbins_monro_schedule",
    "GlobalUpdateController", "backoff",
    "ELBOAccumulator", "ELBOTerms", "gaussian_kl",
    "HyperCFG", "HyperGrads", "HyperparameterGradient",
    "VICFG", "VIRun", "VariationalEngine",
]
