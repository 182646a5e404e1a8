# vigp_jax/inference/__init__.py
"""
Inference layer.

- optimisation: variational updates (analytic / quadrature / Monte Carlo),
  the global update controller, ELBO and hyperparameter ascent
- sampling: HMC and slice-within-Gibbs draws from the exact joint, a
  mutually exclusive alternative to the variational path
"""
from .base import UpdateStrategy
from .optimisation import (
    AnalyticUpdateStrategy,
    NumericalUpdateStrategy,
    GlobalUpdateController,
    ELBOAccumulator,
    ELBOTerms,
    HyperparameterGradient,
    HyperCFG,
    OptimizerCFG,
    VariationalEngine,
    VICFG,
    VIRun,
)
from .sampling import (
    SamplingUpdateStrategy,
    SamplerCFG,
    SamplerPhase,
    SamplingRun,
    HMCCFG,
    GibbsCFG,
)

__all__ = [
    "UpdateStrategy",
    "AnalyticUpdateStrategy", "NumericalUpdateStrategy",
    "GlobalUpdateController", "ELBOAccumulator", "ELBOTerms",
    "HyperparameterGradient", "HyperCFG", "OptimizerCFG",
    "VariationalEngine", "VICFG", "VIRun",
    "SamplingUpdateStrategy", "SamplerCFG", "SamplerPhase", "SamplingRun",
    "HMCCFG", "GibbsCFG",
]
