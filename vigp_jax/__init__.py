# vigp_jax/__init__.py
"""
Variational inference for Gaussian process models in JAX.

Layers:
  - core: data containers, structural parameters φ, errors / diagnostics
  - gp: kernels, likelihoods, Gaussian ansatz state, sparsification
  - inference: variational updates (optimisation) and exact-joint samplers
  - runner: one-shot entry point
"""
import jax

jax.config.update("jax_enable_x64", True)

from .core import (  # noqa: E402
    Phi,
    SupervisedData,
    MinibatchSelection,
    select_minibatch,
    Diagnostics,
    IncompatibleLikelihoodError,
    DimensionMismatchError,
    NonPositiveDefiniteCovarianceWarning,
    DivergentTrajectoryWarning,
    DegenerateKernelWarning,
)
from .gp.kernels.params import KernelParams  # noqa: E402
from .gp.ansatz import NaturalParamState  # noqa: E402
from .inference import (  # noqa: E402
    AnalyticUpdateStrategy,
    NumericalUpdateStrategy,
    GlobalUpdateController,
    ELBOAccumulator,
    HyperparameterGradient,
    SamplingUpdateStrategy,
    VariationalEngine,
    VICFG,
    HyperCFG,
    OptimizerCFG,
    SamplerCFG,
    HMCCFG,
    GibbsCFG,
)
from .runner import RunCFG, RunOut, run  # noqa: E402

__version__ = "0.1.0"
