# vigp_jax/inference/sampling/__init__.py
from .joint import LogJoint
from .hmc import HMC, HMCCFG, HMCStep, DualAveraging, WelfordVariance, kinetic_energy
from .gibbs import GibbsCFG, GibbsSampler
from .strategy import SamplerCFG, SamplerPhase, SamplingRun, SamplingUpdateStrategy

__all__ = [
    "LogJoint",
    "HMC", "HMCCFG", "HMCStep", "DualAveraging", "WelfordVariance", "kinetic_energy",
    "GibbsCFG", "GibbsSampler",
    "SamplerCFG", "SamplerPhase", "SamplingRun", "SamplingUpdateStrategy",
]
