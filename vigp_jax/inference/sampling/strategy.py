# vigp_jax/inference/sampling/strategy.py
"""
Sampling alternative to the variational updates.

Instead of optimising a bound, draw latent GP values from the true joint
p(y, f) with HMC or slice-within-Gibbs. The sampler is a small state
machine:

    BURN_IN ──(n_burnin draws)──▶ SAMPLING ──(n_samples retained)──▶ TERMINAL

Burn-in draws are discarded and only tune the kernel (step size, mass
matrix). While sampling, every ``thin``-th draw is kept in a rolling store
of fixed capacity, held as host arrays.
"""
from __future__ import annotations

import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Literal, Optional

import jax
import jax.numpy as jnp
import numpy as np

from ...core.data import SupervisedData
from ...core.errors import Diagnostics, DimensionMismatchError, DivergentTrajectoryWarning
from ...core.phi import Phi
from ...gp.kernels import get as get_kernel
from ...gp.likelihoods import get as get_likelihood
from .gibbs import GibbsCFG, GibbsSampler
from .hmc import HMC, HMCCFG
from .joint import LogJoint

logger = logging.getLogger(__name__)


class SamplerPhase(enum.Enum):
    BURN_IN = "burn_in"
    SAMPLING = "sampling"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class SamplerCFG:
    """Configuration for the sampling strategy."""
    method: Literal["hmc", "gibbs"] = "hmc"
    n_burnin: int = 100
    thin: int = 10
    n_samples: int = 100                 # retained draws before TERMINAL
    store_size: Optional[int] = None     # rolling store capacity, defaults to n_samples
    hmc: HMCCFG = field(default_factory=HMCCFG)
    gibbs: GibbsCFG = field(default_factory=GibbsCFG)
    seed: int = 0
    max_warnings: int = 10


@dataclass
class SamplingRun:
    """Sampling run results."""
    samples: jnp.ndarray        # [n_stored, L, N]
    phase: SamplerPhase
    accept_rate: float          # mean acceptance over the sampling phase
    step_size: Optional[float]
    n_steps: int
    diagnostics: Dict[str, int]


class SamplingUpdateStrategy:
    """
    Args:
        X: inputs (N, Q)
        Y: observations (N,) or (N, L), or None to sample the prior
        likelihood: likelihood object or registry name (None with Y=None)
        phi: structural parameters (kernel and likelihood parameters; Z is ignored)
        kernel: kernel function or registry name
        cfg: SamplerCFG
        prior_mean: constant prior mean μ₀
        init: optional (L, N) starting point (μ₀ otherwise)
        key: PRNG key (from cfg.seed if omitted)
    """

    def __init__(
        self,
        X,
        Y,
        likelihood,
        phi: Phi,
        *,
        kernel="rbf",
        cfg: SamplerCFG = SamplerCFG(),
        prior_mean: float = 0.0,
        init=None,
        key=None,
    ):
        if cfg.n_burnin < 0 or cfg.thin < 1 or cfg.n_samples < 1:
            raise ValueError(
                f"need n_burnin >= 0, thin >= 1 and n_samples >= 1; got {cfg.n_burnin}, "
                f"{cfg.thin}, {cfg.n_samples}."
            )
        data = SupervisedData.from_arrays(X, Y)
        self.cfg = cfg
        self.data = data
        self.kernel = get_kernel(kernel)
        self.likelihood = None if likelihood is None else get_likelihood(likelihood)
        self.phi = phi

        if data.Y is not None:
            n_latent = data.n_outputs
        elif phi.shared_kernel:
            n_latent = 1
        else:
            n_latent = len(phi.kernel_params)
        if not phi.shared_kernel and len(phi.kernel_params) != n_latent:
            raise DimensionMismatchError(
                f"{len(phi.kernel_params)} kernel parameter sets for {n_latent} latent GP(s)."
            )

        X = data.X
        N = X.shape[0]
        eye = jnp.eye(N, dtype=X.dtype)
        covs = [
            self.kernel(X, X, phi.kernel_params_for(k)) + phi.jitter * eye
            for k in range(n_latent)
        ]
        means = jnp.full((n_latent, N), float(prior_mean))
        self.log_joint = LogJoint(self.likelihood, data.Y, phi.likelihood_params, means, covs)

        if cfg.method == "hmc":
            self.kernel_ = HMC(self.log_joint, cfg.hmc)
        elif cfg.method == "gibbs":
            self.kernel_ = GibbsSampler(self.log_joint, cfg.gibbs)
        else:
            raise ValueError(f"Unknown sampler: {cfg.method}")

        self.position = means if init is None else jnp.asarray(init)
        self.log_joint.check(self.position)
        self.key = jax.random.PRNGKey(cfg.seed) if key is None else key
        self.diagnostics = Diagnostics(max_warnings=cfg.max_warnings)
        self.store = deque(maxlen=cfg.store_size or cfg.n_samples)

        self.n_steps = 0
        self._n_burnin_done = 0
        self._n_sampling = 0
        self._n_retained = 0
        self._accept_sum = 0.0
        self.phase = SamplerPhase.BURN_IN
        self.kernel_.start_adaptation(cfg.n_burnin)
        if cfg.n_burnin == 0:
            self._enter_sampling()

    def _enter_sampling(self) -> None:
        self.kernel_.finish_adaptation()
        self.phase = SamplerPhase.SAMPLING
        logger.info("burn-in finished after %d draws", self._n_burnin_done)
        if isinstance(self.kernel_, HMC):
            logger.debug("adapted HMC step size %.4g", self.kernel_.step_size)

    def step(self) -> SamplerPhase:
        """Advance by one transition; returns the phase afterwards."""
        if self.phase is SamplerPhase.TERMINAL:
            return self.phase
        key = jax.random.fold_in(self.key, self.n_steps)
        self.n_steps += 1
        out = self.kernel_.step(self.position, key)
        if bool(out.divergent):
            self.diagnostics.record(
                "divergent_trajectory",
                f"draw {self.n_steps}: non-finite energy; proposal rejected.",
                DivergentTrajectoryWarning,
            )
        self.position = out.position
        accept_prob = float(out.accept_prob)

        if self.phase is SamplerPhase.BURN_IN:
            self.kernel_.adapt(self._n_burnin_done, self.position, accept_prob)
            self._n_burnin_done += 1
            if self._n_burnin_done >= self.cfg.n_burnin:
                self._enter_sampling()
        else:
            self._n_sampling += 1
            self._accept_sum += accept_prob
            if self._n_sampling % self.cfg.thin == 0:
                self.store.append(np.asarray(self.position))
                self._n_retained += 1
                if self._n_retained >= self.cfg.n_samples:
                    self.phase = SamplerPhase.TERMINAL
                    logger.info("collected %d samples", self._n_retained)
        return self.phase

    @property
    def samples(self) -> jnp.ndarray:
        if not self.store:
            return jnp.zeros((0,) + self.log_joint.shape)
        return jnp.asarray(np.stack(self.store))

    def run(self, max_steps: Optional[int] = None) -> SamplingRun:
        """Step until TERMINAL (or ``max_steps`` transitions)."""
        n = 0
        while self.phase is not SamplerPhase.TERMINAL:
            if max_steps is not None and n >= max_steps:
                break
            self.step()
            n += 1
        return SamplingRun(
            samples=self.samples,
            phase=self.phase,
            accept_rate=self._accept_sum / max(self._n_sampling, 1),
            step_size=getattr(self.kernel_, "step_size", None),
            n_steps=self.n_steps,
            diagnostics=self.diagnostics.as_dict(),
        )
