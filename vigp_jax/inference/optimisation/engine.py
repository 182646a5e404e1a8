# vigp_jax/inference/optimisation/engine.py
"""
Variational inference engine.

One iteration:

    select minibatch → (online inducing update) → project onto the batch
    → strategy computes natural gradients for every latent GP
    → controller applies them (with covariance back-off)
    → every Nth iteration: hyperparameter / inducing-point ascent and
      eager recomputation of the priors
    → ELBO for monitoring

Iterations are strictly sequential; stopping between two iterations never
leaves a state half-updated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

import jax
import jax.numpy as jnp

from ...core.data import MinibatchSelection, SupervisedData, full_batch, select_minibatch
from ...core.errors import Diagnostics, DimensionMismatchError
from ...core.phi import Phi
from ...gp.ansatz.state import NaturalParamState
from ...gp.kernels import get as get_kernel
from ...gp.kernels.params import KernelParams
from ...gp.likelihoods import get as get_likelihood
from ...gp.sparsify import compute_projection
from ..base import UpdateStrategy
from .analytic import AnalyticUpdateStrategy
from .controller import MIN_STEP, GlobalUpdateController
from .elbo import ELBOAccumulator, ELBOTerms
from .numerical import NumericalUpdateStrategy
from .optimizers import OptimizerCFG, build_optimizer
from .typeii import HyperCFG, HyperparameterGradient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VICFG:
    """Configuration for variational inference."""
    integration: Literal["analytic", "quadrature", "monte_carlo"] = "analytic"
    natural: bool = True
    optimizer: Optional[OptimizerCFG] = None    # None: see default_optimizer()
    n_gh: int = 20
    n_mc: Optional[int] = None                  # None: 200 stochastic / 1000 full batch
    n_minibatch: Optional[int] = None           # requires inducing points
    hyper: Optional[HyperCFG] = None            # None: hyperparameters fixed
    min_step: float = MIN_STEP
    tol: Optional[float] = 1e-5                 # |ΔELBO| stopping rule, full batch only
    max_warnings: int = 10
    seed: int = 0
    log_every: int = 10


@dataclass
class VIRun:
    """Variational run results."""
    states: List[NaturalParamState]
    phi: Phi
    elbo_trace: jnp.ndarray     # shape [n_iter]
    converged: bool
    n_iter: int
    diagnostics: Dict[str, int]


def default_optimizer(cfg: VICFG) -> OptimizerCFG:
    """
    Full-step natural gradient for conjugate full-batch problems, a decaying
    Robbins-Monro rate under minibatching, half steps otherwise.
    """
    if cfg.n_minibatch is not None:
        return OptimizerCFG(kind="robbins_monro", lr=1.0, tau=1.0, kappa=0.51)
    if cfg.integration == "analytic":
        return OptimizerCFG(kind="sgd", lr=1.0)
    return OptimizerCFG(kind="sgd", lr=0.5)


class VariationalEngine:
    """
    Variational inference for one or more latent GPs sharing a likelihood.

    Args:
        X: inputs (N, Q)
        Y: observations (N,) or (N, L); column k is modelled by latent GP k
        likelihood: likelihood object or registry name
        phi: structural parameters; ``phi.Z`` switches on the sparse model
        kernel: kernel function or registry name
        cfg: VICFG
        inducing: optional inducing-point collaborator (``locations()``,
            ``update(X_batch)``); its locations replace ``phi.Z``
        prior_mean: constant prior mean μ₀
        key: PRNG key for minibatching and Monte Carlo (from cfg.seed if omitted)
    """

    def __init__(
        self,
        X,
        Y,
        likelihood,
        phi: Phi,
        *,
        kernel="rbf",
        cfg: VICFG = VICFG(),
        inducing=None,
        prior_mean: float = 0.0,
        key=None,
    ):
        self.data = SupervisedData.from_arrays(X, Y)
        if self.data.Y is None:
            raise DimensionMismatchError("variational inference needs observations Y.")
        self.cfg = cfg
        self.kernel = get_kernel(kernel)
        self.likelihood = get_likelihood(likelihood)
        self.inducing = inducing
        self.prior_mean = float(prior_mean)

        if inducing is not None:
            phi = phi.replace(Z=jnp.asarray(inducing.locations()))
        self._check_phi(phi)
        self.phi = phi

        if cfg.n_minibatch is not None and not phi.sparse:
            raise ValueError("minibatching requires inducing points (phi.Z).")
        self.stochastic = cfg.n_minibatch is not None and cfg.n_minibatch < len(self.data)

        self.diagnostics = Diagnostics(max_warnings=cfg.max_warnings)
        self.strategy: UpdateStrategy
        if cfg.integration == "analytic":
            self.strategy = AnalyticUpdateStrategy(self.likelihood)
        elif cfg.integration in ("quadrature", "monte_carlo"):
            self.strategy = NumericalUpdateStrategy(
                self.likelihood,
                cfg.integration,
                n_gh=cfg.n_gh,
                n_mc=cfg.n_mc,
                stochastic=self.stochastic,
            )
        else:
            raise ValueError(f"Unknown integration: {cfg.integration}")

        opt_cfg = cfg.optimizer if cfg.optimizer is not None else default_optimizer(cfg)
        self.controller = GlobalUpdateController(
            build_optimizer(opt_cfg),
            natural=cfg.natural,
            min_step=cfg.min_step,
            diagnostics=self.diagnostics,
        )
        self.hyper = None
        if cfg.hyper is not None:
            self.hyper = HyperparameterGradient(self.kernel, cfg.hyper, self.diagnostics)
        self.accumulator = ELBOAccumulator(self.strategy)
        self.key = jax.random.PRNGKey(cfg.seed) if key is None else key

        self.states = [
            NaturalParamState.from_prior(self._prior_covariance(k), self._prior_mean_vector())
            for k in range(self.n_latent)
        ]
        self.opt_states = self.controller.init(self.states)
        self.hyper_state = None if self.hyper is None else self.hyper.init(self.phi)
        self.iteration = 0

    # ------------------------------------------------------------------
    # validation and priors
    # ------------------------------------------------------------------
    @property
    def n_latent(self) -> int:
        return self.data.n_outputs

    def _check_phi(self, phi: Phi) -> None:
        L = self.data.n_outputs
        if not phi.shared_kernel:
            if len(phi.kernel_params) != L or not all(
                isinstance(p, KernelParams) for p in phi.kernel_params
            ):
                raise DimensionMismatchError(
                    f"{len(phi.kernel_params)} kernel parameter sets for {L} latent GP(s)."
                )
        if phi.sparse:
            Z = phi.Z
            if Z.ndim != 2 or Z.shape[1] != self.data.X.shape[1]:
                raise DimensionMismatchError(
                    f"inducing locations {Z.shape} do not match inputs {self.data.X.shape}."
                )

    def _features(self):
        return self.phi.Z if self.phi.sparse else self.data.X

    def _prior_covariance(self, k: int):
        F = self._features()
        K = self.kernel(F, F, self.phi.kernel_params_for(k))
        return K + self.phi.jitter * jnp.eye(F.shape[0], dtype=K.dtype)

    def _prior_mean_vector(self):
        return jnp.full((self._features().shape[0],), self.prior_mean)

    def refresh_prior(self) -> None:
        """Recompute K (and drop stale projections) after φ changed."""
        for k, state in enumerate(self.states):
            state.set_prior(self._prior_covariance(k))
            state.set_projection(None)

    def _project(self, indices) -> None:
        if not self.phi.sparse:
            return
        Xb = self.data.X[indices]
        for k, state in enumerate(self.states):
            state.set_projection(
                compute_projection(
                    self.kernel, Xb, self.phi.Z, self.phi.kernel_params_for(k), state.prior_chol
                )
            )

    # ------------------------------------------------------------------
    # iteration
    # ------------------------------------------------------------------
    def _select(self, it_key) -> MinibatchSelection:
        if self.stochastic:
            return select_minibatch(jax.random.fold_in(it_key, 0), len(self.data), self.cfg.n_minibatch)
        return full_batch(len(self.data))

    def _expectation_key(self, key):
        return key if getattr(self.strategy, "needs_key", False) else None

    def step(self) -> MinibatchSelection:
        """One variational iteration; returns the minibatch it used."""
        self.iteration += 1
        it_key = jax.random.fold_in(self.key, self.iteration)
        batch = self._select(it_key)
        Xb = self.data.X[batch.indices]
        Yb = self.data.Y[batch.indices]

        if self.inducing is not None and getattr(self.inducing, "online", False):
            if self.inducing.update(Xb):
                self.phi = self.phi.replace(Z=jnp.asarray(self.inducing.locations()))
                self.refresh_prior()

        self._project(batch.indices)
        ekey = self._expectation_key(jax.random.fold_in(it_key, 1))
        lik_params = self.phi.likelihood_params
        grads = self.strategy.compute_gradients(
            self.states, Yb, lik_params, batch.rho, key=ekey, indices=batch.indices
        )
        self.opt_states = self.controller.apply(self.states, grads, self.opt_states)

        if self.hyper is not None and self.hyper.due(self.iteration):
            marginal_grads = None
            if self.phi.sparse:
                marginal_grads = self.strategy.marginal_gradients(
                    self.states, Yb, lik_params, key=ekey, indices=batch.indices
                )
            hgrads = self.hyper.gradients(self.states, self.phi, Xb, marginal_grads, batch.rho)
            self.phi, self.hyper_state = self.hyper.step(self.phi, hgrads, self.hyper_state)
            if self.inducing is not None and self.phi.sparse:
                self.inducing.set_locations(self.phi.Z)
            self.refresh_prior()
        return batch

    def elbo(self, batch: Optional[MinibatchSelection] = None) -> ELBOTerms:
        """
        ELBO on ``batch`` (scaled by its rho), or on the full data.

        The full-data bound uses a fixed Monte Carlo key, so successive
        evaluations are comparable.
        """
        if batch is None:
            batch = full_batch(len(self.data))
            key = jax.random.fold_in(self.key, 0)
        else:
            key = jax.random.fold_in(jax.random.fold_in(self.key, self.iteration), 2)
        self._project(batch.indices)
        return self.accumulator.compute(
            self.states,
            self.data.Y[batch.indices],
            self.phi.likelihood_params,
            batch.rho,
            key=self._expectation_key(key),
            indices=batch.indices,
        )

    def run(
        self,
        n_iter: int,
        callback: Optional[Callable[[VariationalEngine, ELBOTerms], Any]] = None,
    ) -> VIRun:
        """
        Iterate until convergence or ``n_iter`` iterations.

        In stochastic runs the trace holds minibatch ELBO estimates and the
        tolerance rule is not applied. A callback returning True stops the
        run after the current iteration.
        """
        cfg = self.cfg
        logger.info(
            "VI: %s, natural=%s, %d latent GP(s), %d features%s",
            self.strategy.name,
            cfg.natural,
            self.n_latent,
            self.states[0].n_features,
            f", minibatch {cfg.n_minibatch}" if self.stochastic else "",
        )
        trace = []
        converged = False
        prev = None
        for _ in range(n_iter):
            batch = self.step()
            terms = self.elbo(batch if self.stochastic else None)
            value = float(terms.elbo)
            trace.append(value)
            if cfg.log_every and self.iteration % cfg.log_every == 0:
                logger.debug("iter %d: ELBO %.6f", self.iteration, value)
            if callback is not None and callback(self, terms):
                break
            if (
                not self.stochastic
                and cfg.tol is not None
                and prev is not None
                and abs(value - prev) < cfg.tol
            ):
                converged = True
                logger.info("converged after %d iterations (ELBO %.6f)", self.iteration, value)
                break
            prev = value

        return VIRun(
            states=self.states,
            phi=self.phi,
            elbo_trace=jnp.asarray(trace),
            converged=converged,
            n_iter=self.iteration,
            diagnostics=self.diagnostics.as_dict(),
        )
