# vigp_jax/inference/optimisation/typeii.py
"""
Type-II (hyperparameter) ascent on the ELBO.

Given the variational states, this module computes ∂ELBO/∂θ for kernel
hyperparameters θ and ∂ELBO/∂Z for inducing locations by contracting
block sensitivities S = ∂ELBO/∂K with derivative kernel matrices:

    ∂ELBO/∂θ = Σ_blocks ⟨S_block, dK_block/dθ⟩

KL block (prior N(μ₀, K) on the M variational features, A = K⁻¹,
δ = μ − μ₀):

    S_KL = ½ A (Σ + δδᵗ) A − ½ A

which is ½ tr[(K⁻¹(Σ + δδᵗ) − I) K⁻¹ dK/dθ]. In the full-batch case the
expected log-likelihood does not depend on K and this is the whole
gradient.

Sparse case, with per-sample marginal gradients (∇E_μ, ∇E_Σ) on the
minibatch, D = diag(∇E_Σ) and G = ∇E_μ μᵗ + D(2κΣ − K_nm):

    S_nm = ρ (G A − D κ)
    S_mm = ρ (−κᵗ G A) + S_KL
    S_nn = ρ ∇E_Σ                       (diagonal of K_nn only)

The steps use their own optax rule and optimiser state, separate from
the variational parameters.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import jax.numpy as jnp
from jax.tree_util import tree_map

from ...core.errors import DegenerateKernelWarning, Diagnostics
from ...core.phi import Phi
from ...gp.ansatz.state import NaturalParamState
from ...gp.kernels.derivatives import (
    contract,
    contract_inputs,
    kernel_matrix_diag_grad,
    kernel_matrix_grad,
    kernel_matrix_grad_inputs,
)
from ...gp.kernels.params import KernelParams
from ...gp.utils import symmetrize
from .optimizers import OptimizerCFG, ascent_updates, build_optimizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HyperCFG:
    """Configuration for hyperparameter ascent."""
    frequency: int = 10                      # every Nth variational iteration
    optimizer: OptimizerCFG = field(default_factory=lambda: OptimizerCFG(kind="adam", lr=1e-2))
    optimise_kernel: bool = True
    optimise_inducing: bool = False
    # Parameter floors
    min_variance: float = 1e-12
    min_lengthscale: float = 1e-6


@dataclass
class HyperGrads:
    kernel: Any                      # KernelParams, or tuple of them (one per latent)
    Z: Optional[jnp.ndarray] = None


def kl_sensitivity(state: NaturalParamState) -> jnp.ndarray:
    """∂(−KL)/∂K = ½ K⁻¹(Σ + δδᵗ)K⁻¹ − ½ K⁻¹."""
    A = state.prior_precision
    delta = state.mean - state.prior_mean
    B = state.covariance + jnp.outer(delta, delta)
    return symmetrize(0.5 * A @ B @ A - 0.5 * A)


def sparse_sensitivities(
    state: NaturalParamState, grad_mean, grad_var, rho: float
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """(S_nm, S_mm, S_nn) for one latent GP with a projection set."""
    proj = state.projection
    A = state.prior_precision
    kappa = proj.kappa
    G = jnp.outer(grad_mean, state.mean) + grad_var[:, None] * (
        2.0 * kappa @ state.covariance - proj.K_xz
    )
    S_nm = rho * (G @ A - grad_var[:, None] * kappa)
    S_mm = symmetrize(rho * (-kappa.T @ G @ A)) + kl_sensitivity(state)
    S_nn = rho * grad_var
    return S_nm, S_mm, S_nn


class HyperparameterGradient:
    """
    Gradient and ascent step for kernel hyperparameters and inducing locations.

    Args:
        kernel: kernel function k(A, B, params)
        cfg: HyperCFG
        diagnostics: shared Diagnostics record
    """

    def __init__(self, kernel, cfg: HyperCFG = HyperCFG(), diagnostics: Optional[Diagnostics] = None):
        if cfg.frequency < 1:
            raise ValueError(f"frequency must be >= 1; got {cfg.frequency}.")
        self.kernel = kernel
        self.cfg = cfg
        self.optimizer = build_optimizer(cfg.optimizer)
        self.diagnostics = Diagnostics() if diagnostics is None else diagnostics

    def due(self, iteration: int) -> bool:
        """True on every ``frequency``-th iteration (1-based)."""
        return iteration % self.cfg.frequency == 0

    # ------------------------------------------------------------------
    # gradients
    # ------------------------------------------------------------------
    def _latent_grads(self, state: NaturalParamState, params: KernelParams, X, Z, marginal_grads, rho):
        if Z is None:
            S = kl_sensitivity(state)
            g_theta = contract(S, kernel_matrix_grad(self.kernel, X, X, params))
            return g_theta, None

        grad_mean, grad_var = marginal_grads
        S_nm, S_mm, S_nn = sparse_sensitivities(state, grad_mean, grad_var, rho)
        g_theta = tree_map(
            lambda a, b, c: a + b + c,
            contract(S_nm, kernel_matrix_grad(self.kernel, X, Z, params)),
            contract(S_mm, kernel_matrix_grad(self.kernel, Z, Z, params)),
            contract(S_nn, kernel_matrix_diag_grad(self.kernel, X, params)),
        )
        g_Z = None
        if self.cfg.optimise_inducing:
            _, dZ_nm = kernel_matrix_grad_inputs(self.kernel, X, Z, params)
            dA_mm, dB_mm = kernel_matrix_grad_inputs(self.kernel, Z, Z, params)
            g_Z = contract_inputs(S_nm, None, dZ_nm) + contract_inputs(S_mm, dA_mm, dB_mm, symmetric=True)
        return g_theta, g_Z

    def gradients(
        self,
        states: Sequence[NaturalParamState],
        phi: Phi,
        X,
        marginal_grads: Optional[Sequence[Tuple[jnp.ndarray, jnp.ndarray]]] = None,
        rho: float = 1.0,
    ) -> HyperGrads:
        """
        ∂ELBO/∂θ (and ∂ELBO/∂Z when optimising inducing points).

        Args:
            states: per-latent states; in the sparse case their projections
                must describe the rows of X
            phi: current structural parameters
            X: inputs the states' prior/projection were built on
            marginal_grads: per-latent (∇E_μ, ∇E_Σ) on X (sparse case only)
            rho: minibatch scale
        """
        if phi.sparse and marginal_grads is None:
            raise ValueError("sparse hyperparameter gradients need the marginal gradients.")
        per_latent = []
        g_Z = None
        for k, state in enumerate(states):
            mg = None if marginal_grads is None else marginal_grads[k]
            g_theta, g_Zk = self._latent_grads(state, phi.kernel_params_for(k), X, phi.Z, mg, rho)
            per_latent.append(g_theta)
            if g_Zk is not None:
                g_Z = g_Zk if g_Z is None else g_Z + g_Zk

        if phi.shared_kernel:
            kernel_grads = per_latent[0]
            for g in per_latent[1:]:
                kernel_grads = tree_map(jnp.add, kernel_grads, g)
        else:
            kernel_grads = tuple(per_latent)
        return HyperGrads(kernel=kernel_grads, Z=g_Z)

    # ------------------------------------------------------------------
    # ascent
    # ------------------------------------------------------------------
    def init(self, phi: Phi) -> dict:
        opt_state = {}
        if self.cfg.optimise_kernel:
            opt_state["kernel"] = self.optimizer.init(phi.kernel_params)
        if self.cfg.optimise_inducing and phi.sparse:
            opt_state["Z"] = self.optimizer.init(phi.Z)
        return opt_state

    def _apply_floors(self, params: KernelParams) -> KernelParams:
        variance = params.variance
        if bool(jnp.any(variance < self.cfg.min_variance)):
            self.diagnostics.record(
                "kernel_variance_clamped",
                f"kernel variance {variance} clamped to {self.cfg.min_variance:g}.",
                DegenerateKernelWarning,
            )
            variance = jnp.maximum(variance, self.cfg.min_variance)
        lengthscale = jnp.maximum(params.lengthscale, self.cfg.min_lengthscale)
        return KernelParams(lengthscale=lengthscale, variance=variance)

    def constrain(self, kernel_params):
        if isinstance(kernel_params, KernelParams):
            return self._apply_floors(kernel_params)
        return tuple(self._apply_floors(p) for p in kernel_params)

    def step(self, phi: Phi, grads: HyperGrads, opt_state: dict) -> Tuple[Phi, dict]:
        """One ascent step; returns the new φ and optimiser state."""
        new_state = dict(opt_state)
        kernel_params = phi.kernel_params
        Z = phi.Z
        if "kernel" in opt_state:
            delta, new_state["kernel"] = ascent_updates(
                self.optimizer, grads.kernel, opt_state["kernel"], kernel_params
            )
            kernel_params = self.constrain(tree_map(jnp.add, kernel_params, delta))
        if "Z" in opt_state and grads.Z is not None:
            delta, new_state["Z"] = ascent_updates(self.optimizer, grads.Z, opt_state["Z"], Z)
            Z = Z + delta
        logger.debug("hyperparameter step: %s", kernel_params)
        return phi.replace(kernel_params=kernel_params, Z=Z), new_state
