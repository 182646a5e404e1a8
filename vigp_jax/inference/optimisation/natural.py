# vigp_jax/inference/optimisation/natural.py
"""
Natural-gradient formula shared by the analytic and numerical strategies.

For q(u) = N(μ, Σ), prior N(μ₀, K), marginal gradients (∇E_μ, ∇E_Σ) of
the expected log-likelihood on a minibatch and scale ρ:

    ∇η₂ = ρ κᵗ diag(∇E_Σ) κ − ½(K⁻¹ − Σ⁻¹)
    ∇η₁ = ρ κᵗ ∇E_μ − K⁻¹(μ − μ₀)

(κ = I, ρ = 1 for full batch). These are the ELBO gradients with respect
to Σ and μ. Since (μ, Σ + μμᵗ) are the expectation parameters dual to
(η₁, η₂), the natural gradient in η is

    g̃₁ = ∇η₁ − 2 ∇η₂ μ,    g̃₂ = ∇η₂

which for a conjugate likelihood equals η* − η exactly.
"""
from __future__ import annotations

from typing import Dict, NamedTuple, Optional

import jax
import jax.numpy as jnp

from ...core.errors import DimensionMismatchError
from ...gp.ansatz.state import NaturalParamState
from ...gp.utils import symmetrize


class NaturalGradient(NamedTuple):
    eta1: jnp.ndarray   # (M,)
    eta2: jnp.ndarray   # (M, M)


# latent-GP index -> gradient, owned by one iteration
GradientAccumulator = Dict[int, NaturalGradient]


def natural_gradient(
    state: NaturalParamState,
    grad_mean: jnp.ndarray,
    grad_var: jnp.ndarray,
    rho: float = 1.0,
) -> NaturalGradient:
    """
    Gradients (∇η₁, ∇η₂) for one latent GP.

    grad_mean, grad_var are per-sample (∂E/∂m, ∂E/∂v) on the rows covered
    by ``state.projection`` (all M features when there is none).
    """
    kappa = None if state.projection is None else state.projection.kappa
    n_rows = state.n_features if kappa is None else kappa.shape[0]
    if grad_mean.shape != (n_rows,) or grad_var.shape != (n_rows,):
        raise DimensionMismatchError(
            f"expected per-sample gradients of shape ({n_rows},); "
            f"got {grad_mean.shape} and {grad_var.shape}."
        )

    P = state.prior_precision
    if kappa is None:
        lik1 = grad_mean
        lik2 = jnp.diag(grad_var)
    else:
        lik1 = kappa.T @ grad_mean
        lik2 = (kappa.T * grad_var[None, :]) @ kappa

    g2 = rho * lik2 - 0.5 * (P - state.precision)
    g1 = rho * lik1 - P @ (state.mean - state.prior_mean)
    return NaturalGradient(eta1=g1, eta2=symmetrize(g2))


def to_natural_direction(grad: NaturalGradient, mean: jnp.ndarray) -> NaturalGradient:
    """Map (∇η₁, ∇η₂) to the natural-gradient direction in (η₁, η₂)."""
    return NaturalGradient(eta1=grad.eta1 - 2.0 * grad.eta2 @ mean, eta2=grad.eta2)


def _latent_key(key, k: int):
    return None if key is None else jax.random.fold_in(key, k)


class ExpectationUpdateStrategy:
    """
    Loop over latent GPs: marginals -> provider gradients -> natural gradient.

    Subclasses pick the expectation provider and check the likelihood's
    capability at construction.
    """

    name = "expectation"

    def __init__(self, likelihood, provider):
        self.likelihood = likelihood
        self.provider = provider

    @staticmethod
    def _check_targets(states, Y):
        if Y.ndim != 2 or Y.shape[1] != len(states):
            raise DimensionMismatchError(
                f"observations of shape {Y.shape} do not match {len(states)} latent GP(s)."
            )

    def compute_gradients(
        self, states, Y, params, rho: float = 1.0, *, key=None, indices=None
    ) -> GradientAccumulator:
        self._check_targets(states, Y)
        acc: GradientAccumulator = {}
        for k, state in enumerate(states):
            m, v = state.marginals()
            dm, dv = self.provider.grad_expected_loglik(
                self.likelihood, Y[:, k], m, v, params,
                key=_latent_key(key, k), indices=indices,
            )
            acc[k] = natural_gradient(state, dm, dv, rho)
        return acc

    def marginal_gradients(self, states, Y, params, *, key=None, indices=None):
        """Per-latent (∂E/∂m, ∂E/∂v) on the current batch (used by the hyperparameter step)."""
        self._check_targets(states, Y)
        out = []
        for k, state in enumerate(states):
            m, v = state.marginals()
            out.append(
                self.provider.grad_expected_loglik(
                    self.likelihood, Y[:, k], m, v, params,
                    key=_latent_key(key, k), indices=indices,
                )
            )
        return out

    def expected_loglik(
        self, states, Y, params, *, conditional: bool = True, key=None, indices=None
    ):
        self._check_targets(states, Y)
        total = 0.0
        for k, state in enumerate(states):
            m, v = state.marginals(conditional=conditional)
            total = total + self.provider.expected_loglik(
                self.likelihood, Y[:, k], m, v, params,
                key=_latent_key(key, k), indices=indices,
            )
        return total
