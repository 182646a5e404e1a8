# vigp_jax/inference/optimisation/elbo.py
"""
Evidence lower bound.

    ELBO = ρ · E_q[log p(y | f)] − KL(q(u) ‖ p(u)) − extra_correction

In the sparse case E_q is evaluated under the projected marginals
N(κμ, diag(κΣκᵗ)) and

    extra_correction = ρ · (E_proj − E_full)

where E_full also carries the conditional variance k̃ = diag(K_nn − Q_nn).
For a Gaussian likelihood this is the trace term ρ · tr(K_nn − Q_nn) / 2σ²
of the collapsed sparse bound; in general it is the slack between the
projected and the full marginal expectation. The total therefore equals
ρ · E_full − KL, the standard sparse variational bound. Without inducing
points the correction is zero.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import jax.numpy as jnp

from ...gp.ansatz.state import NaturalParamState
from ...gp.utils import logdet_from_chol
from ..base import UpdateStrategy


@dataclass(frozen=True)
class ELBOTerms:
    expected_loglik: jnp.ndarray
    kl: jnp.ndarray
    extra_correction: jnp.ndarray
    rho: float = 1.0

    @property
    def elbo(self) -> jnp.ndarray:
        return self.rho * self.expected_loglik - self.kl - self.extra_correction

    def __float__(self) -> float:
        return float(self.elbo)


def gaussian_kl(state: NaturalParamState) -> jnp.ndarray:
    """
    KL(N(μ, Σ) ‖ N(μ₀, K))
        = ½[tr(K⁻¹Σ) + (μ−μ₀)ᵗK⁻¹(μ−μ₀) − M + log|K| − log|Σ|]
    """
    P = state.prior_precision
    delta = state.mean - state.prior_mean
    trace = jnp.sum(P * state.covariance)
    quad = delta @ P @ delta
    logdet_K = logdet_from_chol(state.prior_chol)
    return 0.5 * (trace + quad - state.n_features + logdet_K - state.log_det_covariance())


class ELBOAccumulator:
    """Combines the strategy's expected log-likelihood with the KL terms."""

    def __init__(self, strategy: UpdateStrategy):
        self.strategy = strategy

    def compute(
        self,
        states: Sequence[NaturalParamState],
        Y,
        params,
        rho: float = 1.0,
        *,
        key=None,
        indices=None,
    ) -> ELBOTerms:
        kl = sum(gaussian_kl(s) for s in states)
        sparse = any(s.projection is not None for s in states)
        e_proj = self.strategy.expected_loglik(
            states, Y, params, conditional=False, key=key, indices=indices
        )
        if sparse:
            e_full = self.strategy.expected_loglik(
                states, Y, params, conditional=True, key=key, indices=indices
            )
            extra = rho * (e_proj - e_full)
        else:
            extra = jnp.zeros_like(e_proj)
        return ELBOTerms(expected_loglik=e_proj, kl=kl, extra_correction=extra, rho=rho)
