# vigp_jax/inference/optimisation/controller.py
"""
Global update controller.

Applies per-latent natural gradients to the variational states through an
optax step rule, with a step-size back-off on the covariance part:

    1. the mean part Δ₁ is applied as proposed;
    2. the covariance part is scaled by the largest α ∈ {1, ½, ¼, ...},
       α ≥ min_step, whose result is symmetric positive-definite;
    3. if no such α exists the covariance part is dropped for this
       iteration and a NonPositiveDefiniteCovarianceWarning is recorded.

Natural mode steps (η₁, η₂) along the natural gradient and checks the
precision −2η₂; classical mode steps (μ, Σ) along the Euclidean gradient
and checks Σ itself. Both checks guarantee Σ is SPD.

All latent GPs' proposals are formed before any state is written, so an
iteration commits as a whole.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import jax.numpy as jnp
import optax

from ...core.errors import (
    Diagnostics,
    DimensionMismatchError,
    NonPositiveDefiniteCovarianceWarning,
)
from ...gp.ansatz.state import NaturalParamState
from ...gp.utils import cho_inverse, cholesky_or_nan, is_positive_definite, symmetrize
from .natural import GradientAccumulator, NaturalGradient, to_natural_direction
from .optimizers import ascent_updates

logger = logging.getLogger(__name__)

MIN_STEP = 1e-8


def _precision_feasible(precision) -> bool:
    """Precision and the covariance it implies both factorise."""
    L = cholesky_or_nan(precision)
    if not bool(jnp.all(jnp.isfinite(L))):
        return False
    return is_positive_definite(cho_inverse(L))


def backoff(is_feasible: Callable[[float], bool], min_step: float = MIN_STEP) -> Optional[float]:
    """Largest α = 2^-k ≥ min_step with ``is_feasible(α)``, or None."""
    alpha = 1.0
    while alpha >= min_step:
        if is_feasible(alpha):
            return alpha
        alpha *= 0.5
    return None


@dataclass
class _Proposal:
    first: jnp.ndarray
    second: jnp.ndarray
    opt_state: Any
    alpha: Optional[float]


class GlobalUpdateController:
    """
    Args:
        optimizer: optax step rule, one state per latent GP
        natural: step natural parameters (True) or mean/covariance (False)
        min_step: smallest covariance multiplier tried by the back-off
        diagnostics: shared Diagnostics record (a fresh one if omitted)
    """

    def __init__(
        self,
        optimizer: optax.GradientTransformation,
        *,
        natural: bool = True,
        min_step: float = MIN_STEP,
        diagnostics: Optional[Diagnostics] = None,
    ):
        if not 0.0 < min_step <= 1.0:
            raise ValueError(f"min_step must lie in (0, 1]; got {min_step}.")
        self.optimizer = optimizer
        self.natural = natural
        self.min_step = min_step
        self.diagnostics = Diagnostics() if diagnostics is None else diagnostics

    def _params(self, state: NaturalParamState):
        if self.natural:
            return (state.eta1, state.eta2)
        return (state.mean, state.covariance)

    def init(self, states: Sequence[NaturalParamState]) -> List[Any]:
        """One optimiser state per latent GP."""
        return [self.optimizer.init(self._params(s)) for s in states]

    def _propose(self, k: int, state: NaturalParamState, grad: NaturalGradient, opt_state) -> _Proposal:
        M = state.n_features
        if grad.eta1.shape != (M,) or grad.eta2.shape != (M, M):
            raise DimensionMismatchError(
                f"latent {k}: gradient shapes {grad.eta1.shape}, {grad.eta2.shape} "
                f"do not match a state with {M} features."
            )
        if self.natural:
            grad = to_natural_direction(grad, state.mean)
        params = self._params(state)
        (d1, d2), new_opt_state = ascent_updates(
            self.optimizer, (grad.eta1, grad.eta2), opt_state, params
        )
        d2 = symmetrize(d2)
        first = params[0] + d1

        if self.natural:
            feasible = lambda a: _precision_feasible(-2.0 * (params[1] + a * d2))
        else:
            feasible = lambda a: is_positive_definite(params[1] + a * d2)
        alpha = backoff(feasible, self.min_step)
        second = params[1] if alpha is None else params[1] + alpha * d2
        return _Proposal(first=first, second=second, opt_state=new_opt_state, alpha=alpha)

    def apply(
        self,
        states: Sequence[NaturalParamState],
        grads: GradientAccumulator,
        opt_states: Sequence[Any],
    ) -> List[Any]:
        """
        Update every state in place and return the new optimiser states.

        Returns:
            list of optimiser states, aligned with ``states``
        """
        if len(opt_states) != len(states) or set(grads) != set(range(len(states))):
            raise DimensionMismatchError(
                f"{len(states)} latent GP(s), {len(opt_states)} optimiser state(s), "
                f"gradients for {sorted(grads)}."
            )
        proposals = [
            self._propose(k, s, grads[k], opt_states[k]) for k, s in enumerate(states)
        ]

        for k, (state, prop) in enumerate(zip(states, proposals)):
            if prop.alpha is None:
                self.diagnostics.record(
                    "covariance_update_skipped",
                    f"latent {k}: no step multiplier >= {self.min_step:g} keeps the "
                    "covariance positive-definite; applying the mean update only.",
                    NonPositiveDefiniteCovarianceWarning,
                )
            elif prop.alpha < 1.0:
                self.diagnostics.counts["covariance_step_shrunk"] += 1
                logger.debug("latent %d: covariance step shrunk to alpha=%g", k, prop.alpha)
            if self.natural:
                state.set_natural(prop.first, prop.second)
            else:
                state.set_mean_covariance(prop.first, prop.second)
        return [p.opt_state for p in proposals]
