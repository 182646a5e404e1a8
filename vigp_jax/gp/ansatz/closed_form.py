# vigp_jax/gp/ansatz/closed_form.py
from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp

from ...core.errors import IncompatibleLikelihoodError
from ..likelihoods.base import is_analytic
from .base import check_marginals


def require_analytic(likelihood) -> None:
    if not is_analytic(likelihood):
        raise IncompatibleLikelihoodError(
            f"{likelihood!r} has no closed-form conjugate update; "
            "use integration='quadrature', 'monte_carlo' or 'sampling'."
        )


@dataclass(frozen=True)
class ClosedForm:
    """Exact expectations supplied by an AnalyticCompatible likelihood."""

    name: str = "analytic"

    def expected_loglik(self, likelihood, y, mean, var, params, *, key=None, indices=None):
        require_analytic(likelihood)
        check_marginals(y, mean, var, indices)
        return jnp.sum(likelihood.expected_loglik(y, mean, var, params))

    def grad_expected_loglik(self, likelihood, y, mean, var, params, *, key=None, indices=None):
        require_analytic(likelihood)
        check_marginals(y, mean, var, indices)
        return likelihood.grad_expected_loglik(y, mean, var, params)
