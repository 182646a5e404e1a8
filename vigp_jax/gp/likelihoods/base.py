# vigp_jax/gp/likelihoods/base.py
"""
Likelihood interface, capability tags and registry.

Every likelihood implements ``log_prob_1d(y, f, params)`` for one scalar
observation. Strategies select behaviour by capability:

- AnalyticCompatible: closed-form expected log-likelihood and its
  gradients with respect to marginal mean and variance
  (conjugate or conditionally conjugate).
- NumericallyIntegrable: ``log_prob_1d`` is smooth enough in f for
  Gauss-Hermite / Monte Carlo expectations and their derivatives.
- SamplingOnly: only the log density is usable (sampling mode).
"""
from __future__ import annotations

import jax

_LIKELIHOOD_REGISTRY = {}


def register(name, likelihood):
    """
    Register a likelihood object under a string key.
    """
    if name in _LIKELIHOOD_REGISTRY:
        raise KeyError(f"Likelihood '{name}' already registered.")
    _LIKELIHOOD_REGISTRY[name] = likelihood


def get(name):
    """
    Retrieve a likelihood by name; likelihood objects pass through unchanged.
    """
    if isinstance(name, Likelihood):
        return name
    try:
        return _LIKELIHOOD_REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown likelihood '{name}'. "
            f"Available: {list(_LIKELIHOOD_REGISTRY.keys())}"
        )


class Likelihood:
    """Observation model p(y | f, params) for a single latent value f."""

    name: str = "likelihood"

    def log_prob_1d(self, y, f, params):
        raise NotImplementedError

    def log_prob(self, y, f, params):
        """Pointwise log p(y_i | f_i) for vectors y, f."""
        return jax.vmap(lambda yi, fi: self.log_prob_1d(yi, fi, params))(y, f)

    def __repr__(self):
        return f"{type(self).__name__}()"


class AnalyticCompatible:
    """Mixin: closed-form expectations under N(m, v)."""

    def expected_loglik(self, y, m, v, params):
        """Pointwise E_{N(m, v)}[log p(y | f)]."""
        raise NotImplementedError

    def grad_expected_loglik(self, y, m, v, params):
        """Pointwise (∂E/∂m, ∂E/∂v)."""
        raise NotImplementedError


class NumericallyIntegrable:
    """Mixin: usable with quadrature and Monte Carlo expectations."""


class SamplingOnly:
    """Mixin: only the log density may be used."""


def is_analytic(likelihood) -> bool:
    return isinstance(likelihood, AnalyticCompatible)


def is_integrable(likelihood) -> bool:
    return isinstance(likelihood, NumericallyIntegrable)
