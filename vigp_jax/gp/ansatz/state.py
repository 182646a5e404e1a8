# vigp_jax/gp/ansatz/state.py
"""
Per-latent-GP variational state.

q(u) = N(μ, Σ) is held in both parameterisations:

    η₁ = Σ⁻¹ μ,    η₂ = −½ Σ⁻¹

together with the prior N(μ₀, K) it is regularised towards. Σ is symmetric
positive-definite after every mutation; the mutators reject anything else
instead of storing it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import jax.numpy as jnp

from ...core.errors import DimensionMismatchError
from ..sparsify import Projection
from ..utils import (
    cho_inverse,
    cho_solve,
    cholesky_or_nan,
    safe_cholesky,
    symmetrize,
)


def _chol_or_raise(A, what):
    L = cholesky_or_nan(A)
    if not bool(jnp.all(jnp.isfinite(L))):
        raise ValueError(f"{what} is not symmetric positive-definite.")
    return L


def _prior_factor(K):
    """(K', L) with L Lᵗ = K'; K' is K plus whatever jitter the factorisation needed."""
    L = cholesky_or_nan(K)
    if bool(jnp.all(jnp.isfinite(L))):
        return K, L
    L = safe_cholesky(K)
    return L @ L.T, L


@dataclass
class NaturalParamState:
    """
    Variational state of one latent GP over M features (inducing values in
    the sparse case, latent function values at the data otherwise).
    """
    mean: jnp.ndarray
    covariance: jnp.ndarray
    eta1: jnp.ndarray
    eta2: jnp.ndarray
    cov_chol: jnp.ndarray
    prior_mean: jnp.ndarray
    prior_covariance: jnp.ndarray
    prior_chol: jnp.ndarray
    prior_precision: jnp.ndarray
    projection: Optional[Projection] = None

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------
    @classmethod
    def from_prior(cls, K, prior_mean=None) -> NaturalParamState:
        """q(u) initialised at the prior: μ = μ₀, Σ = K."""
        K = symmetrize(jnp.asarray(K))
        M = K.shape[0]
        mu0 = jnp.zeros(M, dtype=K.dtype) if prior_mean is None else jnp.asarray(prior_mean, dtype=K.dtype)
        if K.ndim != 2 or K.shape != (M, M) or mu0.shape != (M,):
            raise DimensionMismatchError(
                f"prior covariance {K.shape} and prior mean {mu0.shape} are inconsistent."
            )
        K, L = _prior_factor(K)
        P = cho_inverse(L)
        return cls(
            mean=mu0,
            covariance=K,
            eta1=P @ mu0,
            eta2=-0.5 * P,
            cov_chol=L,
            prior_mean=mu0,
            prior_covariance=K,
            prior_chol=L,
            prior_precision=P,
        )

    # ------------------------------------------------------------------
    # mutators
    # ------------------------------------------------------------------
    def set_prior(self, K, prior_mean=None) -> None:
        """Replace the prior after a hyperparameter / inducing-point change."""
        K = symmetrize(jnp.asarray(K))
        if K.shape != self.covariance.shape:
            raise DimensionMismatchError(
                f"new prior covariance {K.shape} does not match state {self.covariance.shape}."
            )
        if prior_mean is not None:
            prior_mean = jnp.asarray(prior_mean, dtype=K.dtype)
            if prior_mean.shape != self.mean.shape:
                raise DimensionMismatchError(
                    f"new prior mean {prior_mean.shape} does not match state {self.mean.shape}."
                )
            self.prior_mean = prior_mean
        self.prior_covariance, self.prior_chol = _prior_factor(K)
        self.prior_precision = cho_inverse(self.prior_chol)

    def set_mean_covariance(self, mean, covariance) -> None:
        self._check_shapes(mean, covariance)
        covariance = symmetrize(covariance)
        L = _chol_or_raise(covariance, "covariance")
        P = cho_inverse(L)
        self.mean = mean
        self.covariance = covariance
        self.cov_chol = L
        self.eta1 = P @ mean
        self.eta2 = -0.5 * P

    def set_natural(self, eta1, eta2) -> None:
        self._check_shapes(eta1, eta2)
        eta2 = symmetrize(eta2)
        L_prec = _chol_or_raise(-2.0 * eta2, "precision -2·η₂")
        covariance = cho_inverse(L_prec)
        self.eta1 = eta1
        self.eta2 = eta2
        self.covariance = covariance
        self.cov_chol = _chol_or_raise(covariance, "covariance")
        self.mean = cho_solve(L_prec, eta1)

    def set_projection(self, projection: Optional[Projection]) -> None:
        if projection is not None and projection.kappa.shape[1] != self.n_features:
            raise DimensionMismatchError(
                f"κ has {projection.kappa.shape[1]} columns; state has {self.n_features} features."
            )
        self.projection = projection

    # ------------------------------------------------------------------
    # derived quantities
    # ------------------------------------------------------------------
    @property
    def n_features(self) -> int:
        return self.mean.shape[0]

    @property
    def precision(self) -> jnp.ndarray:
        return -2.0 * self.eta2

    def log_det_covariance(self) -> jnp.ndarray:
        return 2.0 * jnp.sum(jnp.log(jnp.diag(self.cov_chol)))

    def marginals(
        self, projection: Optional[Projection] = None, conditional: bool = True
    ) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """
        Marginal means and variances of q(f) on the current batch.

        Without a projection (full batch) these are μ and diag(Σ). With one,
        m = κμ and v = diag(κΣκᵗ) (+ k̃ when ``conditional``).
        """
        projection = self.projection if projection is None else projection
        if projection is None:
            return self.mean, jnp.diag(self.covariance)
        kappa = projection.kappa
        m = kappa @ self.mean
        v = jnp.sum((kappa @ self.covariance) * kappa, axis=1)
        if conditional:
            v = v + projection.k_tilde
        return m, v

    def _check_shapes(self, vec, mat) -> None:
        M = self.n_features
        if vec.shape != (M,) or mat.shape != (M, M):
            raise DimensionMismatchError(
                f"expected shapes ({M},) and ({M}, {M}); got {vec.shape} and {mat.shape}."
            )
