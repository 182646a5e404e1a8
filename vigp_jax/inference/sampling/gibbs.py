# vigp_jax/inference/sampling/gibbs.py
"""
Slice-within-Gibbs over latent coordinates.

One sweep visits every coordinate f_ki in turn. Under the GP prior with
precision Λ = K⁻¹ the conditional prior of coordinate i is

    f_i | f_-i ~ N(c_i, 1/Λ_ii),   c_i = μ₀_i − (1/Λ_ii) Σ_{j≠i} Λ_ij (f_j − μ₀_j)

and the coordinate is resampled from that times p(y_i | f_i) with a
univariate slice sampler (stepping out, then shrinkage; Neal, 2003).
Points where the conditional log density is not finite are outside the
slice.
"""
from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp
from jax import lax, random

from .hmc import HMCStep


@dataclass(frozen=True)
class GibbsCFG:
    """Configuration for the slice-within-Gibbs sweep."""
    width: float = 2.0          # initial bracket, in conditional standard deviations
    max_steps: int = 20         # stepping-out limit per coordinate
    max_shrink: int = 100       # shrinkage limit; the coordinate is kept if exhausted
    jit: bool = True


def build_sweep(log_joint, cfg: GibbsCFG = GibbsCFG()):
    """sweep(f, key) -> f after one pass over all L·N coordinates."""
    likelihood = log_joint.likelihood
    Y = log_joint.Y
    params = log_joint.params
    mu0 = log_joint.prior_means
    precs = log_joint.prior_precisions
    L, N = log_joint.shape

    def loglik(k, i, x):
        if likelihood is None:
            return jnp.zeros_like(x)
        return likelihood.log_prob_1d(Y[i, k], x, params)

    def coordinate_update(idx, carry):
        f, key = carry
        k = idx // N
        i = idx % N
        key, k_u, k_w, k_j, k_s = random.split(key, 5)

        Lam = precs[k]
        delta = f[k] - mu0[k]
        var_c = 1.0 / Lam[i, i]
        c = mu0[k, i] - var_c * (Lam[i] @ delta - Lam[i, i] * delta[i])

        def logc(x):
            v = loglik(k, i, x) - 0.5 * (x - c) ** 2 / var_c
            return jnp.where(jnp.isfinite(v), v, -jnp.inf)

        x0 = f[k, i]
        log_u = logc(x0) - random.exponential(k_u)

        # stepping out
        w = cfg.width * jnp.sqrt(var_c)
        left = x0 - w * random.uniform(k_w)
        right = left + w
        j = jnp.floor(cfg.max_steps * random.uniform(k_j)).astype(jnp.int32)
        m = cfg.max_steps - 1 - j
        left, _ = lax.while_loop(
            lambda s: (s[1] > 0) & (logc(s[0]) > log_u),
            lambda s: (s[0] - w, s[1] - 1),
            (left, j),
        )
        right, _ = lax.while_loop(
            lambda s: (s[1] > 0) & (logc(s[0]) > log_u),
            lambda s: (s[0] + w, s[1] - 1),
            (right, m),
        )

        # shrinkage
        def shrink_cond(s):
            _, _, _, done, _, it = s
            return (~done) & (it < cfg.max_shrink)

        def shrink_body(s):
            lo, hi, x, _, key, it = s
            key, sub = random.split(key)
            x1 = random.uniform(sub, minval=lo, maxval=hi)
            inside = logc(x1) > log_u
            lo = jnp.where(~inside & (x1 < x0), x1, lo)
            hi = jnp.where(~inside & (x1 >= x0), x1, hi)
            return (lo, hi, jnp.where(inside, x1, x), inside, key, it + 1)

        _, _, x_new, _, _, _ = lax.while_loop(
            shrink_cond, shrink_body, (left, right, x0, jnp.array(False), k_s, jnp.int32(0))
        )
        return f.at[k, i].set(x_new), key

    def sweep(f, key):
        f, _ = lax.fori_loop(0, L * N, coordinate_update, (f, key))
        return f

    return jax.jit(sweep) if cfg.jit else sweep


class GibbsSampler:
    """Slice-within-Gibbs kernel with the same driving interface as HMC."""

    def __init__(self, log_joint, cfg: GibbsCFG = GibbsCFG()):
        self.cfg = cfg
        self.log_joint = log_joint
        self._sweep = build_sweep(log_joint, cfg)

    def step(self, q, key):
        q_new = self._sweep(q, key)
        return HMCStep(position=q_new, accept_prob=jnp.ones(()), divergent=jnp.array(False))

    def start_adaptation(self, n_burnin: int) -> None:
        pass

    def adapt(self, i: int, q, accept_prob: float) -> None:
        pass

    def finish_adaptation(self) -> None:
        pass
