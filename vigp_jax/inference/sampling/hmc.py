# vigp_jax/inference/sampling/hmc.py
"""
Hamiltonian Monte Carlo (HMC) kernel with warm-up adaptation.

One transition = momentum refresh, ``n_leapfrog`` leapfrog steps with a
randomly jittered step size under a diagonal mass matrix, Metropolis
correction. During burn-in the step size
is tuned by dual averaging towards a target acceptance rate and the
inverse mass matrix is set from the posterior variance estimated over the
middle of the burn-in.

A trajectory whose final energy is not finite is rejected and flagged as
divergent; the current position is kept.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import lax, random


@dataclass(frozen=True)
class HMCCFG:
    """Configuration for HMC kernel."""
    step_size: float = 1e-1
    n_leapfrog: int = 10
    step_jitter: float = 0.2        # per-transition step size drawn from ε·U(1 − j, 1 + j)
    target_accept: float = 0.8
    adapt_step_size: bool = True
    adapt_mass: bool = True
    jit: bool = True


class HMCStep(NamedTuple):
    position: jnp.ndarray
    accept_prob: jnp.ndarray
    divergent: jnp.ndarray


def kinetic_energy(p, inv_mass):
    """K(p) = ½ pᵗ M⁻¹ p for a diagonal mass matrix."""
    return 0.5 * jnp.sum(inv_mass * p ** 2)


class DualAveraging:
    """Nesterov dual averaging of log step size (Hoffman & Gelman, 2014)."""

    def __init__(self, step_size: float, target: float, gamma: float = 0.05, t0: float = 10.0, kappa: float = 0.75):
        self.target = target
        self.gamma = gamma
        self.t0 = t0
        self.kappa = kappa
        self.restart(step_size)

    def restart(self, step_size: float) -> None:
        self.mu = math.log(10.0 * step_size)
        self.log_step = math.log(step_size)
        self.log_step_avg = 0.0
        self.h_bar = 0.0
        self.t = 0

    def update(self, accept_prob: float) -> float:
        self.t += 1
        eta = 1.0 / (self.t + self.t0)
        self.h_bar = (1.0 - eta) * self.h_bar + eta * (self.target - accept_prob)
        self.log_step = self.mu - math.sqrt(self.t) / self.gamma * self.h_bar
        x = self.t ** (-self.kappa)
        self.log_step_avg = x * self.log_step + (1.0 - x) * self.log_step_avg
        return math.exp(self.log_step)

    @property
    def final_step_size(self) -> float:
        return math.exp(self.log_step_avg)


class WelfordVariance:
    """Streaming elementwise mean / variance."""

    def __init__(self, shape):
        self.n = 0
        self.mean = jnp.zeros(shape)
        self.m2 = jnp.zeros(shape)

    def update(self, x) -> None:
        self.n += 1
        delta = x - self.mean
        self.mean = self.mean + delta / self.n
        self.m2 = self.m2 + delta * (x - self.mean)

    def regularised_variance(self):
        """Sample variance shrunk towards 1e-3 (as in Stan's windowed adaptation)."""
        n = self.n
        var = self.m2 / max(n - 1, 1)
        return (n / (n + 5.0)) * var + 1e-3 * (5.0 / (n + 5.0))


def build_transition(value_and_grad, n_leapfrog: int, step_jitter: float = 0.0, jit: bool = True):
    """
    transition(q, key, step_size, inv_mass) -> HMCStep

    ``value_and_grad(q)`` returns the log density and its gradient. With
    ``step_jitter`` > 0 each trajectory uses step_size·U(1 − j, 1 + j), so
    fixed-length trajectories do not lock onto the period of a Gaussian
    target.
    """

    def transition(q, key, step_size, inv_mass):
        k_mom, k_acc, k_eps = random.split(key, 3)
        if step_jitter > 0.0:
            step_size = step_size * random.uniform(
                k_eps, minval=1.0 - step_jitter, maxval=1.0 + step_jitter
            )
        p0 = random.normal(k_mom, q.shape, dtype=q.dtype) / jnp.sqrt(inv_mass)
        logp0, g0 = value_and_grad(q)

        def body_fn(i, val):
            q, p, g, _ = val
            p = p + 0.5 * step_size * g
            q = q + step_size * inv_mass * p
            logp, g = value_and_grad(q)
            p = p + 0.5 * step_size * g
            return (q, p, g, logp)

        q1, p1, _, logp1 = lax.fori_loop(0, n_leapfrog, body_fn, (q, p0, g0, logp0))

        h0 = -logp0 + kinetic_energy(p0, inv_mass)
        h1 = -logp1 + kinetic_energy(p1, inv_mass)
        log_ratio = h0 - h1
        finite = jnp.isfinite(log_ratio) & jnp.all(jnp.isfinite(q1))
        accept_prob = jnp.where(finite, jnp.minimum(1.0, jnp.exp(jnp.where(finite, log_ratio, 0.0))), 0.0)
        accept = finite & (random.uniform(k_acc) < accept_prob)
        q_next = jnp.where(accept, q1, q)
        return HMCStep(position=q_next, accept_prob=accept_prob, divergent=~finite)

    return jax.jit(transition) if jit else transition


class HMC:
    """
    Hamiltonian Monte Carlo kernel.

    The kernel holds the adapted step size and inverse mass; the sampler
    drives it one transition at a time and tells it when burn-in starts
    and ends.
    """

    def __init__(self, log_joint, cfg: HMCCFG = HMCCFG()):
        if not 0.0 <= cfg.step_jitter < 1.0:
            raise ValueError(f"step_jitter must lie in [0, 1); got {cfg.step_jitter}.")
        self.cfg = cfg
        self.log_joint = log_joint
        self.step_size = cfg.step_size
        self.inv_mass = jnp.ones(log_joint.shape)
        self._transition = build_transition(
            log_joint.value_and_grad, cfg.n_leapfrog, step_jitter=cfg.step_jitter, jit=cfg.jit
        )
        self._dual = DualAveraging(cfg.step_size, cfg.target_accept)
        self._window = (0, 0)
        self._welford = None

    def step(self, q, key) -> HMCStep:
        return self._transition(q, key, self.step_size, self.inv_mass)

    # ------------------------------------------------------------------
    # adaptation
    # ------------------------------------------------------------------
    def start_adaptation(self, n_burnin: int) -> None:
        start = int(0.15 * n_burnin)
        end = int(0.75 * n_burnin)
        self._window = (start, end) if end - start >= 10 else (0, 0)
        self._welford = WelfordVariance(self.log_joint.shape)
        self._dual.restart(self.step_size)

    def adapt(self, i: int, q, accept_prob: float) -> None:
        """Update adaptation with burn-in draw ``i`` (0-based)."""
        cfg = self.cfg
        if cfg.adapt_step_size:
            self.step_size = self._dual.update(float(accept_prob))
        start, end = self._window
        if cfg.adapt_mass and start <= i < end:
            self._welford.update(q)
            if i == end - 1:
                self.inv_mass = self._welford.regularised_variance()
                if cfg.adapt_step_size:
                    self._dual.restart(self.step_size)

    def finish_adaptation(self) -> None:
        if self.cfg.adapt_step_size and self._dual.t > 0:
            self.step_size = self._dual.final_step_size
