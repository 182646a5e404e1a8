# vigp_jax/inference/optimisation/optimizers.py
"""
Step rules for the variational and hyperparameter updates.

Every rule is an optax GradientTransformation. Optax minimises, so the
engine hands it the *negated* ELBO gradient; the returned updates are the
ascent steps Δ that the controller adds (possibly shrunk) to the
parameters.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, NamedTuple

import jax.numpy as jnp
import optax
from jax.tree_util import tree_leaves, tree_map


@dataclass(frozen=True)
class OptimizerCFG:
    """Configuration of one step rule."""
    kind: Literal["sgd", "momentum", "adam", "rmsprop", "robbins_monro", "alrsvi"] = "sgd"
    lr: float = 1.0
    momentum: float = 0.9
    b1: float = 0.9
    b2: float = 0.999
    eps: float = 1e-8
    decay: float = 0.9          # rmsprop
    tau: float = 1.0            # robbins_monro delay
    kappa: float = 0.51         # robbins_monro forgetting rate, in (0.5, 1]
    alrsvi_tau: float = 100.0   # alrsvi initial memory


class ALRSVIState(NamedTuple):
    count: jnp.ndarray
    g_bar: Any
    h_bar: jnp.ndarray
    tau: jnp.ndarray
    rho: jnp.ndarray


def _sq_norm(tree):
    return sum(jnp.sum(leaf ** 2) for leaf in tree_leaves(tree))


def alrsvi(tau: float = 100.0) -> optax.GradientTransformation:
    """
    Adaptive learning rate for stochastic variational inference
    (Ranganath et al., 2013).

    Running averages of the gradient ḡ and of its squared norm h̄ with memory
    τ give the step size ρ = ‖ḡ‖²/h̄, small when successive gradients
    disagree. The memory then adapts as τ ← τ(1 − ρ) + 1. The first call
    initialises ḡ and h̄ from the incoming gradient.
    """

    def init_fn(params):
        return ALRSVIState(
            count=jnp.zeros([], jnp.int32),
            g_bar=tree_map(jnp.zeros_like, params),
            h_bar=jnp.zeros([]),
            tau=jnp.asarray(tau, dtype=float),
            rho=jnp.ones([]),
        )

    def update_fn(updates, state, params=None):
        del params
        first = state.count == 0
        w = 1.0 / state.tau
        g_bar = tree_map(
            lambda gb, g: jnp.where(first, g, (1.0 - w) * gb + w * g),
            state.g_bar,
            updates,
        )
        sq = _sq_norm(updates)
        h_bar = jnp.where(first, sq, (1.0 - w) * state.h_bar + w * sq)
        rho = jnp.where(h_bar > 0.0, _sq_norm(g_bar) / jnp.maximum(h_bar, 1e-300), 1.0)
        rho = jnp.clip(rho, 0.0, 1.0)
        new_tau = jnp.where(first, state.tau, state.tau * (1.0 - rho) + 1.0)
        new_updates = tree_map(lambda g: -rho * g, updates)
        return new_updates, ALRSVIState(
            count=state.count + 1, g_bar=g_bar, h_bar=h_bar, tau=new_tau, rho=rho
        )

    return optax.GradientTransformation(init_fn, update_fn)


def robbins_monro_schedule(lr: float, tau: float, kappa: float) -> optax.Schedule:
    """ρ_t = lr · (τ + t)^(−κ)."""

    def schedule(count):
        return lr * (tau + count) ** (-kappa)

    return schedule


def build_optimizer(cfg: OptimizerCFG) -> optax.GradientTransformation:
    """Get optimizer based on configuration."""
    if cfg.kind == "sgd":
        return optax.sgd(cfg.lr)
    elif cfg.kind == "momentum":
        return optax.sgd(cfg.lr, momentum=cfg.momentum)
    elif cfg.kind == "adam":
        return optax.adam(cfg.lr, b1=cfg.b1, b2=cfg.b2, eps=cfg.eps)
    elif cfg.kind == "rmsprop":
        return optax.rmsprop(cfg.lr, decay=cfg.decay, eps=cfg.eps)
    elif cfg.kind == "robbins_monro":
        if not 0.5 < cfg.kappa <= 1.0:
            raise ValueError(f"Robbins-Monro kappa must lie in (0.5, 1]; got {cfg.kappa}.")
        return optax.sgd(robbins_monro_schedule(cfg.lr, cfg.tau, cfg.kappa))
    elif cfg.kind == "alrsvi":
        return alrsvi(cfg.alrsvi_tau)
    else:
        raise ValueError(f"Unknown optimizer: {cfg.kind}")


def ascent_updates(optimizer: optax.GradientTransformation, grads, opt_state, params=None):
    """Ascent step Δ for an ELBO gradient, and the new optimiser state."""
    neg = tree_map(lambda g: -g, grads)
    return optimizer.update(neg, opt_state, params)
