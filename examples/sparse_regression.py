# -*- coding: utf-8 -*-
"""Stochastic sparse GP regression with vigp-jax.

A noisy 1D function, 2000 points, 15 inducing locations initialised by
k-means and refined by streaming k-means on every minibatch. Kernel
hyperparameters are learned every 10 iterations.

Run from the repo root (after `pip install -e ".[examples]"`):
  python examples/sparse_regression.py
"""

from __future__ import annotations

import logging

import jax
import jax.numpy as jnp
import matplotlib.pyplot as plt

from vigp_jax import Phi, KernelParams, VariationalEngine, VICFG, HyperCFG, OptimizerCFG
from vigp_jax.gp.inducing import StreamingKMeans
from vigp_jax.gp.kernels import get as get_kernel
from vigp_jax.gp.sparsify import compute_projection


# ---------------------------------------------------------------------------
# 1) Data
# ---------------------------------------------------------------------------

def make_1d_data(key, n=2000, noise_std=0.2):
    x = jnp.sort(jax.random.uniform(key, (n,), minval=-3.0, maxval=3.0))[:, None]
    y_clean = jnp.sin(2.0 * x[:, 0]) + 0.3 * x[:, 0]
    y = y_clean + noise_std * jax.random.normal(jax.random.fold_in(key, 1), (n,))
    return x, y, y_clean


# ---------------------------------------------------------------------------
# 2) Prediction at new inputs
# ---------------------------------------------------------------------------

def predict(engine, X_star):
    state = engine.states[0]
    proj = compute_projection(
        engine.kernel, X_star, engine.phi.Z, engine.phi.kernel_params, state.prior_chol
    )
    return state.marginals(proj)


def main():
    logging.basicConfig(level=logging.INFO)
    key = jax.random.PRNGKey(0)
    X, Y, y_clean = make_1d_data(key)

    inducing = StreamingKMeans.from_data(jax.random.fold_in(key, 2), X, 15)
    phi = Phi(
        kernel_params=KernelParams.create(lengthscale=0.5, variance=1.0),
        likelihood_params={"noise_var": jnp.array(0.04)},
    )
    cfg = VICFG(
        n_minibatch=100,
        hyper=HyperCFG(frequency=10, optimizer=OptimizerCFG(kind="adam", lr=0.02)),
    )
    engine = VariationalEngine(X, Y, "gaussian", phi, cfg=cfg, inducing=inducing)
    run = engine.run(500)
    print("diagnostics:", run.diagnostics)
    print("kernel:", run.phi.kernel_params)

    X_star = jnp.linspace(-3.5, 3.5, 300)[:, None]
    mean, var = predict(engine, X_star)
    sd = jnp.sqrt(var + run.phi.likelihood_params["noise_var"])

    fig, (ax0, ax1) = plt.subplots(1, 2, figsize=(11, 4))
    ax0.scatter(X[::5, 0], Y[::5], s=3, alpha=0.3, color="gray", label="data")
    ax0.plot(X_star[:, 0], mean, color="C0", label="posterior mean")
    ax0.fill_between(X_star[:, 0], mean - 2 * sd, mean + 2 * sd, color="C0", alpha=0.2)
    ax0.plot(run.phi.Z[:, 0], jnp.full(run.phi.Z.shape[0], -2.2), "k|", ms=12, label="Z")
    ax0.legend()
    ax1.plot(run.elbo_trace)
    ax1.set_xlabel("iteration")
    ax1.set_ylabel("minibatch ELBO")
    fig.tight_layout()
    plt.show()


if __name__ == "__main__":
    main()
