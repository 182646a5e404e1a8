# -*- coding: utf-8 -*-
"""Binary GP classification three ways.

  - analytic: Pólya-Gamma augmented natural-gradient updates
  - quadrature: Gauss-Hermite expectations of the exact Bernoulli likelihood
  - sampling: slice-within-Gibbs draws from the exact joint

Run from the repo root (after `pip install -e ".[examples]"`):
  python examples/classification.py
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
import matplotlib.pyplot as plt

from vigp_jax import Phi, KernelParams, RunCFG, SamplerCFG, GibbsCFG, VICFG, run


def make_data(key, n=60):
    x = jnp.sort(jax.random.uniform(key, (n,), minval=-4.0, maxval=4.0))[:, None]
    p = jax.nn.sigmoid(3.0 * jnp.sin(x[:, 0]))
    y = jax.random.bernoulli(jax.random.fold_in(key, 1), p).astype(jnp.float64)
    return x, y, p


def main():
    key = jax.random.PRNGKey(1)
    X, Y, p_true = make_data(key)
    phi = Phi(kernel_params=KernelParams.create(lengthscale=1.0, variance=4.0))

    results = {}
    for integration in ("analytic", "quadrature"):
        out = run(X, Y, "bernoulli", phi, cfg=RunCFG(integration=integration, n_iter=200, vi=VICFG(tol=1e-7)))
        print(integration, out.diagnostics)
        state = out.result.states[0]
        results[integration] = (state.mean, jnp.sqrt(jnp.diag(state.covariance)))

    cfg = RunCFG(
        integration="sampling",
        sampler=SamplerCFG(method="gibbs", n_burnin=200, thin=5, n_samples=400, gibbs=GibbsCFG()),
    )
    out = run(X, Y, "bernoulli", phi, cfg=cfg)
    print("sampling", out.diagnostics)
    f = out.result.samples[:, 0, :]
    results["sampling"] = (jnp.mean(f, axis=0), jnp.std(f, axis=0))

    fig, ax = plt.subplots(figsize=(7, 4))
    ax.scatter(X[:, 0], Y, s=10, color="gray", label="labels")
    ax.plot(X[:, 0], p_true, "k--", label="true p")
    for i, (name, (mean, _)) in enumerate(results.items()):
        ax.plot(X[:, 0], jax.nn.sigmoid(mean), color=f"C{i}", label=name)
    ax.legend()
    fig.tight_layout()
    plt.show()


if __name__ == "__main__":
    main()
