# vigp_jax/runner.py
"""
One-shot entry point: (data + likelihood + φ + integration technique) -> result.

The integration technique picks the inference path:
  - "analytic" / "quadrature" / "monte_carlo": VariationalEngine
  - "sampling": SamplingUpdateStrategy (HMC or Gibbs draws of the latents)

The runner does not interpret the result beyond pulling a few common
diagnostics out of it.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Optional

from .core.phi import Phi
from .inference.optimisation import VICFG, VariationalEngine
from .inference.sampling import SamplerCFG, SamplingUpdateStrategy


@dataclass(frozen=True)
class RunCFG:
    """
    Notes:
    - `integration` overrides `vi.integration` for the variational path.
    - `n_iter` bounds the variational iterations; the sampler stops at
      TERMINAL on its own.
    """
    integration: Literal["analytic", "quadrature", "monte_carlo", "sampling"] = "analytic"
    n_iter: int = 100
    vi: VICFG = field(default_factory=VICFG)
    sampler: SamplerCFG = field(default_factory=SamplerCFG)


@dataclass
class RunOut:
    """
    `result` is the path-specific run object (VIRun or SamplingRun); the
    common fields are copied into `diagnostics`.
    """
    result: Any
    diagnostics: Dict[str, Any]


def run(
    X,
    Y,
    likelihood,
    phi: Phi,
    *,
    key=None,
    kernel="rbf",
    inducing=None,
    prior_mean: float = 0.0,
    cfg: RunCFG = RunCFG(),
) -> RunOut:
    """
    Args:
        X: inputs (N, Q)
        Y: observations (N,) or (N, L)
        likelihood: likelihood object or registry name
        phi: structural parameters
        key: PRNG key (each path seeds from its cfg if omitted)
        kernel: kernel function or registry name
        inducing: inducing-point collaborator (variational path only)
        prior_mean: constant prior mean μ₀
        cfg: RunCFG

    Returns:
        RunOut with the path-specific result and standardised diagnostics

    Examples:
        >>> phi = Phi(kernel_params=KernelParams.create(1.0, 1.0),
        ...           likelihood_params={"noise_var": 0.1})
        >>> out = run(X, Y, "gaussian", phi)
        >>> out.result.states[0].mean

        >>> out = run(X, Y, "bernoulli", phi,
        ...           cfg=RunCFG(integration="sampling", sampler=SamplerCFG(method="gibbs")))
        >>> out.result.samples.shape
    """
    if cfg.integration == "sampling":
        if inducing is not None:
            raise ValueError("inducing points are not used by the sampling path.")
        sampler = SamplingUpdateStrategy(
            X, Y, likelihood, phi, kernel=kernel, cfg=cfg.sampler, prior_mean=prior_mean, key=key
        )
        out = sampler.run()
        diagnostics: Dict[str, Any] = {"method": cfg.sampler.method}
        diagnostics["accept_rate"] = float(out.accept_rate)
        diagnostics["n_samples"] = int(out.samples.shape[0])
        diagnostics["phase"] = out.phase.value
    else:
        vi_cfg = replace(cfg.vi, integration=cfg.integration)
        engine = VariationalEngine(
            X,
            Y,
            likelihood,
            phi,
            kernel=kernel,
            cfg=vi_cfg,
            inducing=inducing,
            prior_mean=prior_mean,
            key=key,
        )
        out = engine.run(cfg.n_iter)
        diagnostics = {"method": engine.strategy.name}
        if len(out.elbo_trace) > 0:
            diagnostics["initial_elbo"] = float(out.elbo_trace[0])
            diagnostics["final_elbo"] = float(out.elbo_trace[-1])
        diagnostics["converged"] = out.converged
        diagnostics["n_iter"] = out.n_iter

    diagnostics.update(out.diagnostics)
    return RunOut(result=out, diagnostics=diagnostics)
