import jax
import jax.numpy as jnp
import numpy as np
import pytest

from vigp_jax.core.errors import DivergentTrajectoryWarning, DimensionMismatchError
from vigp_jax.core.phi import Phi
from vigp_jax.gp.kernels import get as get_kernel
from vigp_jax.gp.kernels.params import KernelParams
from vigp_jax.gp.likelihoods import LogDensityLikelihood
from vigp_jax.inference.sampling import (
    DualAveraging,
    GibbsCFG,
    HMCCFG,
    LogJoint,
    SamplerCFG,
    SamplerPhase,
    SamplingUpdateStrategy,
    WelfordVariance,
)

X3 = jnp.array([[0.0], [0.7], [1.4]])
PHI = Phi(kernel_params=KernelParams.create(lengthscale=1.0, variance=1.0), jitter=1e-6)


def _prior_cov():
    return get_kernel("rbf")(X3, X3, PHI.kernel_params) + 1e-6 * jnp.eye(3)


def test_log_joint_gradient():
    K = _prior_cov()
    lj = LogJoint(None, None, {}, jnp.zeros((1, 3)), [K])
    f = jnp.array([[0.3, -0.2, 0.5]])
    value, grad = lj.value_and_grad(f)
    ref = jax.scipy.stats.multivariate_normal.logpdf(f[0], jnp.zeros(3), K)
    assert jnp.allclose(value, ref)
    assert jnp.allclose(grad, jax.grad(lj)(f))
    with pytest.raises(DimensionMismatchError):
        lj.check(jnp.zeros((2, 3)))


@pytest.mark.parametrize("seed", [0, 1])
def test_hmc_recovers_prior_moments(seed):
    cfg = SamplerCFG(method="hmc", n_burnin=300, thin=1, n_samples=3000, seed=seed)
    run = SamplingUpdateStrategy(X3, None, None, PHI, cfg=cfg).run()
    assert run.phase is SamplerPhase.TERMINAL
    samples = run.samples[:, 0, :]
    assert samples.shape == (3000, 3)
    assert jnp.all(jnp.abs(jnp.mean(samples, axis=0)) < 0.15)
    assert jnp.allclose(jnp.cov(samples.T), _prior_cov(), atol=0.2)
    assert 0.3 < run.accept_rate <= 1.0


def test_gibbs_recovers_prior_moments():
    cfg = SamplerCFG(method="gibbs", n_burnin=50, thin=1, n_samples=1500)
    run = SamplingUpdateStrategy(X3, None, None, PHI, cfg=cfg).run()
    samples = run.samples[:, 0, :]
    assert jnp.all(jnp.abs(jnp.mean(samples, axis=0)) < 0.2)
    assert jnp.allclose(jnp.cov(samples.T), _prior_cov(), atol=0.25)
    assert run.accept_rate == 1.0


def test_gibbs_follows_the_likelihood():
    X = jnp.array([[0.0], [3.0]])
    Y = jnp.array([2.0, -2.0])
    phi = PHI.replace(likelihood_params={"noise_var": jnp.array(0.05)})
    cfg = SamplerCFG(method="gibbs", n_burnin=50, thin=2, n_samples=300)
    run = SamplingUpdateStrategy(X, Y, "gaussian", phi, cfg=cfg).run()
    mean = jnp.mean(run.samples[:, 0, :], axis=0)
    # conjugate posterior mean K (K + σ²I)⁻¹ y
    K = get_kernel("rbf")(X, X, phi.kernel_params) + 1e-6 * jnp.eye(2)
    expected = K @ jnp.linalg.solve(K + 0.05 * jnp.eye(2), Y)
    assert jnp.allclose(mean, expected, atol=0.15)


def test_divergent_trajectories_are_rejected():
    lik = LogDensityLikelihood(lambda y, f, p: jnp.log1p(-f ** 2))
    hmc = HMCCFG(step_size=3.0, adapt_step_size=False, adapt_mass=False)
    cfg = SamplerCFG(method="hmc", n_burnin=0, thin=1, n_samples=20, hmc=hmc)
    sampler = SamplingUpdateStrategy(jnp.zeros((1, 1)), jnp.zeros(1), lik, PHI, cfg=cfg)
    with pytest.warns(DivergentTrajectoryWarning):
        run = sampler.run()
    assert run.diagnostics["divergent_trajectory"] > 0
    assert jnp.all(jnp.abs(run.samples) < 1.0)


def test_phases_and_rolling_store():
    cfg = SamplerCFG(method="gibbs", n_burnin=5, thin=2, n_samples=3, store_size=2)
    sampler = SamplingUpdateStrategy(X3, None, None, PHI, cfg=cfg)
    assert sampler.phase is SamplerPhase.BURN_IN
    for _ in range(5):
        sampler.step()
    assert sampler.phase is SamplerPhase.SAMPLING
    assert sampler.samples.shape == (0, 1, 3)
    run = sampler.run()
    assert run.phase is SamplerPhase.TERMINAL
    assert run.n_steps == 5 + 2 * 3
    assert run.samples.shape == (2, 1, 3)
    assert all(isinstance(s, np.ndarray) for s in sampler.store)
    assert jnp.allclose(run.samples[-1], sampler.store[-1])
    assert sampler.step() is SamplerPhase.TERMINAL
    assert sampler.n_steps == 11


def test_run_can_stop_early():
    cfg = SamplerCFG(method="gibbs", n_burnin=10, thin=1, n_samples=5)
    sampler = SamplingUpdateStrategy(X3, None, None, PHI, cfg=cfg)
    run = sampler.run(max_steps=4)
    assert run.phase is SamplerPhase.BURN_IN
    assert run.n_steps == 4


def test_invalid_configuration():
    with pytest.raises(ValueError):
        SamplingUpdateStrategy(X3, None, None, PHI, cfg=SamplerCFG(thin=0))
    with pytest.raises(ValueError):
        SamplingUpdateStrategy(X3, None, None, PHI, cfg=SamplerCFG(method="nuts"))
    with pytest.raises(ValueError):
        SamplingUpdateStrategy(X3, None, None, PHI, cfg=SamplerCFG(hmc=HMCCFG(step_jitter=1.0)))
    with pytest.raises(DimensionMismatchError):
        SamplingUpdateStrategy(X3, None, None, PHI, init=jnp.zeros((1, 4)))


def test_dual_averaging_moves_towards_target():
    da = DualAveraging(step_size=1.0, target=0.8)
    for _ in range(50):
        da.update(0.1)
    assert da.final_step_size < 1.0
    da.restart(0.01)
    for _ in range(50):
        da.update(1.0)
    assert da.final_step_size > 0.01


def test_welford_variance():
    xs = jax.random.normal(jax.random.PRNGKey(0), (500, 2)) * jnp.array([1.0, 3.0])
    w = WelfordVariance((2,))
    for x in xs:
        w.update(x)
    assert jnp.allclose(w.mean, jnp.mean(xs, axis=0))
    assert jnp.allclose(w.m2 / (w.n - 1), jnp.var(xs, axis=0, ddof=1))
    assert jnp.all(w.regularised_variance() > 0)


def test_large_store_stacks_on_host():
    cfg = SamplerCFG(method="gibbs", n_burnin=0, thin=1, n_samples=5000)
    sampler = SamplingUpdateStrategy(X3, None, None, PHI, cfg=cfg)
    draws = np.random.default_rng(0).normal(size=(5000, 1, 3))
    sampler.store.extend(draws)
    samples = sampler.samples
    assert samples.shape == (5000, 1, 3)
    assert jnp.allclose(samples, draws)
