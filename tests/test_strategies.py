import jax
import jax.numpy as jnp
import pytest
from jax.scipy.stats import multivariate_normal

from vigp_jax.core.errors import DimensionMismatchError, IncompatibleLikelihoodError
from vigp_jax.core.phi import Phi
from vigp_jax.gp.ansatz import NaturalParamState
from vigp_jax.gp.kernels import get as get_kernel
from vigp_jax.gp.kernels.params import KernelParams
from vigp_jax.gp.likelihoods import get as get_likelihood, LogDensityLikelihood
from vigp_jax.inference import UpdateStrategy
from vigp_jax.inference.optimisation import (
    AnalyticUpdateStrategy,
    NumericalUpdateStrategy,
    OptimizerCFG,
    VariationalEngine,
    VICFG,
)


def _exact_posterior_mean(X, Y, phi):
    K = get_kernel("rbf")(X, X, phi.kernel_params) + phi.jitter * jnp.eye(X.shape[0])
    noise = phi.likelihood_params["noise_var"]
    return K @ jnp.linalg.solve(K + noise * jnp.eye(X.shape[0]), Y)


def test_analytic_rejects_non_conjugate():
    with pytest.raises(IncompatibleLikelihoodError):
        AnalyticUpdateStrategy(get_likelihood("poisson"))


def test_numerical_rejects_sampling_only():
    custom = LogDensityLikelihood(lambda y, f, p: -jnp.abs(y - f))
    with pytest.raises(IncompatibleLikelihoodError):
        NumericalUpdateStrategy(custom, "quadrature")
    with pytest.raises(ValueError):
        NumericalUpdateStrategy(get_likelihood("poisson"), "trapezoid")


def test_engine_rejects_incompatible_likelihood(regression_data, gaussian_phi):
    X, Y = regression_data
    with pytest.raises(IncompatibleLikelihoodError):
        VariationalEngine(X, jnp.round(jnp.abs(Y) * 3), "poisson", gaussian_phi)


def test_exact_recovery_in_one_step(regression_data, gaussian_phi):
    X, Y = regression_data
    engine = VariationalEngine(X, Y, "gaussian", gaussian_phi)
    engine.step()
    expected = _exact_posterior_mean(X, Y, gaussian_phi)
    assert jnp.allclose(engine.states[0].mean, expected, atol=1e-6)

    run = engine.run(5)
    assert run.converged
    assert jnp.allclose(run.states[0].mean, expected, atol=1e-6)


def test_elbo_is_log_marginal_likelihood_at_optimum(regression_data, gaussian_phi):
    X, Y = regression_data
    engine = VariationalEngine(X, Y, "gaussian", gaussian_phi)
    engine.step()
    K = get_kernel("rbf")(X, X, gaussian_phi.kernel_params) + 1e-6 * jnp.eye(20)
    log_ml = multivariate_normal.logpdf(Y, jnp.zeros(20), K + 0.1 * jnp.eye(20))
    assert jnp.allclose(engine.elbo().elbo, log_ml, atol=1e-5)


def test_elbo_monotone_with_partial_steps(regression_data, gaussian_phi):
    X, Y = regression_data
    cfg = VICFG(optimizer=OptimizerCFG(kind="sgd", lr=0.5), tol=None)
    run = VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=cfg).run(50)
    assert run.n_iter == 50
    assert jnp.all(jnp.diff(run.elbo_trace) >= -1e-7)


def test_elbo_monotone_bernoulli():
    X = jnp.linspace(-3.0, 3.0, 14)[:, None]
    Y = (X[:, 0] > 0).astype(float)
    phi = Phi(kernel_params=KernelParams.create(1.0, 2.0))
    run = VariationalEngine(X, Y, "bernoulli", phi, cfg=VICFG(tol=None)).run(50)
    assert jnp.all(jnp.isfinite(run.elbo_trace))
    assert jnp.all(jnp.diff(run.elbo_trace) >= -1e-7)
    # latent mean follows the labels
    assert jnp.all((run.states[0].mean > 0) == (Y > 0))


def test_quadrature_matches_analytic(regression_data, gaussian_phi):
    X, Y = regression_data
    cfg = VICFG(integration="quadrature", optimizer=OptimizerCFG(kind="sgd", lr=1.0), tol=None)
    run = VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=cfg).run(3)
    expected = _exact_posterior_mean(X, Y, gaussian_phi)
    assert jnp.allclose(run.states[0].mean, expected, atol=1e-3)


def test_monte_carlo_poisson_runs():
    X = jnp.linspace(0.0, 5.0, 12)[:, None]
    Y = jnp.array([1.0, 0.0, 2.0, 3.0, 2.0, 5.0, 4.0, 6.0, 3.0, 2.0, 1.0, 1.0])
    phi = Phi(kernel_params=KernelParams.create(1.5, 1.0))
    cfg = VICFG(integration="monte_carlo", n_mc=500, tol=None)
    run = VariationalEngine(X, Y, "poisson", phi, cfg=cfg).run(20)
    assert jnp.all(jnp.isfinite(run.elbo_trace))
    rate = jnp.exp(run.states[0].mean)
    assert rate[5] > rate[1]

    quad = VariationalEngine(X, Y, "poisson", phi, cfg=VICFG(integration="quadrature", tol=None)).run(20)
    assert jnp.allclose(run.states[0].mean, quad.states[0].mean, atol=0.1)


def test_sparse_with_all_points_matches_full():
    X = jnp.linspace(0.0, 10.0, 8)[:, None]
    Y = jnp.cos(X[:, 0])
    params = KernelParams.create(1.0, 1.0)
    lik = {"noise_var": jnp.array(0.1)}
    full = Phi(kernel_params=params, likelihood_params=lik, jitter=1e-8)
    sparse = full.replace(Z=X)

    e_full = VariationalEngine(X, Y, "gaussian", full)
    e_sparse = VariationalEngine(X, Y, "gaussian", sparse)
    r_full = e_full.run(5)
    r_sparse = e_sparse.run(5)

    e_sparse._project(jnp.arange(8))
    m_sparse, _ = e_sparse.states[0].marginals()
    assert jnp.allclose(m_sparse, r_full.states[0].mean, atol=1e-5)
    assert jnp.allclose(r_sparse.elbo_trace[-1], r_full.elbo_trace[-1], atol=1e-4)


def test_sparse_elbo_correction_is_trace_term():
    X = jnp.linspace(0.0, 5.0, 10)[:, None]
    Y = jnp.sin(X[:, 0])
    Z = jnp.array([[0.5], [2.5], [4.5]])
    phi = Phi(
        kernel_params=KernelParams.create(1.0, 1.0),
        Z=Z,
        likelihood_params={"noise_var": jnp.array(0.2)},
    )
    engine = VariationalEngine(X, Y, "gaussian", phi)
    engine.step()
    terms = engine.elbo()
    k_tilde = engine.states[0].projection.k_tilde
    assert jnp.allclose(terms.extra_correction, jnp.sum(k_tilde) / (2 * 0.2))
    assert terms.extra_correction > 0


def test_gradient_shape_mismatch():
    K = jnp.eye(3)
    state = NaturalParamState.from_prior(K)
    strategy = AnalyticUpdateStrategy(get_likelihood("gaussian"))
    with pytest.raises(DimensionMismatchError):
        strategy.compute_gradients([state], jnp.zeros((4, 1)), {"noise_var": 0.1})
    with pytest.raises(DimensionMismatchError):
        strategy.compute_gradients([state], jnp.zeros((3, 2)), {"noise_var": 0.1})


def test_construction_shape_checks(regression_data, gaussian_phi):
    X, Y = regression_data
    with pytest.raises(DimensionMismatchError):
        VariationalEngine(X, Y[:-1], "gaussian", gaussian_phi)
    with pytest.raises(DimensionMismatchError):
        VariationalEngine(X, Y, "gaussian", gaussian_phi.replace(Z=jnp.zeros((3, 2))))
    two = gaussian_phi.replace(kernel_params=(gaussian_phi.kernel_params,) * 2)
    with pytest.raises(DimensionMismatchError):
        VariationalEngine(X, Y, "gaussian", two)


def test_multiple_latents(regression_data):
    X, y = regression_data
    Y = jnp.stack([y, jnp.cos(X[:, 0])], axis=1)
    params = (KernelParams.create(1.0, 1.0), KernelParams.create(2.0, 0.5))
    phi = Phi(kernel_params=params, likelihood_params={"noise_var": jnp.array(0.1)})
    run = VariationalEngine(X, Y, "gaussian", phi).run(5)
    assert len(run.states) == 2
    for k in range(2):
        single = phi.replace(kernel_params=params[k])
        assert jnp.allclose(run.states[k].mean, _exact_posterior_mean(X, Y[:, k], single), atol=1e-6)


@pytest.mark.parametrize("integration", ["analytic", "quadrature", "monte_carlo"])
def test_engine_strategy_satisfies_protocol(regression_data, gaussian_phi, integration):
    X, Y = regression_data
    engine = VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=VICFG(integration=integration))
    assert isinstance(engine.strategy, UpdateStrategy)
    assert engine.accumulator.strategy is engine.strategy
