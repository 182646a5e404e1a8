import jax
import jax.numpy as jnp
import pytest

from vigp_jax.core.data import SupervisedData, full_batch, select_minibatch
from vigp_jax.core.errors import DimensionMismatchError
from vigp_jax.core.phi import Phi
from vigp_jax.gp.kernels.params import KernelParams
from vigp_jax.inference.optimisation import OptimizerCFG, VariationalEngine, VICFG
from vigp_jax.inference.optimisation.engine import default_optimizer


def _sparse_problem(n=200, m=10):
    X = jnp.linspace(0.0, 10.0, n)[:, None]
    Y = jnp.sin(X[:, 0]) + 0.1 * jax.random.normal(jax.random.PRNGKey(3), (n,))
    phi = Phi(
        kernel_params=KernelParams.create(1.0, 1.0),
        Z=jnp.linspace(0.0, 10.0, m)[:, None],
        likelihood_params={"noise_var": jnp.array(0.1)},
    )
    return X, Y, phi


def test_select_minibatch():
    sel = select_minibatch(jax.random.PRNGKey(0), 100, 10)
    assert len(sel) == 10
    assert jnp.all(jnp.diff(sel.indices) > 0)
    assert sel.rho == 10.0
    assert full_batch(5).rho == 1.0
    with pytest.raises(ValueError):
        select_minibatch(jax.random.PRNGKey(0), 10, 11)


def test_supervised_data_shapes():
    data = SupervisedData.from_arrays(jnp.arange(4.0), jnp.ones(4))
    assert data.X.shape == (4, 1) and data.Y.shape == (4, 1)
    assert len(data.batch(jnp.array([0, 2]))) == 2
    with pytest.raises(DimensionMismatchError):
        SupervisedData.from_arrays(jnp.zeros((4, 1, 1)))


def test_minibatch_requires_inducing_points(regression_data, gaussian_phi):
    X, Y = regression_data
    with pytest.raises(ValueError):
        VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=VICFG(n_minibatch=5))


def test_unknown_integration(regression_data, gaussian_phi):
    X, Y = regression_data
    with pytest.raises(ValueError):
        VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=VICFG(integration="laplace"))


def test_default_optimizer():
    assert default_optimizer(VICFG()).kind == "sgd"
    assert default_optimizer(VICFG()).lr == 1.0
    assert default_optimizer(VICFG(integration="quadrature")).lr == 0.5
    assert default_optimizer(VICFG(n_minibatch=10)).kind == "robbins_monro"


def test_stochastic_run_approaches_full_batch_solution():
    X, Y, phi = _sparse_problem()
    full = VariationalEngine(X, Y, "gaussian", phi).run(5)

    engine = VariationalEngine(X, Y, "gaussian", phi, cfg=VICFG(n_minibatch=50))
    assert engine.stochastic
    run = engine.run(100)
    assert run.n_iter == 100
    assert not run.converged
    assert jnp.all(jnp.isfinite(run.elbo_trace))

    err = run.states[0].mean - full.states[0].mean
    assert jnp.sqrt(jnp.mean(err ** 2)) < 0.15


def test_minibatches_are_reproducible():
    X, Y, phi = _sparse_problem(n=60, m=5)
    cfg = VICFG(n_minibatch=10, seed=4)
    a = VariationalEngine(X, Y, "gaussian", phi, cfg=cfg)
    b = VariationalEngine(X, Y, "gaussian", phi, cfg=cfg)
    for _ in range(3):
        assert jnp.array_equal(a.step().indices, b.step().indices)
    assert jnp.allclose(a.states[0].mean, b.states[0].mean)


def test_alrsvi_run():
    X, Y, phi = _sparse_problem(n=100, m=8)
    cfg = VICFG(n_minibatch=25, optimizer=OptimizerCFG(kind="alrsvi", alrsvi_tau=10.0))
    run = VariationalEngine(X, Y, "gaussian", phi, cfg=cfg).run(30)
    assert jnp.all(jnp.isfinite(run.elbo_trace))


def test_callback_stops_run(regression_data, gaussian_phi):
    X, Y = regression_data
    seen = []

    def callback(engine, terms):
        seen.append(float(terms))
        return engine.iteration >= 3

    run = VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=VICFG(tol=None)).run(10, callback)
    assert run.n_iter == 3
    assert len(seen) == 3


def test_classical_mode_ascends(gaussian_phi):
    X = jnp.linspace(0.0, 10.0, 6)[:, None]
    Y = jnp.sin(X[:, 0])
    cfg = VICFG(natural=False, optimizer=OptimizerCFG(kind="adam", lr=0.05), tol=None)
    run = VariationalEngine(X, Y, "gaussian", gaussian_phi, cfg=cfg).run(60)
    assert run.elbo_trace[-1] > run.elbo_trace[0]
