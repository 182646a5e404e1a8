import warnings

import jax
import jax.numpy as jnp
import optax
import pytest

from vigp_jax.core.errors import DimensionMismatchError, NonPositiveDefiniteCovarianceWarning
from vigp_jax.gp.ansatz import NaturalParamState
from vigp_jax.gp.utils import is_positive_definite
from vigp_jax.inference.optimisation import GlobalUpdateController, NaturalGradient, backoff


def _identity_state(m=3):
    return NaturalParamState.from_prior(jnp.eye(m))


def test_backoff_halves():
    assert backoff(lambda a: a <= 0.3) == 0.25
    assert backoff(lambda a: True) == 1.0
    assert backoff(lambda a: False) is None
    assert backoff(lambda a: a < 1e-3, min_step=1e-2) is None


def test_classical_step_is_halved_until_spd():
    state = _identity_state()
    controller = GlobalUpdateController(optax.sgd(1.0), natural=False)
    opt_states = controller.init([state])
    grads = {0: NaturalGradient(eta1=jnp.zeros(3), eta2=-1.5 * jnp.eye(3))}
    controller.apply([state], grads, opt_states)
    assert jnp.allclose(state.covariance, 0.25 * jnp.eye(3))
    assert controller.diagnostics["covariance_step_shrunk"] == 1
    assert controller.diagnostics["covariance_update_skipped"] == 0


def test_infeasible_covariance_step_keeps_mean_update():
    state = _identity_state()
    controller = GlobalUpdateController(optax.sgd(1.0), natural=False)
    opt_states = controller.init([state])
    grads = {0: NaturalGradient(eta1=jnp.ones(3), eta2=-1e12 * jnp.eye(3))}
    with pytest.warns(NonPositiveDefiniteCovarianceWarning):
        controller.apply([state], grads, opt_states)
    assert jnp.allclose(state.covariance, jnp.eye(3))
    assert jnp.allclose(state.mean, jnp.ones(3))
    assert controller.diagnostics["covariance_update_skipped"] == 1


def test_infeasible_natural_step_warns():
    state = _identity_state()
    controller = GlobalUpdateController(optax.sgd(1.0), natural=True)
    opt_states = controller.init([state])
    grads = {0: NaturalGradient(eta1=jnp.ones(3), eta2=1e12 * jnp.eye(3))}
    with pytest.warns(NonPositiveDefiniteCovarianceWarning):
        controller.apply([state], grads, opt_states)
    assert jnp.allclose(state.eta2, -0.5 * jnp.eye(3))
    assert jnp.allclose(state.covariance, jnp.eye(3))
    assert jnp.allclose(state.mean, jnp.ones(3))


def test_warnings_are_rate_limited():
    state = _identity_state(2)
    controller = GlobalUpdateController(optax.sgd(1.0), natural=False)
    controller.diagnostics.max_warnings = 2
    opt_states = controller.init([state])
    grads = {0: NaturalGradient(eta1=jnp.zeros(2), eta2=-1e12 * jnp.eye(2))}
    with pytest.warns(NonPositiveDefiniteCovarianceWarning) as record:
        for _ in range(5):
            opt_states = controller.apply([state], grads, opt_states)
    assert len(record) == 2
    assert controller.diagnostics["covariance_update_skipped"] == 5


@pytest.mark.parametrize("natural", [True, False])
def test_spd_under_adversarial_adam(natural):
    states = [_identity_state(), _identity_state()]
    controller = GlobalUpdateController(optax.adam(0.5), natural=natural)
    opt_states = controller.init(states)
    key = jax.random.PRNGKey(0)
    for it in range(30):
        grads = {}
        for k in range(2):
            key, k1, k2 = jax.random.split(key, 3)
            G = 10.0 * jax.random.normal(k2, (3, 3))
            grads[k] = NaturalGradient(eta1=jax.random.normal(k1, (3,)), eta2=G)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NonPositiveDefiniteCovarianceWarning)
            opt_states = controller.apply(states, grads, opt_states)
        for s in states:
            assert is_positive_definite(s.covariance)
            assert jnp.allclose(s.covariance, s.covariance.T)
            assert jnp.all(jnp.isfinite(s.mean))


def test_gradients_must_cover_every_latent():
    states = [_identity_state(), _identity_state()]
    controller = GlobalUpdateController(optax.sgd(1.0))
    opt_states = controller.init(states)
    grads = {0: NaturalGradient(eta1=jnp.zeros(3), eta2=jnp.zeros((3, 3)))}
    with pytest.raises(DimensionMismatchError):
        controller.apply(states, grads, opt_states)
    grads = {
        0: NaturalGradient(eta1=jnp.zeros(3), eta2=jnp.zeros((3, 3))),
        1: NaturalGradient(eta1=jnp.zeros(2), eta2=jnp.zeros((2, 2))),
    }
    with pytest.raises(DimensionMismatchError):
        controller.apply(states, grads, opt_states)


def test_commit_is_all_or_nothing():
    states = [_identity_state(), _identity_state()]
    controller = GlobalUpdateController(optax.sgd(1.0))
    opt_states = controller.init(states)
    grads = {
        0: NaturalGradient(eta1=jnp.ones(3), eta2=jnp.zeros((3, 3))),
        1: NaturalGradient(eta1=jnp.zeros(2), eta2=jnp.zeros((2, 2))),
    }
    with pytest.raises(DimensionMismatchError):
        controller.apply(states, grads, opt_states)
    assert jnp.allclose(states[0].mean, 0.0)


def test_invalid_min_step():
    with pytest.raises(ValueError):
        GlobalUpdateController(optax.sgd(1.0), min_step=0.0)
