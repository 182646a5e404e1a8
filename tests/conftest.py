import jax
import jax.numpy as jnp
import pytest

jax.config.update("jax_enable_x64", True)

from vigp_jax.core.phi import Phi
from vigp_jax.gp.kernels.params import KernelParams


@pytest.fixture
def regression_data():
    X = jnp.linspace(0.0, 10.0, 20)[:, None]
    Y = jnp.sin(X[:, 0]) + 0.1 * jax.random.normal(jax.random.PRNGKey(0), (20,))
    return X, Y


@pytest.fixture
def gaussian_phi():
    return Phi(
        kernel_params=KernelParams.create(lengthscale=1.0, variance=1.0),
        likelihood_params={"noise_var": jnp.array(0.1)},
        jitter=1e-6,
    )
