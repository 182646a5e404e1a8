import jax
import jax.numpy as jnp
import pytest

from vigp_jax.gp.kernels import (
    get,
    KernelParams,
    kernel_matrix,
    kernel_matrix_diag,
    kernel_matrix_grad,
    kernel_matrix_diag_grad,
    kernel_matrix_grad_inputs,
)
from vigp_jax.gp.kernels.derivatives import contract, contract_inputs


@pytest.mark.parametrize("name", ["rbf", "matern12", "matern32", "matern52"])
def test_gram_matrix_is_spd(name):
    kernel = get(name)
    X = jnp.linspace(0.0, 3.0, 6)[:, None]
    params = KernelParams.create(lengthscale=0.8, variance=1.7)
    K = kernel_matrix(kernel, X, X, params)
    assert K.shape == (6, 6)
    assert jnp.allclose(K, K.T)
    assert jnp.allclose(kernel_matrix_diag(kernel, X, params), jnp.diag(K), atol=1e-6)
    assert jnp.all(jnp.linalg.eigvalsh(K + 1e-8 * jnp.eye(6)) > 0.0)


def test_unknown_kernel():
    with pytest.raises(KeyError):
        get("periodic")


def test_callable_passes_through():
    fn = lambda A, B, p: A @ B.T
    assert get(fn) is fn


def test_param_gradient_matches_autodiff():
    kernel = get("rbf")
    X = jnp.array([[0.0], [0.5], [1.3]])
    Z = jnp.array([[0.2], [1.0]])
    params = KernelParams.create(lengthscale=0.7, variance=1.3)
    S = jax.random.normal(jax.random.PRNGKey(1), (3, 2))

    dK = kernel_matrix_grad(kernel, X, Z, params)
    assert dK.lengthscale.shape == (3, 2)
    got = contract(S, dK)

    ref = jax.grad(lambda p: jnp.sum(S * kernel(X, Z, p)))(params)
    assert jnp.allclose(got.lengthscale, ref.lengthscale)
    assert jnp.allclose(got.variance, ref.variance)


def test_diag_gradient():
    kernel = get("rbf")
    X = jnp.array([[0.0], [0.5], [1.3]])
    params = KernelParams.create(lengthscale=0.7, variance=1.3)
    dK = kernel_matrix_diag_grad(kernel, X, params)
    assert jnp.allclose(dK.variance, jnp.ones(3))
    assert jnp.allclose(dK.lengthscale, jnp.zeros(3))


def test_input_gradients_match_autodiff():
    kernel = get("rbf")
    X = jnp.array([[0.0, 0.1], [0.5, -0.4], [1.3, 0.9]])
    Z = jnp.array([[0.2, 0.0], [1.0, 0.5]])
    params = KernelParams.create(lengthscale=0.9, variance=1.1)
    S_nm = jax.random.normal(jax.random.PRNGKey(2), (3, 2))
    S_mm = jax.random.normal(jax.random.PRNGKey(3), (2, 2))
    S_mm = 0.5 * (S_mm + S_mm.T)

    _, dB = kernel_matrix_grad_inputs(kernel, X, Z, params)
    dA_mm, dB_mm = kernel_matrix_grad_inputs(kernel, Z, Z, params)
    assert dB.shape == (3, 2, 2)

    got = contract_inputs(S_nm, None, dB) + contract_inputs(S_mm, dA_mm, dB_mm, symmetric=True)

    def objective(Z):
        return jnp.sum(S_nm * kernel(X, Z, params)) + jnp.sum(S_mm * kernel(Z, Z, params))

    assert jnp.allclose(got, jax.grad(objective)(Z), atol=1e-10)
