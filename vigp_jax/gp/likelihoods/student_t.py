# vigp_jax/gp/likelihoods/student_t.py
import jax.numpy as jnp
import jax.scipy.special as jsp

from .base import Likelihood, NumericallyIntegrable


class StudentTLikelihood(Likelihood, NumericallyIntegrable):
    """
    Student-t observation noise for robust regression:
        p(y | f) = St(y; f, scale², df)

    params:
        {"df": ν, "scale": σ}

    log p is not concave in f, so ∂²/∂f² can be positive in the tails and a
    numerical update may propose an indefinite covariance step.
    """

    name = "student_t"

    def log_prob_1d(self, y, f, params):
        nu = params["df"]
        scale = params["scale"]
        z = (y - f) / scale
        return (
            jsp.gammaln(0.5 * (nu + 1.0))
            - jsp.gammaln(0.5 * nu)
            - 0.5 * jnp.log(nu * jnp.pi)
            - jnp.log(scale)
            - 0.5 * (nu + 1.0) * jnp.log1p(z ** 2 / nu)
        )


student_t = StudentTLikelihood()
