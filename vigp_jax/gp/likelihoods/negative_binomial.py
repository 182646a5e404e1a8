# vigp_jax/gp/likelihoods/negative_binomial.py
import jax.numpy as jnp
import jax.scipy.special as jsp

from .base import Likelihood, NumericallyIntegrable


class NegativeBinomialLikelihood(Likelihood, NumericallyIntegrable):
    """
    Negative Binomial likelihood with log-mean parameterisation.

    mean = exp(f)
    dispersion = r
    """

    name = "negative_binomial"

    def log_prob_1d(self, y, f, params):
        """
        params:
            {"dispersion": r}
        """
        r = params["dispersion"]
        # log(r / (r + μ)) and log(μ / (r + μ)) with μ = exp(f)
        log_r = jnp.log(r)
        log_denom = jnp.logaddexp(log_r, f)
        return (
            jsp.gammaln(y + r)
            - jsp.gammaln(r)
            - jsp.gammaln(y + 1.0)
            + r * (log_r - log_denom)
            + y * (f - log_denom)
        )


negative_binomial = NegativeBinomialLikelihood()

