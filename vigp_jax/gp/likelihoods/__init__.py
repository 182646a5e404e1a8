# vigp_jax/gp/likelihoods/__init__.py

from .base import (
    register,
    get,
    Likelihood,
    AnalyticCompatible,
    NumericallyIntegrable,
    SamplingOnly,
    is_analytic,
    is_integrable,
)

from .gaussian import GaussianLikelihood, gaussian
from .bernoulli import BernoulliLikelihood, bernoulli
from .poisson import PoissonLikelihood, poisson
from .negative_binomial import NegativeBinomialLikelihood, negative_binomial
from .student_t import StudentTLikelihood, student_t
from .log_density import LogDensityLikelihood

# --------------------------------------------------
# Registry
# --------------------------------------------------
register("gaussian", gaussian)
register("bernoulli", bernoulli)
register("poisson", poisson)
register("negative_binomial", negative_binomial)
register("student_t", student_t)

__all__ = [
    "get",
    "Likelihood",
    "AnalyticCompatible",
    "NumericallyIntegrable",
    "SamplingOnly",
    "is_analytic",
    "is_integrable",
    "GaussianLikelihood",
    "BernoulliLikelihood",
    "PoissonLikelihood",
    "NegativeBinomialLikelihood",
    "StudentTLikelihood",
    "LogDensityLikelihood",
    "gaussian",
    "bernoulli",
    "poisson",
    "negative_binomial",
    "student_t",
]
