# vigp_jax/inference/optimisation/analytic.py
from __future__ import annotations

from ...gp.ansatz.closed_form import ClosedForm, require_analytic
from .natural import ExpectationUpdateStrategy


class AnalyticUpdateStrategy(ExpectationUpdateStrategy):
    """
    Closed-form natural-gradient updates for conjugate or conditionally
    conjugate likelihoods (Gaussian; Bernoulli via Pólya-Gamma augmentation).

    Raises IncompatibleLikelihoodError at construction for any likelihood
    without the AnalyticCompatible capability.
    """

    name = "analytic"

    def __init__(self, likelihood):
        require_analytic(likelihood)
        super().__init__(likelihood, ClosedForm())
