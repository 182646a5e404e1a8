# vigp_jax/inference/optimisation/numerical.py
from __future__ import annotations

import logging
from typing import Literal, Optional

from ...core.errors import IncompatibleLikelihoodError
from ...gp.ansatz.gh import GaussHermite
from ...gp.ansatz.mc import MonteCarlo
from ...gp.likelihoods.base import is_integrable
from .natural import ExpectationUpdateStrategy

logger = logging.getLogger(__name__)

# Monte Carlo draws per data point when not given explicitly
N_MC_STOCHASTIC = 200
N_MC_FULL_BATCH = 1000


class NumericalUpdateStrategy(ExpectationUpdateStrategy):
    """
    Natural-gradient updates with numerically integrated expectations.

    Args:
        likelihood: any NumericallyIntegrable likelihood
        integration: "quadrature" (Gauss-Hermite) or "monte_carlo"
        n_gh: quadrature order
        n_mc: Monte Carlo draws per point; defaults to 200 for stochastic
            (minibatch) runs and 1000 otherwise
        stochastic: whether the engine minibatches
    """

    def __init__(
        self,
        likelihood,
        integration: Literal["quadrature", "monte_carlo"] = "quadrature",
        *,
        n_gh: int = 20,
        n_mc: Optional[int] = None,
        stochastic: bool = False,
    ):
        if not is_integrable(likelihood):
            raise IncompatibleLikelihoodError(
                f"{likelihood!r} can only be used with integration='sampling'."
            )
        if integration == "quadrature":
            provider = GaussHermite(n=n_gh)
        elif integration == "monte_carlo":
            if n_mc is None:
                n_mc = N_MC_STOCHASTIC if stochastic else N_MC_FULL_BATCH
            provider = MonteCarlo(n_samples=n_mc)
        else:
            raise ValueError(f"Unknown numerical integration: {integration}")
        logger.debug("numerical strategy: %s", provider)
        super().__init__(likelihood, provider)
        self.name = integration

    @property
    def needs_key(self) -> bool:
        return isinstance(self.provider, MonteCarlo)
