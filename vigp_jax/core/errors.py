# vigp_jax/core/errors.py
"""
Error taxonomy and non-fatal diagnostics.

Contract violations (wrong likelihood for a strategy, inconsistent shapes)
are exceptions and always reach the caller. Numerical infeasibility
(covariance steps that leave the SPD cone, divergent trajectories,
degenerate kernel coefficients) is recovered locally and reported through
warnings plus counters on a :class:`Diagnostics` record.
"""
from __future__ import annotations

import logging
import warnings
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Type

logger = logging.getLogger(__name__)


class IncompatibleLikelihoodError(ValueError):
    """Likelihood lacks the capability the requested update strategy needs."""


class DimensionMismatchError(ValueError):
    """Inputs to an update step have inconsistent shapes."""


class NonPositiveDefiniteCovarianceWarning(RuntimeWarning):
    """No covariance step above the minimum multiplier kept Σ positive-definite."""


class DivergentTrajectoryWarning(RuntimeWarning):
    """A Hamiltonian trajectory ended at a non-finite energy and was rejected."""


class DegenerateKernelWarning(RuntimeWarning):
    """A kernel coefficient hit its positive floor during hyperparameter ascent."""


@dataclass
class Diagnostics:
    """
    Counters for non-fatal events with rate-limited reporting.

    The first ``max_warnings`` occurrences of each event are issued through
    :func:`warnings.warn`; later occurrences only go to the debug log. The
    counts are never limited, so a caller can always tell whether a run was
    pathological (e.g. the covariance update skipped on every iteration).
    """
    max_warnings: int = 10
    counts: Counter = field(default_factory=Counter)

    def record(
        self,
        event: str,
        message: str,
        category: Type[Warning] = RuntimeWarning,
    ) -> None:
        self.counts[event] += 1
        n = self.counts[event]
        if n <= self.max_warnings:
            if n == self.max_warnings:
                message = f"{message} (further '{event}' warnings suppressed)"
            warnings.warn(message, category, stacklevel=3)
        else:
            logger.debug("%s [#%d]: %s", event, n, message)

    def as_dict(self) -> Dict[str, int]:
        return dict(self.counts)

    def __getitem__(self, event: str) -> int:
        return self.counts[event]
