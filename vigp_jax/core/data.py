# vigp_jax/core/data.py
"""
Data views and minibatch selection.

Nothing here makes probabilistic decisions: a minibatch is a sorted set of
row indices drawn without replacement together with the scaling factor
rho = n_total / n_minibatch that turns minibatch sums into unbiased
full-data estimates.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import jax
import jax.numpy as jnp

from .errors import DimensionMismatchError


@dataclass(frozen=True)
class SupervisedData:
    """
    Supervised data view.

    - X: inputs (N, Q)
    - Y: observations (N, L), one column per latent GP
    """
    X: jnp.ndarray
    Y: Optional[jnp.ndarray]

    @classmethod
    def from_arrays(cls, X, Y=None) -> SupervisedData:
        X = jnp.asarray(X)
        if X.ndim == 1:
            X = X[:, None]
        if X.ndim != 2:
            raise DimensionMismatchError(f"X must be (N, Q); got shape {X.shape}.")
        if Y is not None:
            Y = jnp.asarray(Y)
            if Y.ndim == 1:
                Y = Y[:, None]
            if Y.ndim != 2 or Y.shape[0] != X.shape[0]:
                raise DimensionMismatchError(
                    f"Y must be (N,) or (N, L) with N={X.shape[0]}; got shape {Y.shape}."
                )
        return cls(X=X, Y=Y)

    def batch(self, idx: Union[jnp.ndarray, slice]) -> SupervisedData:
        return SupervisedData(self.X[idx], None if self.Y is None else self.Y[idx])

    @property
    def n_outputs(self) -> int:
        return 0 if self.Y is None else self.Y.shape[1]

    def __len__(self) -> int:
        return self.X.shape[0]


@dataclass(frozen=True)
class MinibatchSelection:
    """Sorted row indices for one iteration plus the full-data scale rho."""
    indices: jnp.ndarray
    rho: float

    def __len__(self) -> int:
        return int(self.indices.shape[0])


def full_batch(n_total: int) -> MinibatchSelection:
    return MinibatchSelection(indices=jnp.arange(n_total), rho=1.0)


def select_minibatch(key, n_total: int, n_minibatch: int) -> MinibatchSelection:
    """
    Draw ``n_minibatch`` distinct indices from ``range(n_total)``.

    Args:
        key: PRNG key, consumed once
        n_total: dataset size
        n_minibatch: batch size, 1 <= n_minibatch <= n_total

    Returns:
        MinibatchSelection with sorted indices and rho = n_total / n_minibatch
    """
    if not 1 <= n_minibatch <= n_total:
        raise ValueError(
            f"n_minibatch must lie in [1, {n_total}]; got {n_minibatch}."
        )
    idx = jax.random.choice(key, n_total, shape=(n_minibatch,), replace=False)
    return MinibatchSelection(
        indices=jnp.sort(idx),
        rho=float(n_total) / float(n_minibatch),
    )
