# vigp_jax/gp/inducing.py
"""
Inducing-point locations.

The engine only asks a collaborator for ``locations()`` and, for online
collaborators, calls ``update(X_batch)`` once per iteration with the
current minibatch. The number of inducing points never changes, so the
variational state keeps its dimension.
"""
from __future__ import annotations

import logging

import jax
import jax.numpy as jnp

logger = logging.getLogger(__name__)


def _sq_dists(X, C):
    x2 = jnp.sum(X * X, axis=1)[:, None]
    c2 = jnp.sum(C * C, axis=1)[None, :]
    return jnp.maximum(x2 + c2 - 2.0 * X @ C.T, 0.0)


def assign(X, C):
    """Index of the nearest centre for every row of X."""
    return jnp.argmin(_sq_dists(X, C), axis=1)


def kmeans_init(key, X, m: int, n_iter: int = 20):
    """
    Lloyd's k-means seeded with ``m`` distinct data rows.

    Empty clusters keep their previous centre.
    """
    X = jnp.asarray(X)
    if not 1 <= m <= X.shape[0]:
        raise ValueError(f"need 1 <= m <= {X.shape[0]} inducing points; got {m}.")
    idx = jax.random.choice(key, X.shape[0], shape=(m,), replace=False)
    C = X[idx]
    for _ in range(n_iter):
        labels = assign(X, C)
        onehot = jax.nn.one_hot(labels, m, dtype=X.dtype)   # (N, m)
        counts = jnp.sum(onehot, axis=0)
        sums = onehot.T @ X
        C = jnp.where(counts[:, None] > 0, sums / jnp.maximum(counts, 1.0)[:, None], C)
    return C


class FixedInducingPoints:
    """Locations that never move on their own (hyperparameter ascent may still move them)."""

    online = False

    def __init__(self, Z):
        self.Z = jnp.asarray(Z)

    def locations(self):
        return self.Z

    def set_locations(self, Z):
        self.Z = jnp.asarray(Z)

    def update(self, X_batch) -> bool:
        return False


class StreamingKMeans:
    """
    Online k-means over the stream of minibatches.

    Each centre keeps a count of the points it has absorbed; a batch moves
    a centre to the running mean of everything assigned to it so far, i.e.
    a per-centre learning rate of 1/count.
    """

    online = True

    def __init__(self, Z, prior_count: float = 1.0):
        self.Z = jnp.asarray(Z)
        self.counts = jnp.full((self.Z.shape[0],), float(prior_count))

    @classmethod
    def from_data(cls, key, X, m: int, n_iter: int = 10, prior_count: float = 1.0):
        return cls(kmeans_init(key, X, m, n_iter=n_iter), prior_count=prior_count)

    def locations(self):
        return self.Z

    def set_locations(self, Z):
        self.Z = jnp.asarray(Z)

    def update(self, X_batch) -> bool:
        X_batch = jnp.asarray(X_batch)
        m = self.Z.shape[0]
        onehot = jax.nn.one_hot(assign(X_batch, self.Z), m, dtype=self.Z.dtype)
        n_new = jnp.sum(onehot, axis=0)
        if not bool(jnp.any(n_new > 0)):
            return False
        counts = self.counts + n_new
        sums = onehot.T @ X_batch
        self.Z = self.Z + (sums - n_new[:, None] * self.Z) / counts[:, None]
        self.counts = counts
        logger.debug("streaming k-means moved %d centres", int(jnp.sum(n_new > 0)))
        return True
