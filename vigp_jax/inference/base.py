# vigp_jax/inference/base.py
from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable


@runtime_checkable
class UpdateStrategy(Protocol):
    """
    Protocol for the optimisation-side update strategies.

    Design principles
    -----------------
    - A strategy reads the per-latent states and the current minibatch and
      returns natural gradients; it never writes a state.
    - Capability checks (is the likelihood usable with this strategy?)
      happen once, in the constructor.
    - Writing the gradients into the states is the controller's job.
    """

    name: str

    def compute_gradients(
        self, states: Sequence[Any], Y, params, rho: float = 1.0, *, key=None, indices=None
    ) -> Any:
        ...

    def expected_loglik(
        self, states: Sequence[Any], Y, params, *, conditional: bool = True, key=None, indices=None
    ) -> Any:
        ...

    def marginal_gradients(self, states: Sequence[Any], Y, params, *, key=None, indices=None) -> Any:
        ...
