"""Build backend protocol for the Cudalis orchestrator.

All backends implement the ``BuildBackend`` protocol: ``has_layer`` to
report whether a cached layer still exists, and ``apply_step`` to build one
step on top of its parent layer. The orchestrator never talks to a
container engine directly.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cudalis.models.plan import BuildStep
from cudalis.models.results import CacheContext, StepResult


class BackendError(RuntimeError):
    """Raised by a backend when a step cannot be applied.

    The orchestrator reports it as a failed step rather than propagating.
    """


@runtime_checkable
class BuildBackend(Protocol):
    """Protocol that every Cudalis build backend must implement."""

    @property
    def backend_name(self) -> str:
        """Return a short identifier (e.g. ``"docker"``)."""
        ...

    def has_layer(self, cache_key: str) -> bool:
        """Return True if the layer built under ``cache_key`` still exists."""
        ...

    def apply_step(self, step: BuildStep, context: CacheContext) -> StepResult:
        """Build ``step`` on the layer at ``context.parent_key``.

        On success the resulting layer must be retrievable under
        ``context.cache_key``. A step either completes or fails as a whole;
        no half-built layer is left under the key.

        Parameters
        ----------
        step:
            The step to apply.
        context:
            The step's cache key, its parent's key, and its position.
        """
        ...
