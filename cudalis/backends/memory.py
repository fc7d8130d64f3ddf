"""Deterministic in-process build backend with no container engine.

Used for ``cudalis build --dry-run`` and for tests. Layers are recorded in
a dict keyed by cache key; failures can be injected per step index.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from cudalis.models.plan import BuildStep, StepKind
from cudalis.models.results import CacheContext, StepResult

logger = logging.getLogger(__name__)


class MemoryBackend:
    """Records steps instead of building them.

    Parameters
    ----------
    fail_steps:
        1-based step indexes whose ``apply_step`` reports failure.
    diagnostic:
        Diagnostic text returned for injected failures.
    """

    def __init__(
        self,
        *,
        fail_steps: Iterable[int] = (),
        diagnostic: str = "simulated step failure",
    ) -> None:
        self.fail_steps: set[int] = set(fail_steps)
        self.diagnostic = diagnostic
        self.layers: dict[str, BuildStep] = {}
        self.images: dict[str, str] = {}  # image reference -> cache key
        self.applied: list[int] = []  # step indexes, in call order

    @property
    def backend_name(self) -> str:
        return "memory"

    def has_layer(self, cache_key: str) -> bool:
        step = self.layers.get(cache_key)
        if step is None:
            return False
        if step.kind is StepKind.FREEZE:
            return self.images.get(step.parameters["image_reference"]) == cache_key
        return True

    def drop_layer(self, cache_key: str) -> None:
        """Forget a layer, as if the engine had pruned it."""
        self.layers.pop(cache_key, None)

    def untag(self, reference: str) -> None:
        """Remove an image reference, as if the user had deleted the tag."""
        self.images.pop(reference, None)

    def apply_step(self, step: BuildStep, context: CacheContext) -> StepResult:
        self.applied.append(step.index)

        if context.parent_key is not None and context.parent_key not in self.layers:
            return StepResult(
                success=False,
                diagnostic=f"Parent layer {context.parent_key[:12]} is missing",
            )
        if step.index in self.fail_steps:
            logger.debug("MemoryBackend: injected failure at step %d", step.index)
            return StepResult(success=False, diagnostic=self.diagnostic)

        self.layers[context.cache_key] = step
        if step.kind is StepKind.FREEZE:
            self.images[step.parameters["image_reference"]] = context.cache_key

        log = "\n".join(step.commands) or f"{step.kind.value} {step.parameters}"
        return StepResult(success=True, log=log)
