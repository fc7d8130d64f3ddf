"""Resolved triples and build plans."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from cudalis.models.catalog import CompatibilityEntry
from cudalis.models.versions import Version, format_cuda


class ResolvedTriple(BaseModel):
    """A concrete (python, torch, cuda) choice backed by a catalog entry.

    Components may be narrower than the entry's (``3.8.5`` within entry
    ``3.8``), never outside it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    python: Version
    torch: Version
    cuda: Version | None
    entry: CompatibilityEntry

    @property
    def is_cpu_only(self) -> bool:
        return self.cuda is None

    def label(self) -> str:
        return f"python {self.python}, torch {self.torch}, {format_cuda(self.cuda)}"


class StepKind(str, Enum):
    """Build step kinds in their fixed plan order."""

    BASE_IMAGE = "base_image"
    PYTHON_RUNTIME = "python_runtime"
    PACKAGE_MANAGER = "package_manager"
    TORCH = "torch"
    FREEZE = "freeze"


STEP_ORDER: tuple[StepKind, ...] = tuple(StepKind)


class BuildStep(BaseModel):
    """One atomic, cacheable unit of image construction.

    ``parameters`` holds JSON-serializable values only; it feeds the
    step's cache key.
    """

    model_config = ConfigDict(frozen=True)

    index: int  # 1-based position in the plan
    kind: StepKind
    parameters: dict[str, Any] = {}

    @property
    def commands(self) -> list[str]:
        return list(self.parameters.get("commands", []))

    def identity(self) -> dict[str, Any]:
        """The content that defines this step, excluding its position."""
        return {"kind": self.kind.value, "parameters": self.parameters}


class BuildPlan(BaseModel):
    """Ordered, immutable sequence of build steps for one triple."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    plan_id: str
    triple: ResolvedTriple
    image_reference: str
    steps: tuple[BuildStep, ...]

    def __len__(self) -> int:
        return len(self.steps)

    def step(self, index: int) -> BuildStep:
        """Return the step at 1-based ``index``."""
        return self.steps[index - 1]
