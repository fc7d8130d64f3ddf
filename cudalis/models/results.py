"""Step and build outcomes reported by the orchestrator."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from cudalis.models.plan import StepKind


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CACHED = "cached"
    APPLIED = "applied"
    FAILED = "failed"
    NOT_RUN = "not_run"


class CacheContext(BaseModel):
    """What a backend needs to place a step on top of its parent layer."""

    model_config = ConfigDict(frozen=True)

    step_index: int
    cache_key: str
    parent_key: str | None = None


class StepResult(BaseModel):
    """A backend's answer to ``apply_step``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    diagnostic: str = ""
    log: str = ""


class StepRecord(BaseModel):
    """Per-step outcome within a BuildResult."""

    model_config = ConfigDict(frozen=True)

    index: int
    kind: StepKind
    cache_key: str
    status: StepStatus = StepStatus.PENDING
    diagnostic: str = ""
    duration_seconds: float = 0.0


class BuildResult(BaseModel):
    """Terminal outcome of executing one BuildPlan."""

    model_config = ConfigDict(frozen=True)

    success: bool
    plan_id: str
    image_reference: str | None = None
    failed_step: int | None = None
    diagnostic: str = ""
    cancelled: bool = False
    steps: list[StepRecord] = []

    def steps_with_status(self, status: StepStatus) -> list[int]:
        return [record.index for record in self.steps if record.status is status]


class PlanState(BaseModel):
    """Resumable state of a plan: which steps are cache-confirmed.

    A step is confirmed once the backend has applied it successfully; its
    layer is then reusable by any retry of the same plan.
    """

    model_config = ConfigDict(frozen=True)

    plan_id: str
    confirmed: dict[int, str] = {}  # step index -> cache key

    def is_confirmed(self, index: int, cache_key: str) -> bool:
        return self.confirmed.get(index) == cache_key

    @property
    def confirmed_steps(self) -> list[int]:
        return sorted(self.confirmed)
