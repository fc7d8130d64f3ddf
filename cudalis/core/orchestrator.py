"""Build orchestrator — executes a BuildPlan against a build backend.

The Orchestrator wires together the backend and the StepCache into a
strictly sequential step executor:
- Steps run in plan order; cache keys chain over the plan prefix.
- A step confirmed in the StepCache whose layer the backend still has is
  reported ``cached`` and not applied again.
- The first failing step halts the build. Earlier confirmations are kept
  so a retry of the same plan resumes after them.
- Cancellation is honored only between steps.
- There is no automatic retry.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from cudalis.backends import BackendError, BuildBackend
from cudalis.core.hasher import compute_cache_keys
from cudalis.core.step_cache import StepCache
from cudalis.models.plan import BuildPlan
from cudalis.models.results import (
    BuildResult,
    CacheContext,
    PlanState,
    StepRecord,
    StepResult,
    StepStatus,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StepRecord], None]


class Orchestrator:
    """Executes build plans step by step.

    Parameters
    ----------
    backend:
        The build backend that applies steps.
    step_cache:
        Persistent record of confirmed steps. Not shared with other
        orchestrators in the same process unless the caller chooses to.
    """

    def __init__(self, backend: BuildBackend, step_cache: StepCache) -> None:
        self.backend = backend
        self.step_cache = step_cache

    # ------------------------------------------------------------------
    # Plan inspection
    # ------------------------------------------------------------------

    def cache_contexts(self, plan: BuildPlan) -> list[CacheContext]:
        """Cache context of every step, in plan order."""
        keys = compute_cache_keys(plan.steps)
        parents: list[str | None] = [None, *keys[:-1]]
        return [
            CacheContext(step_index=step.index, cache_key=key, parent_key=parent)
            for step, key, parent in zip(plan.steps, keys, parents)
        ]

    def plan_state(self, plan: BuildPlan) -> PlanState:
        """Return which steps of ``plan`` are cache-confirmed."""
        return self.step_cache.plan_state(plan.plan_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        plan: BuildPlan,
        *,
        cancel: threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BuildResult:
        """Execute ``plan`` and return its terminal BuildResult.

        Lifecycle per step:
        1. Stop if cancellation was requested
        2. Report RUNNING
        3. Skip if cache-confirmed and the layer still exists
        4. Otherwise apply through the backend and confirm on success
        5. Halt on failure
        """
        contexts = self.cache_contexts(plan)
        state = self.plan_state(plan)
        records = [
            StepRecord(index=step.index, kind=step.kind, cache_key=ctx.cache_key)
            for step, ctx in zip(plan.steps, contexts)
        ]

        def _report(position: int, **update) -> StepRecord:
            records[position] = records[position].model_copy(update=update)
            if on_progress is not None:
                on_progress(records[position])
            return records[position]

        logger.info(
            "Executing plan %s (%d steps) on %s backend",
            plan.plan_id[:12], len(plan), self.backend.backend_name,
        )

        for position, (step, ctx) in enumerate(zip(plan.steps, contexts)):
            if cancel is not None and cancel.is_set():
                logger.warning("Build cancelled before step %d", step.index)
                self._mark_not_run(records, position)
                return self._result(
                    plan, records,
                    success=False,
                    cancelled=True,
                    diagnostic=f"Cancelled before step {step.index} ({step.kind.value})",
                )

            _report(position, status=StepStatus.RUNNING)
            started = time.monotonic()

            try:
                if self._is_cached(state, step.index, ctx.cache_key):
                    self.step_cache.confirm(plan.plan_id, step, ctx.cache_key)
                    _report(position, status=StepStatus.CACHED)
                    logger.info("Step %d (%s) cached", step.index, step.kind.value)
                    continue
                outcome = self.backend.apply_step(step, ctx)
            except BackendError as exc:
                outcome = StepResult(success=False, diagnostic=str(exc))
            elapsed = time.monotonic() - started

            if not outcome.success:
                logger.error(
                    "Step %d (%s) failed: %s",
                    step.index, step.kind.value, outcome.diagnostic,
                )
                _report(
                    position,
                    status=StepStatus.FAILED,
                    diagnostic=outcome.diagnostic,
                    duration_seconds=elapsed,
                )
                self._mark_not_run(records, position + 1)
                return self._result(
                    plan, records,
                    success=False,
                    failed_step=step.index,
                    diagnostic=outcome.diagnostic,
                )

            self.step_cache.confirm(plan.plan_id, step, ctx.cache_key)
            _report(position, status=StepStatus.APPLIED, duration_seconds=elapsed)
            logger.info(
                "Step %d (%s) applied in %.1fs", step.index, step.kind.value, elapsed
            )

        return self._result(
            plan, records,
            success=True,
            image_reference=plan.image_reference,
            diagnostic=f"Built {plan.image_reference}",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_cached(self, state: PlanState, index: int, cache_key: str) -> bool:
        confirmed = state.is_confirmed(index, cache_key) or self.step_cache.is_confirmed(
            cache_key
        )
        if not confirmed:
            return False
        if self.backend.has_layer(cache_key):
            return True
        logger.warning(
            "Step %d was confirmed but its layer %s is gone; rebuilding",
            index, cache_key[:12],
        )
        self.step_cache.forget_key(cache_key)
        return False

    @staticmethod
    def _mark_not_run(records: list[StepRecord], start: int) -> None:
        for position in range(start, len(records)):
            records[position] = records[position].model_copy(
                update={"status": StepStatus.NOT_RUN}
            )

    @staticmethod
    def _result(plan: BuildPlan, records: list[StepRecord], **fields) -> BuildResult:
        return BuildResult(plan_id=plan.plan_id, steps=list(records), **fields)
