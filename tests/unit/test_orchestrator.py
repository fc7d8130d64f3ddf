"""Tests for the Orchestrator: caching, partial failure, resume, cancellation."""

from __future__ import annotations

import threading

from cudalis.backends import BackendError, BuildBackend
from cudalis.backends.memory import MemoryBackend
from cudalis.core.hasher import compute_cache_keys
from cudalis.core.orchestrator import Orchestrator
from cudalis.core.step_cache import StepCache
from cudalis.models.results import StepRecord, StepStatus
from cudalis.models.versions import Version


class _ExplodingBackend(MemoryBackend):
    """Raises BackendError on one step instead of returning a failure."""

    def __init__(self, explode_at: int) -> None:
        super().__init__()
        self.explode_at = explode_at

    def apply_step(self, step, context):
        if step.index == self.explode_at:
            raise BackendError("engine went away")
        return super().apply_step(step, context)


class _UnreachableLayersBackend(MemoryBackend):
    """Cannot answer layer lookups at all."""

    def has_layer(self, cache_key):
        raise BackendError("layer lookup failed")


class TestExecute:
    def test_memory_backend_satisfies_protocol(self, memory_backend):
        assert isinstance(memory_backend, BuildBackend)

    def test_fresh_build_applies_every_step(self, orchestrator, memory_backend, plan):
        result = orchestrator.execute(plan)
        assert result.success
        assert result.image_reference == plan.image_reference
        assert result.failed_step is None
        assert result.steps_with_status(StepStatus.APPLIED) == [1, 2, 3, 4, 5]
        assert memory_backend.applied == [1, 2, 3, 4, 5]
        assert memory_backend.images == {
            plan.image_reference: compute_cache_keys(plan.steps)[-1]
        }

    def test_second_run_is_fully_cached(self, orchestrator, memory_backend, plan):
        orchestrator.execute(plan)
        memory_backend.applied.clear()
        result = orchestrator.execute(plan)
        assert result.success
        assert result.steps_with_status(StepStatus.CACHED) == [1, 2, 3, 4, 5]
        assert memory_backend.applied == []

    def test_records_carry_cache_keys(self, orchestrator, plan):
        result = orchestrator.execute(plan)
        assert [r.cache_key for r in result.steps] == compute_cache_keys(plan.steps)

    def test_progress_callback(self, orchestrator, plan):
        seen: list[StepRecord] = []
        orchestrator.execute(plan, on_progress=seen.append)
        assert [(r.index, r.status) for r in seen[:2]] == [
            (1, StepStatus.RUNNING), (1, StepStatus.APPLIED),
        ]
        assert len(seen) == 10


class TestPartialFailure:
    def test_step_three_fails(self, step_cache: StepCache, plan):
        backend = MemoryBackend(fail_steps={3}, diagnostic="pip bootstrap failed")
        result = Orchestrator(backend, step_cache).execute(plan)

        assert not result.success
        assert result.failed_step == 3
        assert result.diagnostic == "pip bootstrap failed"
        assert result.image_reference is None
        assert result.steps_with_status(StepStatus.APPLIED) == [1, 2]
        assert result.steps_with_status(StepStatus.FAILED) == [3]
        assert result.steps_with_status(StepStatus.NOT_RUN) == [4, 5]
        assert step_cache.plan_state(plan.plan_id).confirmed_steps == [1, 2]

    def test_retry_resumes_after_confirmed_steps(self, step_cache: StepCache, plan):
        backend = MemoryBackend(fail_steps={3})
        orchestrator = Orchestrator(backend, step_cache)
        orchestrator.execute(plan)

        backend.fail_steps.clear()
        backend.applied.clear()
        result = orchestrator.execute(plan)

        assert result.success
        assert result.steps_with_status(StepStatus.CACHED) == [1, 2]
        assert result.steps_with_status(StepStatus.APPLIED) == [3, 4, 5]
        assert backend.applied == [3, 4, 5]

    def test_backend_error_becomes_failed_step(self, step_cache: StepCache, plan):
        result = Orchestrator(_ExplodingBackend(2), step_cache).execute(plan)
        assert result.failed_step == 2
        assert "engine went away" in result.diagnostic
        assert result.steps_with_status(StepStatus.NOT_RUN) == [3, 4, 5]

    def test_lost_layer_is_rebuilt(self, orchestrator, memory_backend, plan):
        orchestrator.execute(plan)
        keys = compute_cache_keys(plan.steps)
        memory_backend.drop_layer(keys[1])
        memory_backend.applied.clear()

        result = orchestrator.execute(plan)
        assert result.success
        assert result.steps_with_status(StepStatus.CACHED) == [1, 3, 4, 5]
        assert memory_backend.applied == [2]

    def test_layer_lookup_error_becomes_failed_step(self, step_cache: StepCache, plan):
        Orchestrator(MemoryBackend(), step_cache).execute(plan)
        result = Orchestrator(_UnreachableLayersBackend(), step_cache).execute(plan)
        assert not result.success
        assert result.failed_step == 1
        assert "layer lookup failed" in result.diagnostic
        assert result.steps_with_status(StepStatus.NOT_RUN) == [2, 3, 4, 5]

    def test_removed_image_reference_refreezes(self, orchestrator, memory_backend, plan):
        orchestrator.execute(plan)
        memory_backend.untag(plan.image_reference)
        memory_backend.applied.clear()

        result = orchestrator.execute(plan)
        assert result.success
        assert result.steps_with_status(StepStatus.CACHED) == [1, 2, 3, 4]
        assert memory_backend.applied == [5]
        assert plan.image_reference in memory_backend.images

    def test_lost_layer_forgets_confirmations_of_other_plans(
        self, orchestrator, memory_backend, step_cache, plan, generator
    ):
        orchestrator.execute(plan)
        keys = compute_cache_keys(plan.steps)
        memory_backend.drop_layer(keys[0])
        other = generator.generate(
            plan.triple.model_copy(update={"torch": Version.parse("1.7.0")})
        )

        orchestrator.execute(other)
        assert step_cache.plan_state(plan.plan_id).confirmed_steps == [2, 3, 4, 5]

    def test_layer_without_confirmation_is_not_trusted(self, step_cache, tmp_dir, plan):
        backend = MemoryBackend()
        Orchestrator(backend, step_cache).execute(plan)
        backend.applied.clear()

        # Same engine, fresh cache ledger: nothing is confirmed, so all rebuild.
        result = Orchestrator(backend, StepCache(tmp_dir / "other.db")).execute(plan)
        assert result.steps_with_status(StepStatus.APPLIED) == [1, 2, 3, 4, 5]

    def test_shared_prefix_is_reused_across_plans(
        self, orchestrator, memory_backend, plan, generator
    ):
        orchestrator.execute(plan)
        memory_backend.applied.clear()
        other = generator.generate(
            plan.triple.model_copy(update={"torch": Version.parse("1.7.0")})
        )
        result = orchestrator.execute(other)
        assert result.steps_with_status(StepStatus.CACHED) == [1, 2, 3]
        assert memory_backend.applied == [4, 5]


class TestCancellation:
    def test_cancel_before_start(self, orchestrator, memory_backend, plan):
        cancel = threading.Event()
        cancel.set()
        result = orchestrator.execute(plan, cancel=cancel)
        assert result.cancelled
        assert not result.success
        assert result.failed_step is None
        assert result.steps_with_status(StepStatus.NOT_RUN) == [1, 2, 3, 4, 5]
        assert memory_backend.applied == []

    def test_cancel_honored_at_step_boundary(self, orchestrator, memory_backend, plan):
        cancel = threading.Event()

        def _interrupt(record: StepRecord) -> None:
            if record.index == 2 and record.status is StepStatus.RUNNING:
                cancel.set()

        result = orchestrator.execute(plan, cancel=cancel, on_progress=_interrupt)
        # The in-flight step completes; the next one never starts.
        assert result.cancelled
        assert result.steps_with_status(StepStatus.APPLIED) == [1, 2]
        assert result.steps_with_status(StepStatus.NOT_RUN) == [3, 4, 5]
        assert result.diagnostic == "Cancelled before step 3 (package_manager)"

    def test_resume_after_cancel(self, orchestrator, memory_backend, plan):
        cancel = threading.Event()
        cancel.set()
        orchestrator.execute(plan, cancel=cancel)
        result = orchestrator.execute(plan)
        assert result.success
