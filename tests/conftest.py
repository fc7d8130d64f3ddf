"""Shared test fixtures for Cudalis."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from cudalis.backends.memory import MemoryBackend
from cudalis.core.catalog import Catalog
from cudalis.core.orchestrator import Orchestrator
from cudalis.core.planner import PlanGenerator
from cudalis.core.resolver import Resolver
from cudalis.core.step_cache import StepCache
from cudalis.models.catalog import (
    CompatibilityDeclaration,
    CompatibilityEntry,
    RecipeBook,
)
from cudalis.models.plan import BuildPlan
from cudalis.models.versions import Component, Constraint


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def recipes() -> RecipeBook:
    """Base images for every CUDA version in the small test catalog."""
    return RecipeBook(
        cpu_base_image="ubuntu:22.04",
        cuda_base_images={
            "10.2": "nvidia/cuda:10.2-devel-ubuntu18.04",
            "11.0": "nvidia/cuda:11.0.3-devel-ubuntu20.04",
            "12.0": "nvidia/cuda:12.0.1-devel-ubuntu22.04",
        },
    )


@pytest.fixture
def entries() -> list[CompatibilityEntry]:
    """A small catalog: two torch releases, CPU and CUDA builds."""
    rows = [
        ("3.8.5", "1.7.1", "11.0"),
        ("3.8.5", "1.7.1", "10.2"),
        ("3.8.5", "1.7.1", None),
        ("3.10", "2.0.1", "12.0"),
        ("3.10", "2.0.1", None),
    ]
    return [CompatibilityEntry(python=p, torch=t, cuda=c) for p, t, c in rows]


@pytest.fixture
def catalog(entries: list[CompatibilityEntry], recipes: RecipeBook) -> Catalog:
    """Provide a validated Catalog; CUDA 11.1 is declared served by 11.0."""
    return Catalog(
        entries,
        [CompatibilityDeclaration(component=Component.CUDA, version="11.1", served_by="11.0")],
        recipes=recipes,
    )


@pytest.fixture
def resolver(catalog: Catalog) -> Resolver:
    return Resolver(catalog)


@pytest.fixture
def generator(recipes: RecipeBook) -> PlanGenerator:
    return PlanGenerator(recipes, wheel_index_url="https://wheels.example/whl")


@pytest.fixture
def step_cache(tmp_dir: Path) -> StepCache:
    """Provide a fresh StepCache backed by a temp SQLite database."""
    return StepCache(tmp_dir / "steps.db")


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def orchestrator(memory_backend: MemoryBackend, step_cache: StepCache) -> Orchestrator:
    """Provide an Orchestrator wired to the memory backend and test cache."""
    return Orchestrator(memory_backend, step_cache)


@pytest.fixture
def make_plan(resolver: Resolver, generator: PlanGenerator) -> Callable[..., BuildPlan]:
    """Factory fixture: resolve exact-version strings and generate a plan."""

    def _factory(
        python: str | None = "3.8.5",
        torch: str | None = "1.7.1",
        cuda: str | None = "11.0",
        **overrides: Any,
    ) -> BuildPlan:
        triple = resolver.resolve(
            Constraint.parse(python, Component.PYTHON),
            Constraint.parse(torch, Component.TORCH),
            Constraint.parse(cuda, Component.CUDA),
        )
        if overrides:
            triple = triple.model_copy(update=overrides)
        return generator.generate(triple)

    return _factory


@pytest.fixture
def plan(make_plan: Callable[..., BuildPlan]) -> BuildPlan:
    """Convenience: the five-step plan for python 3.8.5, torch 1.7.1, cu11.0."""
    return make_plan()
