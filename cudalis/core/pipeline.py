"""The full build pipeline: Resolver -> PlanGenerator -> Orchestrator.

Each stage needs the previous stage's complete output, so the pipeline is
sequential. Resolver and generator errors end the invocation with no
partial result. The Catalog is the only object shared between invocations.
"""

from __future__ import annotations

import threading

from pydantic import BaseModel, ConfigDict

from cudalis.core.catalog import Catalog
from cudalis.core.orchestrator import Orchestrator, ProgressCallback
from cudalis.core.planner import PlanGenerator
from cudalis.core.resolver import Resolver
from cudalis.models.plan import BuildPlan, ResolvedTriple
from cudalis.models.results import BuildResult
from cudalis.models.versions import Constraint


class BuildRequest(BaseModel):
    """The user's three constraints for one build invocation."""

    model_config = ConfigDict(frozen=True)

    python: Constraint = Constraint()
    torch: Constraint = Constraint()
    cuda: Constraint = Constraint()


def resolve_request(catalog: Catalog, request: BuildRequest) -> ResolvedTriple:
    return Resolver(catalog).resolve(request.python, request.torch, request.cuda)


def plan_request(
    catalog: Catalog,
    request: BuildRequest,
    *,
    image_repository: str = "cudalis",
    wheel_index_url: str = "https://download.pytorch.org/whl",
) -> BuildPlan:
    """Resolve ``request`` and generate its BuildPlan."""
    triple = resolve_request(catalog, request)
    generator = PlanGenerator(
        catalog.recipes,
        image_repository=image_repository,
        wheel_index_url=wheel_index_url,
    )
    return generator.generate(triple)


def run_pipeline(
    catalog: Catalog,
    request: BuildRequest,
    orchestrator: Orchestrator,
    *,
    image_repository: str = "cudalis",
    wheel_index_url: str = "https://download.pytorch.org/whl",
    cancel: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Resolve, plan and execute one build. Raises on resolution errors."""
    plan = plan_request(
        catalog,
        request,
        image_repository=image_repository,
        wheel_index_url=wheel_index_url,
    )
    return orchestrator.execute(plan, cancel=cancel, on_progress=on_progress)
