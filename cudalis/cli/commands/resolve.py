"""``cudalis resolve`` and ``cudalis plan``: inspect without building."""

from __future__ import annotations

from pathlib import Path

from cudalis.cli._common import (
    build_request,
    catalog_option,
    configure_logging,
    console,
    cuda_option,
    open_catalog,
    python_option,
    request_constraints,
    resolution_errors,
    torch_option,
)
from cudalis.config import CudalisSettings
from cudalis.core.hasher import compute_cache_keys
from cudalis.core.pipeline import plan_request, resolve_request
from cudalis.monitor.renderer import BuildRenderer


def resolve_cmd(
    python: str = python_option(),
    torch: str = torch_option(),
    cuda: str = cuda_option(),
    catalog: Path = catalog_option(),
) -> None:
    """Print the triple the constraints resolve to."""
    settings = CudalisSettings()
    configure_logging(settings)
    renderer = BuildRenderer(console)

    request = build_request(python, torch, cuda, settings)
    renderer.print_constraints(request_constraints(request))
    compat = open_catalog(catalog, settings)
    with resolution_errors():
        triple = resolve_request(compat, request)
    renderer.print_triple(triple)


def plan_cmd(
    python: str = python_option(),
    torch: str = torch_option(),
    cuda: str = cuda_option(),
    catalog: Path = catalog_option(),
) -> None:
    """Print the build plan, with step cache keys, without building it."""
    settings = CudalisSettings()
    configure_logging(settings)
    renderer = BuildRenderer(console)

    request = build_request(python, torch, cuda, settings)
    compat = open_catalog(catalog, settings)
    with resolution_errors():
        plan = plan_request(
            compat,
            request,
            image_repository=settings.image_repository,
            wheel_index_url=settings.wheel_index_url,
        )
    renderer.print_triple(plan.triple)
    renderer.print_plan(plan, compute_cache_keys(plan.steps))
    console.print(f"[bold]{plan.image_reference}[/bold]")
