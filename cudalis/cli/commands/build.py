"""``cudalis build`` — resolve, plan and build an image.

Resolves the constraints against the catalog, prints the plan, and executes
it on the Docker backend (or the in-memory backend with ``--dry-run``).
Ctrl+C stops the build after the current step; a second Ctrl+C aborts.
"""

from __future__ import annotations

import signal
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from cudalis.backends import BackendError, BuildBackend
from cudalis.backends.docker_backend import DockerBackend
from cudalis.backends.memory import MemoryBackend
from cudalis.cli._common import (
    EXIT_USER_ERROR,
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
from cudalis.core.orchestrator import Orchestrator
from cudalis.core.pipeline import plan_request
from cudalis.core.step_cache import StepCache
from cudalis.monitor.renderer import BuildRenderer


@contextmanager
def _stop_at_step_boundary(cancel: threading.Event) -> Iterator[None]:
    """First SIGINT requests cancellation; a second one aborts."""

    def _handler(signum, frame) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        console.print(
            "[yellow]Interrupt received; stopping after the current step "
            "(press Ctrl+C again to abort).[/yellow]"
        )

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _make_backend(
    settings: CudalisSettings, *, dry_run: bool, verbose: bool
) -> BuildBackend:
    if dry_run:
        return MemoryBackend()
    return DockerBackend(
        cache_repository=settings.cache_repository,
        timeout=settings.docker_timeout_seconds,
        output=(lambda text: console.out(text, end="")) if verbose else None,
    )


def build_cmd(
    python: str = python_option(),
    torch: str = torch_option(),
    cuda: str = cuda_option(),
    catalog: Path = catalog_option(),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Walk the plan with the in-memory backend."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Stream step output."),
) -> None:
    """Build a container image for the resolved (Python, PyTorch, CUDA) triple."""
    settings = CudalisSettings()
    configure_logging(settings, verbose)
    renderer = BuildRenderer(console, verbose=verbose)

    request = build_request(python, torch, cuda, settings)
    renderer.print_constraints(request_constraints(request))
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
    console.print()

    try:
        backend = _make_backend(settings, dry_run=dry_run, verbose=verbose)
    except BackendError as exc:
        console.print(f"[bold red]Backend unavailable:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USER_ERROR)

    cancel = threading.Event()
    with tempfile.TemporaryDirectory(prefix="cudalis-dry-run-") as scratch:
        cache_path = Path(scratch) / "steps.db" if dry_run else settings.step_cache_path
        orchestrator = Orchestrator(backend, StepCache(cache_path))
        with _stop_at_step_boundary(cancel):
            result = orchestrator.execute(
                plan, cancel=cancel, on_progress=renderer.print_progress
            )

    console.print()
    renderer.print_result(result)
    if not result.success:
        raise typer.Exit(code=EXIT_USER_ERROR)
