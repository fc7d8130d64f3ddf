"""Helpers shared by the CLI commands: settings, logging, error mapping."""

from __future__ import annotations

import logging
import platform
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from cudalis.config import CudalisSettings
from cudalis.core.catalog import Catalog, CatalogLoadError, load_catalog
from cudalis.core.pipeline import BuildRequest
from cudalis.core.planner import UnsupportedPlatform
from cudalis.core.resolver import NoCompatibleVersion, ResolutionError, UnknownVersion
from cudalis.models.versions import Component, Constraint, InvalidVersionError

console = Console()

# Exit codes: user-correctable problems vs. broken installation data.
EXIT_USER_ERROR = 1
EXIT_INTERNAL_ERROR = 2


def python_option() -> Any:
    return typer.Option(
        None, "--python", "-p", metavar="VERSION",
        help="Python version (e.g. 3.10), or 'latest'.",
    )


def torch_option() -> Any:
    return typer.Option(
        None, "--torch", "-t", metavar="VERSION",
        help="PyTorch version (e.g. 2.1.2), or 'latest'.",
    )


def cuda_option() -> Any:
    return typer.Option(
        None, "--cuda", "-c", metavar="VERSION",
        help="CUDA version (e.g. 12.1), 'latest', or 'cpu'.",
    )


def catalog_option() -> Any:
    return typer.Option(
        None, "--catalog", help="Catalog JSON to use instead of the bundled one.",
    )


def configure_logging(settings: CudalisSettings, verbose: bool = False) -> None:
    """Route log records to stderr through Rich."""
    logging.basicConfig(
        level="DEBUG" if verbose else settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def build_request(
    python: str | None,
    torch: str | None,
    cuda: str | None,
    settings: CudalisSettings,
) -> BuildRequest:
    """Turn raw flag values into a BuildRequest, or exit with a message."""
    if cuda is None and settings.cpu_only_on_macos and platform.system() == "Darwin":
        console.print("[dim]macOS host: defaulting to a CPU-only build.[/dim]")
        cuda = "cpu"
    try:
        return BuildRequest(
            python=Constraint.parse(python, Component.PYTHON),
            torch=Constraint.parse(torch, Component.TORCH),
            cuda=Constraint.parse(cuda, Component.CUDA),
        )
    except InvalidVersionError as exc:
        console.print(f"[bold red]Invalid version:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USER_ERROR)


def request_constraints(request: BuildRequest) -> dict[Component, Constraint]:
    return {
        Component.PYTHON: request.python,
        Component.TORCH: request.torch,
        Component.CUDA: request.cuda,
    }


def open_catalog(path: Path | None, settings: CudalisSettings) -> Catalog:
    try:
        return load_catalog(path or settings.catalog_path)
    except CatalogLoadError as exc:
        console.print(f"[bold red]Catalog error:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_INTERNAL_ERROR)


@contextmanager
def resolution_errors() -> Iterator[None]:
    """Map resolver and generator errors onto messages and exit codes."""
    try:
        yield
    except UnknownVersion as exc:
        console.print(f"[bold red]Unknown version:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USER_ERROR)
    except NoCompatibleVersion as exc:
        console.print(f"[bold red]No compatible versions:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USER_ERROR)
    except ResolutionError as exc:
        console.print(f"[bold red]Resolution failed:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_USER_ERROR)
    except UnsupportedPlatform as exc:
        console.print(f"[bold red]Internal error (please report):[/bold red] {exc}")
        raise typer.Exit(code=EXIT_INTERNAL_ERROR)
