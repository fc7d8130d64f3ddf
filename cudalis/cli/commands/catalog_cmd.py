"""``cudalis catalog``: list the catalog or import a wheel index page."""

from __future__ import annotations

from pathlib import Path

import typer

from cudalis.cli._common import (
    EXIT_INTERNAL_ERROR,
    EXIT_USER_ERROR,
    build_request,
    catalog_option,
    configure_logging,
    console,
    cuda_option,
    open_catalog,
    python_option,
    torch_option,
)
from cudalis.config import CudalisSettings
from cudalis.core.catalog import CatalogLoadError, catalog_from_document
from cudalis.index.wheel_index import build_document, parse_wheel_index
from cudalis.models.catalog import CompatibilityEntry
from cudalis.monitor.renderer import BuildRenderer

catalog_app = typer.Typer(
    help="Inspect and import compatibility catalogs.",
    no_args_is_help=True,
    add_completion=False,
)


@catalog_app.command(name="list", help="List catalog entries matching the filters.")
def list_cmd(
    python: str = python_option(),
    torch: str = torch_option(),
    cuda: str = cuda_option(),
    catalog: Path = catalog_option(),
) -> None:
    settings = CudalisSettings()
    configure_logging(settings)
    compat = open_catalog(catalog, settings)
    # Listing never applies the macOS CPU default.
    request = build_request(
        python, torch, cuda, settings.model_copy(update={"cpu_only_on_macos": False})
    )
    entries = sorted(
        compat.lookup(request.python, request.torch, request.cuda),
        key=CompatibilityEntry.sort_key,
        reverse=True,
    )
    if not entries:
        console.print("[dim]No matching catalog entries.[/dim]")
        return
    BuildRenderer(console).print_entries(
        entries, title=f"Catalog entries ({len(entries)} of {len(compat)})"
    )


@catalog_app.command(name="import", help="Build a catalog from a saved torch_stable.html.")
def import_cmd(
    index_file: Path = typer.Argument(..., help="Saved wheel index page (HTML)."),
    output: Path = typer.Option(
        Path("catalog.json"), "--output", "-o", help="Where to write the catalog JSON."
    ),
    os_name: str = typer.Option("linux", "--os", help="Wheel platform OS to keep."),
    arch: str = typer.Option("x86_64", "--arch", help="Wheel platform architecture to keep."),
    catalog: Path = catalog_option(),
) -> None:
    settings = CudalisSettings()
    configure_logging(settings)
    if not index_file.exists():
        console.print(f"[bold red]Index file not found:[/bold red] {index_file}")
        raise typer.Exit(code=EXIT_USER_ERROR)

    base = open_catalog(catalog, settings)
    entries = parse_wheel_index(
        index_file.read_text(encoding="utf-8"), os_name=os_name, arch=arch
    )
    if not entries:
        console.print("[bold red]No torch wheels found for this platform.[/bold red]")
        raise typer.Exit(code=EXIT_USER_ERROR)

    document, dropped = build_document(entries, base.recipes, base.declarations)
    try:
        imported = catalog_from_document(document)
    except CatalogLoadError as exc:
        console.print(f"[bold red]Imported catalog is inconsistent:[/bold red] {exc}")
        raise typer.Exit(code=EXIT_INTERNAL_ERROR)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document.model_dump_json(indent=2) + "\n", encoding="utf-8")
    for version in dropped:
        console.print(f"[yellow]Dropped CUDA {version}: no base image recipe.[/yellow]")
    console.print(
        f"[green]Wrote {len(imported)} entries to {output}[/green]"
    )
