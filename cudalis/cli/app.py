"""Main Typer application — imports and registers all CLI commands.

Entry point: ``cudalis`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from cudalis.cli.commands.build import build_cmd
from cudalis.cli.commands.catalog_cmd import catalog_app
from cudalis.cli.commands.resolve import plan_cmd, resolve_cmd

app = typer.Typer(
    name="cudalis",
    help="Cudalis: reproducible Python + PyTorch + CUDA container images.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="build", help="Resolve, plan and build an image.")(build_cmd)
app.command(name="resolve", help="Show the resolved version triple.")(resolve_cmd)
app.command(name="plan", help="Show the build plan without building.")(plan_cmd)
app.add_typer(catalog_app, name="catalog")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
