"""Rich terminal renderer for Cudalis builds.

Turns constraints, resolved triples, plans and results into Rich
renderables, with color-coded step states.

Color scheme
------------
- green     : APPLIED
- cyan      : CACHED
- red       : FAILED
- yellow    : RUNNING
- dim       : PENDING / NOT_RUN
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cudalis.models.catalog import CompatibilityEntry
from cudalis.models.plan import BuildPlan, BuildStep, ResolvedTriple, StepKind
from cudalis.models.results import BuildResult, StepRecord, StepStatus
from cudalis.models.versions import Component, Constraint, format_cuda


# ---------------------------------------------------------------------------
# Status -> Rich markup
# ---------------------------------------------------------------------------

_STATUS_ICONS: dict[StepStatus, str] = {
    StepStatus.APPLIED: "[green]APPLIED[/green]",
    StepStatus.CACHED: "[cyan]CACHED[/cyan]",
    StepStatus.FAILED: "[bold red]FAILED[/bold red]",
    StepStatus.RUNNING: "[yellow]RUNNING[/yellow]",
    StepStatus.PENDING: "[dim]PENDING[/dim]",
    StepStatus.NOT_RUN: "[dim]NOT RUN[/dim]",
}


def summarize_step(step: BuildStep) -> str:
    """One-line description of a step for tables and progress lines."""
    params = step.parameters
    if step.kind is StepKind.BASE_IMAGE:
        return f"FROM {params['image']}"
    if step.kind is StepKind.PYTHON_RUNTIME:
        return f"pyenv install {params['python']}"
    if step.kind is StepKind.PACKAGE_MANAGER:
        return "bootstrap pip, setuptools, wheel"
    if step.kind is StepKind.TORCH:
        return f"pip install torch=={params['torch']} ({params['variant']})"
    return f"commit {params['image_reference']}"


class BuildRenderer:
    """Renders Cudalis pipeline output to a Rich console.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    verbose:
        When True, ``print_progress`` also shows RUNNING transitions.
    """

    def __init__(self, console: Console | None = None, *, verbose: bool = False) -> None:
        self.console = console or Console()
        self.verbose = verbose

    def print_constraints(self, constraints: dict[Component, Constraint]) -> None:
        self.console.print("[bold cyan]Resolving with constraints:[/bold cyan]")
        for component, constraint in constraints.items():
            self.console.print(f"    {component.value:<7} {constraint.describe()}")
        self.console.print()

    def print_triple(self, triple: ResolvedTriple) -> None:
        self.console.print(
            Panel(
                "\n".join([
                    f"[bold]Python:[/bold]  {triple.python}",
                    f"[bold]PyTorch:[/bold] {triple.torch}",
                    f"[bold]CUDA:[/bold]    {format_cuda(triple.cuda)}",
                    "",
                    f"[dim]Catalog entry: {triple.entry.label()}[/dim]",
                ]),
                title="[bold]Resolved[/bold]",
                border_style="green",
                padding=(1, 2),
            )
        )

    def render_plan(self, plan: BuildPlan, cache_keys: list[str] | None = None) -> Table:
        table = Table(
            title=f"Build plan for {plan.image_reference}",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("#", style="dim", justify="right", width=3)
        table.add_column("Step", min_width=16)
        table.add_column("Summary")
        if cache_keys:
            table.add_column("Cache key", style="dim")
        for position, step in enumerate(plan.steps):
            row = [str(step.index), step.kind.value, summarize_step(step)]
            if cache_keys:
                row.append(cache_keys[position][:12])
            table.add_row(*row)
        return table

    def print_plan(self, plan: BuildPlan, cache_keys: list[str] | None = None) -> None:
        self.console.print(self.render_plan(plan, cache_keys))

    def print_progress(self, record: StepRecord) -> None:
        """Progress callback for ``Orchestrator.execute``."""
        if record.status is StepStatus.RUNNING and not self.verbose:
            return
        timing = (
            f" [dim]({record.duration_seconds:.1f}s)[/dim]"
            if record.duration_seconds
            else ""
        )
        self.console.print(
            f"[+] Step {record.index} {record.kind.value}: "
            f"{_STATUS_ICONS[record.status]}{timing}"
        )

    def print_result(self, result: BuildResult) -> None:
        if result.success:
            body = [
                "[bold green]Build succeeded[/bold green]",
                "",
                f"[bold]Image:[/bold]   {result.image_reference}",
                f"[bold]Applied:[/bold] {result.steps_with_status(StepStatus.APPLIED)}",
                f"[bold]Cached:[/bold]  {result.steps_with_status(StepStatus.CACHED)}",
            ]
            style = "green"
        else:
            headline = "Build cancelled" if result.cancelled else "Build failed"
            body = [f"[bold red]{headline}[/bold red]", ""]
            if result.failed_step is not None:
                body.append(f"[bold]Failed step:[/bold] {result.failed_step}")
            body.append(f"[bold]Diagnostic:[/bold]  {result.diagnostic}")
            cached = result.steps_with_status(StepStatus.APPLIED) + result.steps_with_status(
                StepStatus.CACHED
            )
            if cached:
                body.append(
                    f"[dim]Steps {sorted(cached)} are cached; re-run to resume.[/dim]"
                )
            style = "red"
        self.console.print(
            Panel("\n".join(body), title="[bold]Cudalis[/bold]", border_style=style, padding=(1, 2))
        )

    def print_entries(self, entries: list[CompatibilityEntry], title: str) -> None:
        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("Python", style="green")
        table.add_column("PyTorch", style="green")
        table.add_column("CUDA")
        for entry in entries:
            table.add_row(str(entry.python), str(entry.torch), format_cuda(entry.cuda))
        self.console.print(table)
