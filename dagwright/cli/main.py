"""Main CLI entry point using Typer."""

import json
from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from dagwright import __version__
from dagwright.core.config import get_settings
from dagwright.core.exceptions import CircularDependency, PlanningFailed
from dagwright.execution.supervisor import TaskAttempt
from dagwright.planning.models import Plan

app = typer.Typer(
    name="dagwright",
    help="Dagwright - plan engineering requests as task graphs and run them with verification",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

STATUS_COLORS = {
    "completed": "green",
    "failed": "red",
    "cancelled": "yellow",
    "running": "cyan",
    "pending": "dim",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Dagwright[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Dagwright - task-graph planning and supervised execution.

    Decomposes a request into dependent tasks, runs them one at a time,
    verifies each with its validation command and re-plans on failure.
    """
    pass


def _load_query(query: str | None, file: Path | None) -> str:
    """Resolve the request text from the argument or --file."""
    if file is not None:
        if not file.is_file():
            console.print(f"[bold red]Request file not found: {file}[/bold red]")
            raise typer.Exit(code=2)
        console.print(f"[dim]Loaded request from {file}[/dim]")
        return file.read_text(encoding="utf-8").strip()
    if not query:
        console.print("[bold red]Provide a request or --file[/bold red]")
        raise typer.Exit(code=2)
    return query


def _plan_table(plan: Plan) -> Table:
    critical = set(plan.critical_path)
    table = Table(title=f"Execution Plan ({plan.strategy.value if plan.strategy else 'unknown'})")
    table.add_column("#", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Kind")
    table.add_column("Description", style="bold")
    table.add_column("Depends On")
    table.add_column("Validation", style="dim")

    for index, task_id in enumerate(plan.order, start=1):
        node = plan.graph.nodes[task_id]
        marker = " [magenta]*[/magenta]" if task_id in critical else ""
        deps = ", ".join(node.dependencies) or "-"
        table.add_row(
            str(index),
            f"{task_id}{marker}",
            node.type.value,
            escape(node.description[:60] + "..." if len(node.description) > 60 else node.description),
            deps,
            escape(node.validation_command or "-"),
        )
    return table


@app.command()
def plan(
    query: str | None = typer.Argument(None, help="Engineering request"),
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Workspace directory used as planning context",
    ),
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        help="Read the request from a file",
    ),
    hint: str | None = typer.Option(
        None,
        "--hint",
        help="Project type hint (e.g. 'script')",
    ),
    active_file: str | None = typer.Option(
        None,
        "--active-file",
        "-a",
        help="File you are currently working on",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the plan as JSON",
    ),
) -> None:
    """
    Build a task graph without executing it.

    Example:
        dagwright plan "git pull then npm install" -w ./my-app
    """
    request_text = _load_query(query, file)

    async def do_plan() -> None:
        from dagwright.core.orchestrator import Dagwright

        dagwright = Dagwright(workspace=workspace)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Planning...", total=None)
            try:
                result = await dagwright.plan(request_text, project_hint=hint, active_file=active_file)
            except (PlanningFailed, CircularDependency) as e:
                console.print(f"\n[bold red]Planning failed: {escape(str(e))}[/bold red]")
                raise typer.Exit(code=1)

        console.print(_plan_table(result))
        console.print(
            Panel(
                " -> ".join(result.critical_path),
                title="[bold magenta]Critical Path[/bold magenta]",
                border_style="magenta",
            )
        )

        if output:
            output.write_text(json.dumps(result.to_dict(), indent=2))
            console.print(f"[green]Saved to {output}[/green]")

    anyio.run(do_plan)


def _print_attempt(attempt: TaskAttempt) -> None:
    color = STATUS_COLORS.get(attempt.status.value, "white")
    indent = "  " * (attempt.depth + 1)
    line = f"{indent}[{color}]{attempt.status.value}[/{color}] {attempt.task_id} - {escape(attempt.description)}"
    if attempt.error:
        line += f"\n{indent}  [dim]{escape(attempt.error[:200])}[/dim]"
    console.print(line)


@app.command()
def run(
    query: str | None = typer.Argument(None, help="Engineering request"),
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Workspace directory tasks operate on",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Record actions instead of performing them",
    ),
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        help="Read the request from a file",
    ),
    max_recovery_depth: int | None = typer.Option(
        None,
        "--max-recovery-depth",
        "-r",
        min=0,
        help="Maximum nesting of recovery plans",
    ),
    hint: str | None = typer.Option(
        None,
        "--hint",
        help="Project type hint (e.g. 'script')",
    ),
    active_file: str | None = typer.Option(
        None,
        "--active-file",
        "-a",
        help="File you are currently working on",
    ),
) -> None:
    """
    Plan a request and execute it task by task.

    Example:
        dagwright run "create hello.py that prints hello and run it" -w ./scratch
        dagwright run --file request.md --dry-run
    """
    request_text = _load_query(query, file)

    console.print(
        Panel(
            f"[bold]Request:[/bold]\n{escape(request_text[:300])}{'...' if len(request_text) > 300 else ''}",
            title="[bold blue]Dagwright[/bold blue]" + (" [yellow](dry run)[/yellow]" if dry_run else ""),
            border_style="blue",
        )
    )

    settings = get_settings()
    if max_recovery_depth is not None:
        settings = settings.model_copy(update={"dagwright_max_recovery_depth": max_recovery_depth})

    async def execute() -> dict:
        from dagwright.core.orchestrator import Dagwright

        dagwright = Dagwright(settings=settings, workspace=workspace, dry_run=dry_run)
        return await dagwright.execute(
            request_text,
            project_hint=hint,
            active_file=active_file,
            on_attempt=_print_attempt,
        )

    result = anyio.run(execute)

    status = result["status"]
    if status == "completed":
        console.print("\n[bold green]Run completed successfully![/bold green]")
    elif status == "cancelled":
        console.print(f"\n[bold yellow]Run cancelled: {escape(str(result.get('error')))}[/bold yellow]")
    else:
        console.print(f"\n[bold red]Run failed: {escape(str(result.get('error')))}[/bold red]")

    recoveries = (result.get("log") or {}).get("recoveries", [])
    if recoveries:
        table = Table(title="Recoveries")
        table.add_column("Task", style="cyan")
        table.add_column("Attempt")
        table.add_column("Outcome")
        table.add_column("Recovery Tasks", style="dim")
        for record in recoveries:
            table.add_row(
                record["task_id"],
                str(record["attempt"]),
                record["outcome"],
                ", ".join(record["recovery_task_ids"]) or "-",
            )
        console.print(table)

    dispatched = (result.get("log") or {}).get("dispatched", [])
    console.print(
        f"[dim]Dispatched {len(dispatched)} task(s) in {result.get('duration_seconds', 0):.1f}s[/dim]"
    )

    if status != "completed":
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
