"""mindvault CLI application - main entry point."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from mindvault.exceptions import LockTimeoutError, MindError
from mindvault.store import Mind

from .hook import hook_app

T = TypeVar("T")

app = typer.Typer(
    name="mindvault",
    help="Persistent memory for coding agent sessions",
    no_args_is_help=True,
)

console = Console()

ProjectOption = typer.Option(None, "--project", "-p", help="Project root (defaults to $CLAUDE_PROJECT_DIR or cwd)")
MemoryPathOption = typer.Option(None, "--memory-path", help="Memory file path, relative to the project root")


def _format_timestamp(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _run(project: Optional[Path], memory_path: Optional[str], operation: Callable[[Mind], Awaitable[T]]) -> T:
    """Open the store and run one operation, turning store errors into exit code 1."""

    async def _open_and_run() -> T:
        overrides: dict[str, Any] = {"memory_path": memory_path} if memory_path else {}
        mind = await Mind.open(project_dir=project, **overrides)
        return await operation(mind)

    try:
        return asyncio.run(_open_and_run())
    except LockTimeoutError as e:
        console.print(f"[red]Memory is busy: {e}[/red]")
        raise typer.Exit(1)
    except MindError as e:
        console.print(f"[red]Memory error: {e}[/red]")
        raise typer.Exit(1)


@app.command("search")
def search(
    query: str = typer.Argument(help="Search terms"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
    project: Optional[Path] = ProjectOption,
    memory_path: Optional[str] = MemoryPathOption,
):
    """Search memories.

    Examples:
        mindvault search "auth bug"
        mindvault search migration -n 5
    """
    results = _run(project, memory_path, lambda mind: mind.search(query, limit))

    if not results:
        console.print("[yellow]No memories found[/yellow]")
        return

    table = Table(title=f"Memories matching '{query}' ({len(results)} found)")
    table.add_column("Type", style="cyan", no_wrap=True)
    table.add_column("Summary", style="green")
    table.add_column("Snippet", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("When", style="dim")

    for result in results:
        observation = result.observation
        table.add_row(
            observation.type.value,
            observation.summary,
            result.snippet.replace("\n", " ")[:80],
            f"{result.score:.1f}",
            _format_timestamp(observation.timestamp),
        )

    console.print(table)


@app.command("ask")
def ask(
    question: str = typer.Argument(help="Question for the memory"),
    project: Optional[Path] = ProjectOption,
    memory_path: Optional[str] = MemoryPathOption,
):
    """Ask the memory a question."""
    answer = _run(project, memory_path, lambda mind: mind.ask(question))
    console.print(answer)


@app.command("recent")
def recent(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Also list memories relevant to this query"),
    project: Optional[Path] = ProjectOption,
    memory_path: Optional[str] = MemoryPathOption,
):
    """Show recent observations within the context token budget."""
    context = _run(project, memory_path, lambda mind: mind.get_context(query))

    if not context.recent_observations:
        console.print("[yellow]No observations yet[/yellow]")
    else:
        table = Table(title=f"Recent observations (~{context.token_count} tokens)")
        table.add_column("When", style="dim", no_wrap=True)
        table.add_column("Type", style="cyan")
        table.add_column("Tool", style="dim")
        table.add_column("Summary", style="green")
        for observation in context.recent_observations:
            table.add_row(
                _format_timestamp(observation.timestamp),
                observation.type.value,
                observation.tool or "-",
                observation.summary,
            )
        console.print(table)

    if query:
        console.print(f"\n[bold]Relevant to '{query}':[/bold] {len(context.relevant_memories)} found")
        for observation in context.relevant_memories:
            console.print(f"  {observation.headline}")


@app.command("stats")
def stats(
    project: Optional[Path] = ProjectOption,
    memory_path: Optional[str] = MemoryPathOption,
):
    """Show memory statistics."""
    result = _run(project, memory_path, lambda mind: mind.stats())

    table = Table(title="Memory statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Observations", f"{result.total_observations:,}")
    table.add_row("Sessions", f"{result.total_sessions:,}")
    table.add_row("Oldest", _format_timestamp(result.oldest_memory))
    table.add_row("Newest", _format_timestamp(result.newest_memory))
    table.add_row("File size", f"{result.file_size / 1024:.1f} KB")
    for type_name, count in result.top_types.items():
        table.add_row(f"  {type_name}", f"{count:,}")

    console.print(table)


app.add_typer(hook_app, name="hook")
