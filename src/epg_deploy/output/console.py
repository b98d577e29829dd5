"""Rich console output for the epg-deploy CLI."""

import shlex

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..config import Settings
from ..models import CombineResult, Topology

console = Console()
err_console = Console(stderr=True)

MODE_LABELS = {
    "multi": "multi-site (combined channels.xml)",
    "single": "single site",
    "fallback": "fallback channels file",
}


def print_topology(topology: Topology) -> None:
    """Render descriptors as a Rich table."""
    table = Table(title=f"Topology — {MODE_LABELS[topology.mode]}", show_lines=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Restart", style="green")
    table.add_column("Schedule", style="white")
    table.add_column("Runs", style="white")

    for p in topology.processes:
        restart = p.restart
        if p.backoff_ms:
            restart += f" (backoff {p.backoff_ms}ms)"
        if p.stop_exit_codes:
            restart += f" (stop on {', '.join(str(c) for c in p.stop_exit_codes)})"
        table.add_row(
            p.name,
            restart,
            p.schedule or "[dim]—[/dim]",
            escape(shlex.join(p.job or p.command)),
        )

    console.print(table)


def print_settings(settings: Settings) -> None:
    """Render the resolved configuration."""
    table = Table(title="Settings", show_header=False, show_lines=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")

    data = settings.model_dump(exclude={"layout"})
    for key, value in data.items():
        if isinstance(value, list):
            value = escape(", ".join(value)) if value else "[dim](none)[/dim]"
        elif value is None:
            value = "[dim](unset)[/dim]"
        else:
            value = escape(str(value))
        table.add_row(key, value)
    console.print(table)

    layout_table = Table(title="Layout", show_header=False, show_lines=False)
    layout_table.add_column("Key", style="green", no_wrap=True)
    layout_table.add_column("Path")
    for key, value in settings.layout.model_dump().items():
        layout_table.add_row(key, value)
    console.print(layout_table)


def print_combine_result(result: CombineResult) -> None:
    state = "[green]rebuilt[/green]" if result.rebuilt else "[blue]up to date[/blue]"
    lines = [
        f"{state}  {escape(result.path)}",
        f"[bold]{len(result.sites)}[/bold] sites  |  [bold]{result.files}[/bold] fragments",
    ]
    if result.skipped:
        lines.append(f"[yellow]Skipped {len(result.skipped)}:[/yellow]")
        lines.extend(f"  {escape(path)}" for path in result.skipped)
    console.print(Panel("\n".join(lines), title="Combined channels", border_style="blue"))
