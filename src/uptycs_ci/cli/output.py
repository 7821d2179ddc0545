"""Console output for the CLI."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..utils.config import RunConfig
from ..utils.formatting import format_score

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def echo(line: str) -> None:
    """Print an audit line verbatim."""
    console.print(line, markup=False, soft_wrap=True)


def display_banner(version: str, config: RunConfig) -> None:
    """Display run header."""
    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")

    table.add_row("Image", config.system_id)
    table.add_row("CI runner", config.ci_runner.value)
    table.add_row("Fatal CVSS score", format_score(config.fatal_cvss_score))
    table.add_row("Results file", str(config.results_file))

    console.print()
    console.print(Panel.fit(table, title=f"[bold cyan]Uptycs CI Scanner v{version}[/bold cyan]", border_style="cyan"))
    console.print()


def print_error(message: str) -> None:
    err_console.print("[bold red]Error:[/bold red]", end=" ")
    err_console.print(message, markup=False)
