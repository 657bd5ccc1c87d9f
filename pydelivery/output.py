"""Output formatting for the pydelivery CLI."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Prints CLI messages as rich text or as JSON.

    Status messages go to stderr so that ``--json`` output on stdout stays
    machine readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the formatter.

        Args:
            json_output: Emit results as JSON instead of rich text
            quiet: Suppress informational messages
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def print(self, message: str = "") -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(f"[green]✓[/green] {message}", highlight=False)

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]Warning:[/yellow] {message}", highlight=False)

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def progress_message(self, message: str) -> None:
        """Print a dimmed per-file progress line."""
        if not self.quiet and not self.json_output:
            self.err_console.print(f"[dim]{message}[/dim]", highlight=False)

    def output_json(self, data: Any) -> None:
        """Write ``data`` as indented JSON to stdout."""
        json.dump(data, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")

    def print_summary(
        self, title: str, items: list[tuple[str, str]], footer: Optional[str] = None
    ) -> None:
        """Print a two-column summary table."""
        if self.quiet or self.json_output:
            return

        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)

        self.console.print(table)
        if footer:
            self.console.print(footer, highlight=False)
