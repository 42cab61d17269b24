# Replisync Console Output
# Rich-based console output for replication runs and status

from typing import Any, Optional

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table

from replisync.config.schema import ReplicationConfig
from replisync.sync.checkpoint import CheckpointRecord
from replisync.sync.runner import CycleResult


class Console:
    """
    Console output manager using Rich.

    Provides formatted output for replication runs.
    """

    def __init__(self, *, verbose: bool = False, colored: bool = True, console: Optional[RichConsole] = None):
        """
        Initialize console.

        Args:
            verbose: Enable verbose output.
            colored: Enable colored output.
            console: Rich console to write to (created if not given).
        """
        self.verbose = verbose
        self._console = console or RichConsole(no_color=not colored, highlight=colored)

    @property
    def rich(self) -> RichConsole:
        return self._console

    def print(self, *args, **kwargs) -> None:
        """Print to console."""
        self._console.print(*args, **kwargs)

    def print_error(self, message: str) -> None:
        """Print error message."""
        self._console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self._console.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str) -> None:
        """Print success message."""
        self._console.print(f"[green]{message}[/green]")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self._console.print(f"[blue]{message}[/blue]")

    def print_document(self, name: str, direction: str, document: dict[str, Any], key_field: str = "id") -> None:
        """Print one sent or received document; only shown in verbose mode."""
        if not self.verbose:
            return
        arrow = "[yellow]↑[/yellow]" if direction == "sent" else "[cyan]↓[/cyan]"
        key = document.get(key_field, "?")
        self._console.print(f"    {arrow} [bold]{name}[/bold] {key}")

    def print_active(self, name: str, active: bool) -> None:
        """Print an active/idle transition in verbose mode."""
        if self.verbose:
            state = "[yellow]cycle started[/yellow]" if active else "[dim]idle[/dim]"
            self._console.print(f"  [bold]{name}[/bold]: {state}")

    def print_cycle_errors(self, name: str, error: Exception) -> None:
        """Print a failed cycle, including the underlying cause when there is one."""
        self._console.print(f"[red]✗[/red] [bold]{name}[/bold]: {error}")
        cause = error.__cause__
        if cause is not None and self.verbose:
            self._console.print(f"    [dim]caused by {type(cause).__name__}: {cause}[/dim]")

    def print_run_summary(self, results: dict[str, Optional[CycleResult]], counts: dict[str, dict[str, int]]) -> None:
        """
        Print summary panel after a run.

        Args:
            results: Replication name to the last cycle result (None if no cycle ran).
            counts: Replication name to {"sent": n, "received": n, "errors": n}.
        """
        lines = []
        all_ok = True
        for name in sorted(results):
            result = results[name]
            count = counts.get(name, {})
            if result is not None and result.success:
                marker = "[green]✓[/green]"
            else:
                marker = "[red]✗[/red]"
                all_ok = False
            lines.append(
                f"{marker} {name}: {count.get('sent', 0)} sent, "
                f"{count.get('received', 0)} received, {count.get('errors', 0)} errors"
            )

        self._console.print(
            Panel(
                "\n".join(lines) or "[dim]No replications ran[/dim]",
                title="Summary",
                border_style="green" if all_ok else "red",
            )
        )

    def print_status(
        self,
        replications: dict[str, ReplicationConfig],
        records: dict[str, CheckpointRecord],
    ) -> None:
        """
        Print checkpoint status for configured replications.

        Args:
            replications: Name to replication config.
            records: Checkpoint key to stored record.
        """
        if not replications:
            self._console.print("[dim]No replications configured[/dim]")
            return

        table = Table(title="Replications", show_header=True, header_style="bold")
        table.add_column("Name", style="cyan")
        table.add_column("Collection")
        table.add_column("Directions", justify="center")
        table.add_column("Mode")
        table.add_column("Checkpoint")
        table.add_column("Updated", style="dim")

        for name, replication in sorted(replications.items()):
            directions = []
            if replication.push is not None:
                directions.append("push")
            if replication.pull is not None:
                directions.append("pull")

            mode = f"live ({replication.live_interval} ms)" if replication.live else "one-shot"
            record = records.get(replication.checkpoint_key)
            checkpoint = "[dim]none[/dim]" if record is None else repr(record.value)
            updated = record.updated_at[:19] if record and record.updated_at else "Never"

            table.add_row(name, replication.collection, "+".join(directions) or "-", mode, checkpoint, updated)

        self._console.print()
        self._console.print(table)
        self._console.print()

    def print_config_summary(self, config_path: str, replications_count: int) -> None:
        """Print configuration summary."""
        self._console.print(
            Panel(
                f"Config: {config_path}\nReplications: {replications_count}",
                title="Replisync Configuration",
                border_style="blue",
            )
        )


def create_console(*, verbose: bool = False, colored: bool = True) -> Console:
    """
    Create a console instance.

    Args:
        verbose: Enable verbose output.
        colored: Enable colored output.

    Returns:
        Console instance.
    """
    return Console(verbose=verbose, colored=colored)
