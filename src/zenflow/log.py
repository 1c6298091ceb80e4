"""Console output for zenflow, colored via Rich.

Everything a command prints goes through here. Values that come from
users or the repository (task titles, branch names, paths) pass through
``escape`` in the ``field`` / ``item`` helpers so brackets in them are
never read as Rich markup.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def info(msg: str) -> None:
    console.print(f"[blue]\\[zenflow][/blue] {msg}")


def success(msg: str) -> None:
    console.print(f"[green]\\[zenflow ✓][/green] {msg}")


def warn(msg: str) -> None:
    console.print(f"[yellow]\\[zenflow !][/yellow] {msg}")


def error(msg: str) -> None:
    _err_console.print(f"[bold red]✗ {msg}[/bold red]")


def hint(msg: str) -> None:
    """Dim follow-up line under an error (detail or suggestion)."""
    _err_console.print(f"  [dim]{msg}[/dim]")


def debug(msg: str) -> None:
    if _verbose:
        console.print(f"[dim]\\[debug] {msg}[/dim]")


def heading(title: str) -> None:
    console.print(f"[bold]{escape(title)}:[/bold]")


def field(label: str, value: str, style: str = "bold") -> None:
    """``Label: value`` line; *value* is escaped, *label* is not."""
    console.print(f"[{style}]{label}:[/{style}] {escape(value)}")


def item(text: str, marker: str = "-") -> None:
    console.print(f"  {marker} {escape(text)}")
