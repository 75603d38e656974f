"""Rich console helpers for CLI output."""

from rich.console import Console

_console: Console | None = None
_err_console: Console | None = None


def get_console() -> Console:
    """Return the shared stdout console."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_err_console() -> Console:
    """Return the shared stderr console."""
    global _err_console
    if _err_console is None:
        _err_console = Console(stderr=True)
    return _err_console


def print_success(message: str) -> None:
    get_console().print(f"[green]✓[/green] {message}")


def print_info(message: str) -> None:
    get_console().print(f"[cyan]ℹ[/cyan] {message}")


def print_warning(message: str) -> None:
    get_console().print(f"[yellow]![/yellow] {message}")


def print_error(message: str) -> None:
    get_err_console().print(f"[red]✗[/red] {message}")
