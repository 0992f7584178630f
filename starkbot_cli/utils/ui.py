"""Console helpers shared by the CLI commands."""

from __future__ import annotations

from rich.console import Console

console = Console()
err_console = Console(stderr=True)

PREFIX = {
    "you": "[bold green]you>[/bold green]",
    "agent": "[bold cyan]agent>[/bold cyan]",
    "system": "[bold blue]system>[/bold blue]",
    "error": "[bold red]error>[/bold red]",
}


def role_prefix(role: str) -> str:
    if role == "user":
        return PREFIX["you"]
    if role == "assistant":
        return PREFIX["agent"]
    return f"[dim]{role}>[/dim]"


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}", highlight=False)


def print_success(message: str) -> None:
    console.print(f"[green]OK[/green] {message}", highlight=False)


def print_warning(message: str) -> None:
    console.print(f"[yellow]![/yellow] {message}", highlight=False)


def print_key_value(key: str, value: str | None) -> None:
    shown = value if value else "[dim]-[/dim]"
    console.print(f"  [dim]{key}:[/dim] {shown}", highlight=False)
