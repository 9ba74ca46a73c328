import typer

from lynxaudit.commands.api_client import ApiClient
from lynxaudit.core.errors import LynxError
from lynxaudit.core.logging import console
from lynxaudit.core.logging import err_console


def main(
    url: str = typer.Argument(..., help='Server URL, e.g. http://localhost:8080'),
    timeout: int = typer.Option(10, '--timeout', '-t', help='Timeout in seconds'),
):
    """
    Check the health of a running lynxaudit server.
    """
    try:
        health = ApiClient(url, timeout=timeout).health()
    except LynxError as e:
        err_console.print(f"[bold red]✗ Server unhealthy:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Server is [bold]{health.get('status', 'unknown')}[/bold]")
    if health.get('version'):
        console.print(f"  Version: {health['version']}")
    if health.get('uptime') is not None:
        console.print(f"  Uptime: {float(health['uptime']):.0f}s")
