import structlog
import typer

from lynxaudit.commands.api_client import ApiClient
from lynxaudit.commands.formatters import OutputFormat
from lynxaudit.commands.formatters import render
from lynxaudit.core.container import get_container
from lynxaudit.core.decorators import EXIT_FINDINGS
from lynxaudit.core.decorators import handle_errors
from lynxaudit.core.logging import console
from lynxaudit.core.logging import err_console
from lynxaudit.core.logging import setup_logging
from lynxaudit.models.scan import ScanRequest

logger = structlog.get_logger('scan_command')


@handle_errors
def main(
    ecosystem: str = typer.Argument(..., help='Package ecosystem (pypi, npm, maven, go, rubygems)'),
    package: str = typer.Argument(..., help='Package name to scan'),
    ver: str | None = typer.Option(None, '--ver', help='Package version to scan (default: latest)'),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, '--output', '-o', help='Output format'),
    server: str | None = typer.Option(None, '--server', '-s', help='Scan through a running lynxaudit server'),
    timeout: int = typer.Option(60, '--timeout', '-t', help='Remote scan timeout in seconds'),
    deep: bool = typer.Option(False, '--deep', '-d', help='Show vulnerabilities for each dependency'),
    verbose: bool = typer.Option(False, '--verbose', help='Enable verbose logging'),
):
    """
    Scan a package and its dependency tree for known vulnerabilities.
    """
    if verbose:
        setup_logging('DEBUG')
    if output is OutputFormat.SARIF:
        raise ValueError('SARIF output is only available for manifest scans (lynx file)')

    request = ScanRequest(ecosystem=ecosystem, package=package, version=ver)

    if server:
        with err_console.status(f"Scanning {package} via {server}..."):
            report = ApiClient(server, timeout=timeout).scan(request)
    else:
        with err_console.status(f"Scanning [cyan]{package}[/cyan] ({request.ecosystem})..."):
            report = get_container().get_scanner_service().scan_package(request)

    err_console.print(f"[green]✓[/green] Scan completed for [cyan]{report.target}[/cyan]@[yellow]{report.version}[/yellow]")
    render(report, output, console, deep=deep)

    if report.summary.has_blocking:
        raise typer.Exit(EXIT_FINDINGS)
