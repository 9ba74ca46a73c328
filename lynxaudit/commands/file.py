from pathlib import Path

import structlog
import typer
from rich.progress import BarColumn
from rich.progress import MofNCompleteColumn
from rich.progress import Progress
from rich.progress import SpinnerColumn
from rich.progress import TextColumn
from rich.progress import TimeElapsedColumn

from lynxaudit.commands.formatters import OutputFormat
from lynxaudit.commands.formatters import render
from lynxaudit.core.container import get_container
from lynxaudit.core.decorators import EXIT_FINDINGS
from lynxaudit.core.decorators import handle_errors
from lynxaudit.core.logging import console
from lynxaudit.core.logging import err_console
from lynxaudit.core.logging import setup_logging
from lynxaudit.services.scanner_service import ScanReporter

logger = structlog.get_logger('file_command')


class ProgressReporter(ScanReporter):
    """Drives a rich progress bar from manifest scan events."""

    def __init__(self, progress: Progress, verbose: bool = False):
        self.progress = progress
        self.verbose = verbose
        self.task = progress.add_task('Scanning', total=None)

    def start(self, total: int) -> None:
        self.progress.update(self.task, total=total)

    def package_started(self, index: int, name: str) -> None:
        self.progress.update(self.task, description=f"Scanning [cyan]{name}[/cyan]")

    def package_finished(self, index, name, report, error) -> None:
        self.progress.advance(self.task)

    def log(self, message: str) -> None:
        if self.verbose:
            self.progress.console.print(f"[dim]{message}[/dim]")


@handle_errors
def main(
    path: Path = typer.Argument(..., help='Manifest file (requirements.txt, package.json, go.mod, Gemfile, pom.xml)'),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, '--output', '-o', help='Output format'),
    deep: bool = typer.Option(False, '--deep', '-d', help='Run a full dependency scan for every declared package'),
    verbose: bool = typer.Option(False, '--verbose', help='Enable verbose logging'),
):
    """
    Scan a dependency manifest file.
    """
    if verbose:
        setup_logging('DEBUG')

    content = path.read_text(encoding='utf-8')
    scanner = get_container().get_scanner_service()
    manifest = scanner.manifests.parse(content, path.name)
    err_console.print(
        f"Found [bold]{len(manifest.dependencies)}[/bold] {manifest.ecosystem} dependencies in {path.name}",
    )

    with Progress(
        SpinnerColumn(),
        TextColumn('[progress.description]{task.description}'),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    ) as progress:
        report = scanner.scan_manifest(
            content, path.name, deep=deep,
            reporter=ProgressReporter(progress, verbose=verbose), manifest=manifest,
        )

    render(report, output, console, deep=deep)

    if report.summary.has_blocking:
        raise typer.Exit(EXIT_FINDINGS)
