import functools
from collections.abc import Callable
from typing import Any

import pydantic
import structlog
import typer
from rich.markup import escape

from lynxaudit.core.errors import LynxError
from lynxaudit.core.errors import ManifestParseError
from lynxaudit.core.logging import err_console

logger = structlog.get_logger('cli')

# Exit codes: 0 clean, 1 critical/high findings, 2 operational failure
EXIT_FINDINGS = 1
EXIT_FAILURE = 2


def _describe(error: Exception) -> tuple[str, str]:
    """(label, message) for the one-line error shown to the user."""
    if isinstance(error, pydantic.ValidationError):
        messages = [
            f"{'.'.join(str(p) for p in e['loc'])}: {e['msg'].removeprefix('Value error, ')}"
            for e in error.errors()
        ]
        return 'Invalid input', '; '.join(messages)
    if isinstance(error, ManifestParseError):
        return 'Manifest error', str(error)
    if isinstance(error, (LynxError, ValueError)):
        return 'Error', str(error)
    if isinstance(error, OSError):
        return 'I/O error', str(error)
    return 'Unexpected error', str(error) or error.__class__.__name__


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Map command failures to a red message and exit code 2."""
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except KeyboardInterrupt:
            err_console.print('\n[yellow]Operation cancelled by user.[/]')
            raise typer.Exit(130)
        except Exception as e:
            label, message = _describe(e)
            err_console.print(f"[bold red]{label}:[/] {escape(message)}", highlight=False)
            if isinstance(e, (LynxError, ValueError, OSError)):
                logger.debug('Command failed', exc_info=True)
            else:
                logger.exception('Unexpected error')
            raise typer.Exit(EXIT_FAILURE)
    return wrapper
