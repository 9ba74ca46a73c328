import logging
import os
import sys
from typing import Any

import structlog
from rich.console import Console
from rich.markup import escape

# Reports (tables, JSON, SARIF) go to stdout
console = Console()
# Progress, errors and log events go to stderr
err_console = Console(stderr=True)

SENSITIVE_KEYS = frozenset({'token', 'authorization', 'password', 'github_token'})
MASK = '*****'

# Rendered ahead of the event so interleaved job logs stay readable
_CONTEXT_KEYS = ('job_id', 'scan_id')


def redact_secrets(logger, method_name, event_dict):
    """Mask credential-looking values before any renderer sees them."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = MASK
    return event_dict


def drop_style_processor(logger, method_name, event_dict):
    """Strip the console-only ``_style`` hint from machine-readable output."""
    event_dict.pop('_style', None)
    return event_dict


class RichConsoleRenderer:
    """
    Render structlog events as one rich line on stderr.

    Layout: ``timestamp logger LEVEL [job] event key=value ...``. An optional
    ``_style`` entry in the event dict styles the whole line.
    """

    _LEVEL_STYLES = {
        'debug': 'dim',
        'info': 'green',
        'warning': 'yellow',
        'error': 'bold red',
        'critical': 'bold magenta',
    }

    def __init__(self, target: Console | None = None):
        self._console = target or err_console

    def __call__(self, logger, name, event_dict):
        style = event_dict.pop('_style', None)
        event = event_dict.pop('event', '')
        level = event_dict.pop('level', 'info')
        logger_name = event_dict.pop('logger', None)
        timestamp = event_dict.pop('timestamp', None)
        exception = event_dict.pop('exception', None) or event_dict.pop('exc_info', None)
        stack = event_dict.pop('stack_info', None)

        level_style = self._LEVEL_STYLES.get(level, 'white')
        line = []
        if timestamp:
            line.append(f"[dim]{timestamp}[/dim]")
        if logger_name:
            line.append(f"[bold]{logger_name}[/bold]")
        line.append(f"[{level_style}]{level:<8}[/{level_style}]")

        context = [str(event_dict.pop(k)) for k in _CONTEXT_KEYS if event_dict.get(k)]
        if context:
            line.append(f"[magenta]\\[{' '.join(context)}][/magenta]")

        line.append(escape(str(event)))
        line.extend(f"[cyan]{k}[/cyan]=[green]{escape(repr(v))}[/green]" for k, v in event_dict.items())

        text = ' '.join(line)
        if exception:
            text += f"\n[red]{escape(str(exception))}[/red]"
        if stack:
            text += f"\n[dim]{stack}[/dim]"

        self._console.print(text, style=style, highlight=False)
        # Already printed; keep the stdlib logger from emitting an empty record
        raise structlog.DropEvent


def setup_logging(level: str = 'INFO', json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    ``json_logs`` defaults to JSON lines when ``ENV=production`` or
    ``LOG_FORMAT=json``, otherwise the rich renderer is used.
    """
    level = level.upper()
    logging.basicConfig(format='%(message)s', stream=sys.stderr, level=level)
    logging.getLogger().setLevel(level)

    if json_logs is None:
        json_logs = os.getenv('ENV') == 'production' or os.getenv('LOG_FORMAT', '').lower() == 'json'

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors += [drop_style_processor, structlog.processors.JSONRenderer()]
    else:
        processors.append(RichConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
