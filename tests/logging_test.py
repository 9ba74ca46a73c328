import pytest
import structlog
from rich.console import Console

from lynxaudit.core.logging import drop_style_processor
from lynxaudit.core.logging import redact_secrets
from lynxaudit.core.logging import RichConsoleRenderer


def test_redact_secrets_masks_credentials():
    event = redact_secrets(None, 'info', {'event': 'fetch', 'Authorization': 'token abc', 'url': 'https://x'})
    assert event['Authorization'] == '*****'
    assert event['url'] == 'https://x'


def test_redact_secrets_leaves_empty_values():
    assert redact_secrets(None, 'info', {'token': None})['token'] is None


def test_drop_style_processor():
    assert drop_style_processor(None, 'info', {'event': 'x', '_style': 'dim'}) == {'event': 'x'}


def test_renderer_prints_one_line_with_job_prefix():
    target = Console(record=True, width=200)
    renderer = RichConsoleRenderer(target)

    with pytest.raises(structlog.DropEvent):
        renderer(None, 'info', {
            'event': 'Scan completed', 'level': 'info', 'logger': 'scanner_service',
            'job_id': 'scan-1', 'package': 'requests[socks]',
        })

    text = target.export_text()
    assert text.strip() == "scanner_service info     [scan-1] Scan completed package='requests[socks]'"
