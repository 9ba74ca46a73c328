import pytest
import requests

from conftest import FakeResponse
from lynxaudit.commands.api_client import ApiClient
from lynxaudit.core.errors import ScanExecutionError
from lynxaudit.models.scan import ScanRequest

SERVER = 'http://lynx.local:8080'


class ScriptedSession:
    """Answers each (method, url) with the next queued response."""

    def __init__(self, script):
        self.script = {key: list(values) for key, values in script.items()}
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs.get('json')))
        value = self.script[(method, url)].pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def test_scan_polls_until_completed():
    session = ScriptedSession({
        ('POST', f"{SERVER}/api/scan"): [FakeResponse(200, {'id': 'scan-1', 'status': 'scanning'})],
        ('GET', f"{SERVER}/api/scan/scan-1"): [
            FakeResponse(200, {'id': 'scan-1', 'status': 'scanning'}),
            FakeResponse(200, {
                'id': 'scan-1', 'status': 'completed', 'ecosystem': 'pypi',
                'target': 'requests', 'version': '2.31.0', 'securityScore': 90,
            }),
        ],
    })
    client = ApiClient(SERVER + '/', session=session, poll_interval=0)

    report = client.scan(ScanRequest(ecosystem='pypi', package='requests'))

    assert report.security_score == 90
    assert session.calls[0] == ('POST', f"{SERVER}/api/scan", {'ecosystem': 'pypi', 'package': 'requests'})
    assert len(session.calls) == 3


def test_scan_error_is_raised():
    session = ScriptedSession({
        ('POST', f"{SERVER}/api/scan"): [FakeResponse(200, {'id': 'scan-2', 'status': 'scanning'})],
        ('GET', f"{SERVER}/api/scan/scan-2"): [FakeResponse(200, {'status': 'error', 'error': 'Scan timed out'})],
    })
    with pytest.raises(ScanExecutionError, match='Scan timed out'):
        ApiClient(SERVER, session=session, poll_interval=0).scan(ScanRequest(ecosystem='npm', package='x'))


def test_http_errors_are_raised():
    session = ScriptedSession({
        ('POST', f"{SERVER}/api/scan"): [FakeResponse(400, text='{"error": "Ecosystem go is disabled"}')],
    })
    with pytest.raises(ScanExecutionError, match='400'):
        ApiClient(SERVER, session=session).scan(ScanRequest(ecosystem='go', package='x'))


def test_health_connection_failure():
    session = ScriptedSession({('GET', f"{SERVER}/health"): [requests.ConnectionError('refused')]})
    with pytest.raises(ScanExecutionError, match='refused'):
        ApiClient(SERVER, session=session).health()
