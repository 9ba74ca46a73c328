import json
from collections.abc import Callable
from typing import Any

import pytest
import requests

from lynxaudit.core.config import AdvisoryConfig
from lynxaudit.core.config import RegistryConfig
from lynxaudit.core.config import RemediationConfig
from lynxaudit.services.ecosystems.factory import ResolverFactory
from lynxaudit.services.manifest_service import ManifestService
from lynxaudit.services.osv_service import OsvService
from lynxaudit.services.remediation_service import RemediationService
from lynxaudit.services.scanner_service import ScannerService


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: str | None = None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ''
        self.text = text
        self.content = text.encode()

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is not None:
            return self._json
        return json.loads(self.text)


class FakeSession:
    """
    Minimal stand-in for requests.Session.

    ``routes`` maps GET urls to a FakeResponse, an exception instance, a
    str (200 text body) or any other JSON-able value (200 JSON body).
    Unknown urls answer 404.
    """

    def __init__(self, routes: dict[str, Any] | None = None, post: Callable[[str, dict], Any] | None = None):
        self.routes = routes or {}
        self.post_handler = post
        self.get_calls: list[str] = []
        self.post_calls: list[dict] = []

    @staticmethod
    def _respond(value: Any) -> FakeResponse:
        if isinstance(value, FakeResponse):
            return value
        if isinstance(value, Exception):
            raise value
        if isinstance(value, str):
            return FakeResponse(200, text=value)
        return FakeResponse(200, json_data=value)

    def get(self, url, timeout=None, headers=None, **kwargs):
        self.get_calls.append(url)
        if url not in self.routes:
            return FakeResponse(404, text='not found')
        return self._respond(self.routes[url])

    def post(self, url, json=None, timeout=None, **kwargs):
        self.post_calls.append(json)
        if self.post_handler is None:
            return FakeResponse(200, json_data={})
        return self._respond(self.post_handler(url, json))

    def request(self, method, url, **kwargs):
        if method == 'GET':
            return self.get(url, **kwargs)
        return self.post(url, **kwargs)


def osv_handler(vulns_by_package: dict[str, list[dict]] | None = None):
    """OSV POST handler answering from ``{package: [records]}``."""
    vulns_by_package = vulns_by_package or {}

    def handle(url: str, payload: dict):
        return {'vulns': vulns_by_package.get(payload['package']['name'], [])}

    return handle


def osv_record(
    vuln_id: str,
    package: str,
    fixed: str | None = None,
    score: str | None = None,
    summary: str = 'Example advisory',
) -> dict:
    events: list[dict] = [{'introduced': '0'}]
    if fixed:
        events.append({'fixed': fixed})
    record: dict = {
        'id': vuln_id,
        'summary': summary,
        'affected': [{'package': {'name': package}, 'ranges': [{'type': 'ECOSYSTEM', 'events': events}]}],
        'references': [{'type': 'WEB', 'url': f"https://example.com/{vuln_id}"}],
    }
    if score is not None:
        record['severity'] = [{'type': 'CVSS_V3', 'score': score}]
    return record


def pypi_release(name: str, version: str, requires: list[str] | None = None) -> dict:
    return {
        'info': {'name': name, 'version': version, 'requires_dist': requires},
        'releases': {version: [{'filename': f"{name}-{version}.tar.gz"}]},
    }


@pytest.fixture
def registry_config():
    return RegistryConfig(resolver_workers=4)


@pytest.fixture
def make_scanner(registry_config):
    """Build a ScannerService over a FakeSession."""

    def build(session: FakeSession, remediation: RemediationService | None = None) -> ScannerService:
        advisory = OsvService(session, AdvisoryConfig(api_url='https://api.osv.dev/v1', prefilter=True))
        factory = ResolverFactory(session, advisory, config=registry_config)
        return ScannerService(
            factory,
            advisory,
            remediation or RemediationService(RemediationConfig(fetch_changelogs=False)),
            ManifestService(),
            config=registry_config,
        )

    return build


@pytest.fixture
def offline_error():
    return requests.ConnectionError('registry offline')
