import threading
from typing import Any

import requests
import structlog
from ratelimit import limits
from ratelimit import sleep_and_retry

from lynxaudit.core.config import AdvisoryConfig
from lynxaudit.core.errors import AdvisoryQueryError
from lynxaudit.core.versions import compare_versions
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.models.ecosystem import Severity
from lynxaudit.models.vulnerability import Vulnerability

logger = structlog.get_logger('osv_service')

# OSV has no published hard limit; stay polite
OSV_CALLS = 20
OSV_PERIOD = 1
MAX_PAGES = 10


def parse_severity(record: dict[str, Any]) -> tuple[Severity, float | None]:
    """
    Severity from the first reported CVSS score, ``medium`` without one.

    OSV usually reports a CVSS vector rather than a bare number; a vector
    carries no numeric score and so also yields ``medium``.
    """
    severities = record.get('severity') or []
    first = severities[0] if isinstance(severities, list) and severities else None
    if isinstance(first, dict):
        try:
            score = float(str(first.get('score', '')).strip())
        except ValueError:
            return Severity.MEDIUM, None
        return Severity.from_cvss(score), score
    return Severity.MEDIUM, None


def find_fixed_version(record: dict[str, Any]) -> str | None:
    """First ``fixed`` event across affected ranges, in declaration order."""
    for affected in record.get('affected') or []:
        for version_range in affected.get('ranges') or []:
            for event in version_range.get('events') or []:
                if event.get('fixed'):
                    return event['fixed']
    return None


def is_range_affected(events: list[dict[str, str]], version: str) -> bool:
    """
    Walk one range's events in order.

    ``introduced`` of "0" or at/below the version opens the range; a ``fixed``
    at/below the version closes it again, as does a ``last_affected`` below it.
    A range with no ``introduced`` event at all is treated as affected.
    """
    if not any('introduced' in event for event in events):
        return True

    affected = False
    for event in events:
        if 'introduced' in event:
            introduced = event['introduced']
            if introduced == '0' or compare_versions(introduced, version) <= 0:
                affected = True
        elif 'fixed' in event:
            if affected and compare_versions(event['fixed'], version) <= 0:
                affected = False
        elif 'last_affected' in event:
            if affected and compare_versions(version, event['last_affected']) > 0:
                affected = False
    return affected


def is_version_affected(record: dict[str, Any], package: str, version: str) -> bool:
    """Local version matching, used when the service did not pre-filter."""
    entries = record.get('affected') or []
    matching = [
        a for a in entries
        if str((a.get('package') or {}).get('name', '')).lower() == package.lower()
    ] or entries
    if not matching:
        return True

    for affected in matching:
        if version in (affected.get('versions') or []):
            return True
        ranges = [
            r for r in affected.get('ranges') or []
            if r.get('type') != 'GIT'
        ]
        if not ranges and not affected.get('versions'):
            return True
        if any(is_range_affected(r.get('events') or [], version) for r in ranges):
            return True
    return False


def convert_record(record: dict[str, Any], package: str, installed_version: str) -> Vulnerability:
    severity, cvss = parse_severity(record)
    return Vulnerability(
        id=record['id'],
        severity=severity,
        cvss=cvss,
        package=package,
        installed_version=installed_version,
        fixed_version=find_fixed_version(record),
        description=record.get('summary') or record.get(
            'details',
        ) or 'No description available',
        references=[r['url'] for r in record.get('references') or [] if r.get('url')],
    )


class OsvService:
    """Queries the OSV advisory service and normalizes its answers."""

    def __init__(self, session: requests.Session, config: AdvisoryConfig | None = None, timeout: float = 20):
        self.session = session
        self.config = config or AdvisoryConfig()
        self.timeout = timeout
        self._lock = threading.Lock()
        self.queries_count = 0

    @property
    def query_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/query"

    def query(self, package: str, ecosystem: Ecosystem | str, version: str | None) -> list[Vulnerability]:
        """
        Known vulnerabilities affecting ``package@version``.

        Never raises: any transport or API failure is logged and yields an
        empty list so one bad query cannot abort a scan.
        """
        osv_ecosystem = _osv_ecosystem(ecosystem)
        installed = version or 'latest'
        prefilter = self.config.prefilter and version is not None
        try:
            records = self._fetch_records(package, osv_ecosystem, version if prefilter else None)
        except AdvisoryQueryError as e:
            logger.error(
                'OSV query failed', package=package,
                ecosystem=osv_ecosystem, version=installed, error=str(e),
            )
            return []

        vulnerabilities = []
        for record in records:
            try:
                if not prefilter and version is not None and not is_version_affected(record, package, version):
                    continue
                vulnerabilities.append(convert_record(record, package, installed))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    'Skipping malformed OSV record', package=package,
                    record_id=record.get('id') if isinstance(record, dict) else None, error=str(e),
                )

        logger.debug(
            'OSV query complete', package=package, ecosystem=osv_ecosystem,
            version=installed, vuln_count=len(vulnerabilities),
        )
        return vulnerabilities

    def _fetch_records(self, package: str, ecosystem: str, version: str | None) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {'package': {'name': package, 'ecosystem': ecosystem}}
        if version is not None:
            payload['version'] = version

        records: list[dict[str, Any]] = []
        for _ in range(MAX_PAGES):
            data = self._post_query(payload)
            vulns = data.get('vulns') or []
            if not isinstance(vulns, list):
                raise AdvisoryQueryError(f"OSV returned malformed vulns: {type(vulns).__name__}")
            records.extend(vulns)
            token = data.get('next_page_token')
            if not token:
                break
            payload['page_token'] = token
        return records

    @sleep_and_retry
    @limits(calls=OSV_CALLS, period=OSV_PERIOD)
    def _post_query(self, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self.queries_count += 1
        try:
            response = self.session.post(self.query_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdvisoryQueryError(f"OSV request failed: {e}") from e

        if response.status_code != 200:
            raise AdvisoryQueryError(
                f"OSV API error {response.status_code}: {response.text[:200]}",
            )
        try:
            data = response.json()
        except ValueError as e:
            raise AdvisoryQueryError(f"OSV returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise AdvisoryQueryError(f"OSV returned a {type(data).__name__} body, expected an object")
        return data


def _osv_ecosystem(ecosystem: Ecosystem | str) -> str:
    if isinstance(ecosystem, Ecosystem):
        return ecosystem.osv_name
    try:
        return Ecosystem.parse(ecosystem).osv_name
    except ValueError:
        return ecosystem
