import time

import requests
import structlog

from lynxaudit.core.errors import ScanExecutionError
from lynxaudit.models.scan import ScanReport
from lynxaudit.models.scan import ScanRequest

logger = structlog.get_logger('api_client')


class ApiClient:
    """Talks to a running lynxaudit server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60,
        session: requests.Session | None = None,
        poll_interval: float = 1.0,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.poll_interval = poll_interval

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise ScanExecutionError(f"Request to {url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ScanExecutionError(f"Request to {url} failed: {e}") from e
        if not response.ok:
            raise ScanExecutionError(f"{method} {path} failed: {response.status_code} - {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise ScanExecutionError(f"{method} {path} returned invalid JSON") from e

    def health(self) -> dict:
        return self._request('GET', '/health')

    def scan(self, request: ScanRequest) -> ScanReport:
        """Submit a scan and poll until it completes, fails or times out."""
        started = self._request('POST', '/api/scan', json=request.model_dump(mode='json', exclude_none=True))
        scan_id = started['id']
        logger.info('Remote scan submitted', scan_id=scan_id, server=self.base_url)

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            time.sleep(self.poll_interval)
            data = self._request('GET', f"/api/scan/{scan_id}")
            status = data.get('status')
            if status == 'completed':
                return ScanReport.model_validate(data)
            if status == 'error':
                raise ScanExecutionError(data.get('error') or 'Scan failed')
            logger.debug('Remote scan pending', scan_id=scan_id, status=status)

        raise ScanExecutionError(f"Scan timed out after {self.timeout}s")
