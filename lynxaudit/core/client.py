from datetime import timedelta
from pathlib import Path

import requests
import requests_cache
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from lynxaudit.__version__ import __version__

logger = structlog.get_logger('client')

# Registry lookups are cached, including 404s for unknown packages.
# Advisory queries are POSTs and always go to the network.
CACHEABLE_CODES = (200, 404)
CACHEABLE_METHODS = ('GET', 'HEAD')
RETRY_STATUSES = (429, 500, 502, 503, 504)


def _log_response(response: requests.Response, *args, **kwargs) -> None:
    if getattr(response, '_logged', False):
        return
    response._logged = True

    cached = getattr(response, 'from_cache', False)
    logger.debug(
        'HTTP Request',
        _style='dim' if cached else None,
        method=response.request.method,
        url=response.url,
        status=response.status_code,
        content_length=len(response.content) if response.content else 0,
        elapsed=f"{response.elapsed.total_seconds():.3f}s",
        cached=cached,
    )


def build_retry(retries: int) -> Retry:
    """Backoff retries for transient registry and advisory failures."""
    return Retry(
        total=retries,
        backoff_factor=1,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=['GET', 'HEAD', 'POST'],
        respect_retry_after_header=True,
    )


def get_http_client(
    cache_name: str = '.requests-cache/lynx.sqlite3',
    expire_after: int = 3600,
    retries: int = 3,
    pool_size: int = 20,
    user_agent: str = 'lynxaudit',
) -> requests_cache.CachedSession:
    """
    Shared session for every registry and advisory call: sqlite response
    cache, retry with backoff, and a pooled adapter sized for the resolver
    and job worker threads.
    """
    Path(cache_name).parent.mkdir(parents=True, exist_ok=True)

    session = requests_cache.CachedSession(
        cache_name=cache_name,
        backend='sqlite',
        expire_after=timedelta(seconds=expire_after),
        allowable_codes=CACHEABLE_CODES,
        allowable_methods=CACHEABLE_METHODS,
    )
    session.headers['User-Agent'] = f"{user_agent}/{__version__}"
    session.hooks['response'].append(_log_response)

    adapter = HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=build_retry(retries),
    )
    for prefix in ('https://', 'http://'):
        session.mount(prefix, adapter)

    logger.debug('Initialized HTTP client', cache_name=cache_name, expire_after=expire_after, retries=retries)
    return session
