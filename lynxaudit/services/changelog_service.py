import re

import requests
import structlog

from lynxaudit.core.config import GitHubConfig
from lynxaudit.core.config import RemediationConfig
from lynxaudit.models.remediation import BreakingChange

logger = structlog.get_logger('changelog_service')

_VERSION_HEADER = re.compile(r'^#+\s+\d+\.\d+')
_BREAKING_HINT = re.compile(r'breaking|removed|deprecated', re.IGNORECASE)


def parse_breaking_changes(changelog: str, target_version: str) -> list[BreakingChange]:
    """
    Lines of the target version's section that hint at incompatibility.

    The section starts at the first line mentioning ``target_version`` and
    ends at the next markdown version header.
    """
    changes = []
    in_section = False
    for line in changelog.splitlines():
        if not in_section:
            if target_version in line:
                in_section = True
            continue
        if _VERSION_HEADER.match(line):
            break
        if not _BREAKING_HINT.search(line) or not line.strip():
            continue
        lowered = line.lower()
        if 'removed' in lowered:
            change_type = 'removed'
        elif 'deprecated' in lowered:
            change_type = 'deprecated'
        else:
            change_type = 'changed'
        changes.append(BreakingChange(type=change_type, description=line.strip()))
    return changes


class ChangelogService:
    """Best-effort changelog lookup on conventional raw source-hosting paths."""

    def __init__(
        self,
        session: requests.Session,
        config: RemediationConfig | None = None,
        github: GitHubConfig | None = None,
        timeout: float = 10,
    ):
        self.session = session
        self.config = config or RemediationConfig()
        self.github = github or GitHubConfig()
        self.timeout = timeout

    def candidate_urls(self, package: str) -> list[str]:
        # Assumes the common "<name>/<name>" repository layout
        base = self.config.raw_content_url.rstrip('/')
        return [f"{base}/{package}/{package}/{path}" for path in self.config.changelog_paths]

    def fetch(self, package: str) -> tuple[str, str] | None:
        """``(url, text)`` of the first changelog found, or None."""
        headers = {}
        if self.github.token:
            headers['Authorization'] = f"token {self.github.token}"

        for url in self.candidate_urls(package):
            try:
                response = self.session.get(url, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                logger.debug('Changelog fetch failed', url=url, error=str(e))
                continue
            if response.status_code == 200 and response.text:
                return url, response.text

        logger.warning('Could not fetch changelog', package=package)
        return None
