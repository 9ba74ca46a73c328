import json
from functools import cmp_to_key
from pathlib import Path
from typing import Any

import structlog

from lynxaudit.core.config import RemediationConfig
from lynxaudit.core.versions import compare_versions
from lynxaudit.core.versions import major_version
from lynxaudit.models.dependency import Dependency
from lynxaudit.models.remediation import BreakingChange
from lynxaudit.models.remediation import Remediation
from lynxaudit.models.vulnerability import Vulnerability
from lynxaudit.services.changelog_service import ChangelogService
from lynxaudit.services.changelog_service import parse_breaking_changes

logger = structlog.get_logger('remediation_service')

PATTERNS_DIR = Path(__file__).resolve().parent.parent / 'data' / 'patterns'


def is_breaking_change(current_version: str, target_version: str) -> bool:
    """A bump of the leading numeric component. Unparseable versions never break."""
    current = major_version(current_version)
    target = major_version(target_version)
    if current is None or target is None:
        return False
    return target > current


class PatternStore:
    """Curated breaking-change data, one JSON file per ecosystem."""

    def __init__(self, patterns_dir: Path = PATTERNS_DIR):
        self.patterns_dir = patterns_dir
        self._cache: dict[str, dict[str, Any]] = {}

    def _load(self, ecosystem: str) -> dict[str, Any]:
        if ecosystem not in self._cache:
            path = self.patterns_dir / f"{ecosystem}.json"
            data: dict[str, Any] = {}
            if path.exists():
                try:
                    data = json.loads(path.read_text(encoding='utf-8'))
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning('Failed to load breaking-change patterns', path=str(path), error=str(e))
            self._cache[ecosystem] = data
        return self._cache[ecosystem]

    def get(self, ecosystem: str, package: str, version: str) -> dict[str, Any] | None:
        return (self._load(ecosystem).get(package) or {}).get(version)


class RemediationService:
    """Proposes one upgrade per vulnerable package."""

    def __init__(
        self,
        config: RemediationConfig | None = None,
        patterns: PatternStore | None = None,
        changelogs: ChangelogService | None = None,
    ):
        self.config = config or RemediationConfig()
        self.patterns = patterns or PatternStore()
        self.changelogs = changelogs

    def select_target(self, fixed_versions: list[str]) -> str:
        if self.config.version_ordering == 'semantic':
            return sorted(fixed_versions, key=cmp_to_key(compare_versions))[-1]
        # Plain string ordering: "1.10.0" sorts below "1.2.0"
        return sorted(fixed_versions)[-1]

    def generate(self, vulnerabilities: list[Vulnerability], dependencies: list[Dependency]) -> list[Remediation]:
        by_package: dict[str, list[Vulnerability]] = {}
        for vuln in vulnerabilities:
            by_package.setdefault(vuln.package, []).append(vuln)

        deps_by_name: dict[str, Dependency] = {}
        for dep in dependencies:
            deps_by_name.setdefault(dep.name, dep)

        remediations = []
        for package, vulns in by_package.items():
            dep = deps_by_name.get(package)
            if dep is None:
                continue
            fixed_versions = sorted({v.fixed_version for v in vulns if v.fixed_version})
            if not fixed_versions:
                logger.warning('No fixed version available', package=package)
                continue

            target = self.select_target(fixed_versions)
            breaking = is_breaking_change(dep.version, target)
            remediation = Remediation(
                id=f"rem-{package}-{target}",
                package=package,
                current_version=dep.version,
                target_version=target,
                vulnerabilities_fixed=[v.id for v in vulns],
                risk_level='high' if breaking else 'low',
                is_breaking=breaking,
            )
            if breaking:
                self._enrich(remediation, dep.ecosystem)
            remediations.append(remediation)

        logger.debug('Generated remediations', count=len(remediations))
        return remediations

    def _enrich(self, remediation: Remediation, ecosystem: str) -> None:
        curated = self.patterns.get(ecosystem, remediation.package, remediation.target_version)
        if curated:
            try:
                remediation.breaking_changes = [
                    BreakingChange.model_validate(c) for c in curated.get('breakingChanges') or []
                ] or None
            except ValueError as e:
                logger.warning('Invalid curated breaking changes', package=remediation.package, error=str(e))
            remediation.migration_guide_url = curated.get('migrationGuide')
            remediation.changelog_url = curated.get('changelog')
            return

        if self.changelogs is None or not self.config.fetch_changelogs:
            return
        found = self.changelogs.fetch(remediation.package)
        if found is None:
            return
        url, text = found
        remediation.changelog_url = url
        remediation.breaking_changes = parse_breaking_changes(text, remediation.target_version) or None
