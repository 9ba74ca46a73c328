from unittest.mock import MagicMock

import pytest

from conftest import FakeResponse
from conftest import FakeSession
from lynxaudit.core.config import GitHubConfig
from lynxaudit.core.config import RemediationConfig
from lynxaudit.models.dependency import Dependency
from lynxaudit.models.ecosystem import Severity
from lynxaudit.models.vulnerability import Vulnerability
from lynxaudit.services.changelog_service import ChangelogService
from lynxaudit.services.changelog_service import parse_breaking_changes
from lynxaudit.services.remediation_service import is_breaking_change
from lynxaudit.services.remediation_service import PatternStore
from lynxaudit.services.remediation_service import RemediationService


def _vuln(vuln_id, package, fixed=None, installed='1.0.0'):
    return Vulnerability(
        id=vuln_id, severity=Severity.HIGH, package=package,
        installed_version=installed, fixed_version=fixed,
    )


def _dep(name, version, ecosystem='pypi'):
    return Dependency(name=name, version=version, ecosystem=ecosystem)


@pytest.fixture
def service():
    return RemediationService(RemediationConfig(fetch_changelogs=False))


def test_one_remediation_per_package(service):
    vulns = [
        _vuln('V1', 'jinja2', fixed='2.11.3'),
        _vuln('V2', 'jinja2', fixed='3.1.3'),
        _vuln('V3', 'markupsafe'),
    ]
    deps = [_dep('jinja2', '2.10.0'), _dep('markupsafe', '1.0')]

    remediations = service.generate(vulns, deps)

    assert len(remediations) == 1
    rem = remediations[0]
    assert rem.id == 'rem-jinja2-3.1.3'
    assert rem.package == 'jinja2'
    assert rem.current_version == '2.10.0'
    assert rem.target_version == '3.1.3'
    assert rem.vulnerabilities_fixed == ['V1', 'V2']
    assert rem.is_breaking is True
    assert rem.risk_level == 'high'


def test_package_missing_from_dependencies_is_skipped(service):
    assert service.generate([_vuln('V1', 'ghost', fixed='2.0.0')], [_dep('other', '1.0')]) == []


def test_non_breaking_upgrade_is_low_risk(service):
    rem = service.generate([_vuln('V1', 'flask', fixed='2.2.5')], [_dep('flask', '2.0.1')])[0]
    assert rem.is_breaking is False
    assert rem.risk_level == 'low'
    assert rem.breaking_changes is None


def test_lexicographic_target_selection_by_default(service):
    vulns = [_vuln('V1', 'lib', fixed='1.10.0'), _vuln('V2', 'lib', fixed='1.2.0')]
    rem = service.generate(vulns, [_dep('lib', '1.0.0')])[0]
    assert rem.target_version == '1.2.0'


def test_semantic_target_selection():
    service = RemediationService(RemediationConfig(version_ordering='semantic', fetch_changelogs=False))
    vulns = [_vuln('V1', 'lib', fixed='1.10.0'), _vuln('V2', 'lib', fixed='1.2.0')]
    rem = service.generate(vulns, [_dep('lib', '1.0.0')])[0]
    assert rem.target_version == '1.10.0'


@pytest.mark.parametrize(
    'current,target,breaking', [
        ('1.26.5', '2.0.0', True),
        ('v1.2.0', 'v2.0.0', True),
        ('2.0.0', '2.5.0', False),
        ('3.0.0', '2.0.0', False),
        ('abc', '2.0.0', False),
    ],
)
def test_is_breaking_change(current, target, breaking):
    assert is_breaking_change(current, target) is breaking


def test_curated_patterns_enrich_breaking_upgrade(service):
    rem = service.generate([_vuln('V1', 'urllib3', fixed='2.0.0')], [_dep('urllib3', '1.26.5')])[0]
    assert rem.is_breaking
    assert rem.migration_guide_url == 'https://urllib3.readthedocs.io/en/stable/v2-migration-guide.html'
    assert rem.breaking_changes
    assert {bc.type for bc in rem.breaking_changes} <= {'removed', 'moved', 'changed', 'deprecated'}


def test_curated_patterns_only_cover_their_ecosystem(tmp_path):
    (tmp_path / 'pypi.json').write_text('{"left-pad": {"2.0.0": {"migrationGuide": "https://x"}}}')
    store = PatternStore(tmp_path)
    assert store.get('pypi', 'left-pad', '2.0.0') == {'migrationGuide': 'https://x'}
    assert store.get('npm', 'left-pad', '2.0.0') is None


CHANGELOG = '''# Changelog

## 3.0.0

- BREAKING: drop support for Python 3.7
- Removed the `legacy` module
- `old_api()` is deprecated, use `new_api()`
- Fixed a typo

## 2.9.0

- Removed something older
'''


def test_parse_breaking_changes_stays_in_section():
    changes = parse_breaking_changes(CHANGELOG, '3.0.0')
    assert [(c.type, c.description) for c in changes] == [
        ('changed', '- BREAKING: drop support for Python 3.7'),
        ('removed', '- Removed the `legacy` module'),
        ('deprecated', '- `old_api()` is deprecated, use `new_api()`'),
    ]


def test_parse_breaking_changes_without_section():
    assert parse_breaking_changes(CHANGELOG, '9.9.9') == []


def test_changelog_enrichment_when_no_curated_data(tmp_path):
    url = 'https://raw.githubusercontent.com/widget/widget/master/CHANGELOG.md'
    session = FakeSession({url: CHANGELOG})
    changelogs = ChangelogService(session, RemediationConfig(), GitHubConfig(token=None))
    service = RemediationService(RemediationConfig(), PatternStore(tmp_path), changelogs)

    rem = service.generate([_vuln('V1', 'widget', fixed='3.0.0')], [_dep('widget', '2.4.0')])[0]

    assert rem.changelog_url == url
    assert len(rem.breaking_changes) == 3
    assert session.get_calls[0] == 'https://raw.githubusercontent.com/widget/widget/main/CHANGELOG.md'


def test_changelog_lookup_failure_does_not_fail_remediation(tmp_path, offline_error):
    session = FakeSession({
        'https://raw.githubusercontent.com/widget/widget/main/CHANGELOG.md': offline_error,
        'https://raw.githubusercontent.com/widget/widget/master/CHANGELOG.md': FakeResponse(500),
    })
    changelogs = ChangelogService(session, RemediationConfig(), GitHubConfig(token=None))
    service = RemediationService(RemediationConfig(), PatternStore(tmp_path), changelogs)

    rem = service.generate([_vuln('V1', 'widget', fixed='3.0.0')], [_dep('widget', '2.4.0')])[0]

    assert rem.is_breaking
    assert rem.breaking_changes is None
    assert rem.changelog_url is None


def test_changelog_sends_github_token():
    session = MagicMock()
    session.get.return_value = FakeResponse(200, text='# Changelog')
    service = ChangelogService(session, RemediationConfig(), GitHubConfig(token='secret'))

    assert service.fetch('widget')[1] == '# Changelog'
    assert session.get.call_args.kwargs['headers'] == {'Authorization': 'token secret'}
