"""Serializers over a completed ``ScanReport``. No network access."""
import json
from enum import Enum
from typing import Any

from lynxaudit.__version__ import get_version
from lynxaudit.models.ecosystem import Severity
from lynxaudit.models.scan import ScanReport
from lynxaudit.models.scan import ScanStatus
from lynxaudit.models.vulnerability import Vulnerability

SARIF_SCHEMA = 'https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json'
SARIF_VERSION = '2.1.0'
TOOL_NAME = 'lynxaudit'
TOOL_URI = 'https://osv.dev'
MAX_MESSAGE_DESCRIPTION = 200

_SARIF_LEVELS = {
    Severity.CRITICAL: 'error',
    Severity.HIGH: 'error',
    Severity.MEDIUM: 'warning',
    Severity.LOW: 'note',
}

_DEFAULT_SECURITY_SEVERITY = {
    Severity.CRITICAL: '9.0',
    Severity.HIGH: '7.0',
    Severity.MEDIUM: '4.0',
    Severity.LOW: '2.0',
}

_SEVERITY_ICONS = {
    Severity.CRITICAL: '🔴',
    Severity.HIGH: '🟠',
    Severity.MEDIUM: '🟡',
    Severity.LOW: '🟢',
}


class ExportFormat(str, Enum):
    JSON = 'json'
    MARKDOWN = 'markdown'
    SARIF = 'sarif'

    def __str__(self) -> str:
        return self.value

    @property
    def media_type(self) -> str:
        return {
            ExportFormat.JSON: 'application/json',
            ExportFormat.MARKDOWN: 'text/markdown',
            ExportFormat.SARIF: 'application/sarif+json',
        }[self]

    @property
    def extension(self) -> str:
        return {
            ExportFormat.JSON: 'json',
            ExportFormat.MARKDOWN: 'md',
            ExportFormat.SARIF: 'sarif',
        }[self]


def sarif_level(severity: Severity) -> str:
    return _SARIF_LEVELS.get(severity, 'note')


def security_severity(severity: Severity, cvss: float | None) -> str:
    if cvss:
        return f"{cvss:.1f}"
    return _DEFAULT_SECURITY_SEVERITY.get(severity, '0.0')


def export_json(report: ScanReport) -> str:
    return json.dumps(report.to_dict(), indent=2, ensure_ascii=False)


def _result_message(vuln: Vulnerability) -> str:
    message = (
        f"{vuln.severity.value.upper()} severity vulnerability found in "
        f"{vuln.package}@{vuln.installed_version}."
    )
    if vuln.fixed_version:
        message += f" Upgrade to version {vuln.fixed_version} to fix."
    else:
        message += ' No fix is currently available.'
    if vuln.description:
        description = vuln.description
        if len(description) > MAX_MESSAGE_DESCRIPTION:
            description = description[:MAX_MESSAGE_DESCRIPTION - 3] + '...'
        message += f" {description}"
    return message


def to_sarif(report: ScanReport) -> dict[str, Any]:
    """SARIF 2.1.0 log: one rule per advisory id, one result per occurrence."""
    rules: dict[str, dict[str, Any]] = {}
    for vuln in report.vulnerabilities:
        if vuln.id in rules:
            continue
        rules[vuln.id] = {
            'id': vuln.id,
            'name': vuln.id,
            'shortDescription': {
                'text': f"{vuln.severity.value.upper()} vulnerability in {vuln.package}",
            },
            'fullDescription': {
                'text': vuln.description or f"Security vulnerability {vuln.id} affecting {vuln.package}",
            },
            'helpUri': vuln.references[0] if vuln.references else f"https://osv.dev/vulnerability/{vuln.id}",
            'defaultConfiguration': {'level': sarif_level(vuln.severity)},
            'properties': {
                'tags': ['security', 'dependency', vuln.severity.value],
                'security-severity': security_severity(vuln.severity, vuln.cvss),
            },
        }

    results = [
        {
            'ruleId': vuln.id,
            'level': sarif_level(vuln.severity),
            'message': {'text': _result_message(vuln)},
            'locations': [
                {
                    'logicalLocations': [
                        {
                            'name': vuln.package,
                            'fullyQualifiedName': f"{report.ecosystem}:{vuln.package}@{vuln.installed_version}",
                            'kind': 'package',
                        },
                    ],
                },
            ],
            'partialFingerprints': {
                'primaryLocationLineHash': f"{vuln.id}:{vuln.package}:{vuln.installed_version}",
            },
            'properties': {
                'ecosystem': report.ecosystem,
                'package': vuln.package,
                'installedVersion': vuln.installed_version,
                'fixedVersion': vuln.fixed_version,
                'cvss': vuln.cvss,
            },
        }
        for vuln in report.vulnerabilities
    ]

    return {
        '$schema': SARIF_SCHEMA,
        'version': SARIF_VERSION,
        'runs': [
            {
                'tool': {
                    'driver': {
                        'name': TOOL_NAME,
                        'version': get_version(),
                        'informationUri': TOOL_URI,
                        'rules': list(rules.values()),
                    },
                },
                'results': results,
                'invocations': [
                    {
                        'executionSuccessful': report.status is not ScanStatus.ERROR,
                        'endTimeUtc': report.scan_date.isoformat(),
                    },
                ],
            },
        ],
    }


def export_sarif(report: ScanReport) -> str:
    return json.dumps(to_sarif(report), indent=2, ensure_ascii=False)


def export_markdown(report: ScanReport) -> str:
    summary = report.summary
    lines = [
        f"# Security Scan Report: {report.target}",
        '',
        f"**Ecosystem:** {report.ecosystem}",
        f"**Version:** {report.version}",
        f"**Scan Date:** {report.scan_date.isoformat()}",
        f"**Security Score:** {report.security_score}/100",
        '',
        '## Summary',
        '',
        f"- {_SEVERITY_ICONS[Severity.CRITICAL]} Critical: {summary.critical}",
        f"- {_SEVERITY_ICONS[Severity.HIGH]} High: {summary.high}",
        f"- {_SEVERITY_ICONS[Severity.MEDIUM]} Medium: {summary.medium}",
        f"- {_SEVERITY_ICONS[Severity.LOW]} Low: {summary.low}",
        f"- **Total:** {summary.total}",
        '',
    ]

    if report.is_manifest_scan and report.package_scans:
        lines += [
            '## Packages Scanned',
            '',
            '| Package | Version | Score | Critical | High | Medium | Low |',
            '|---------|---------|-------|----------|------|--------|-----|',
        ]
        for pkg in sorted(report.package_scans, key=lambda p: p.summary.total, reverse=True):
            s = pkg.summary
            lines.append(
                f"| {pkg.name} | {pkg.version} | {pkg.security_score}/100 "
                f"| {s.critical} | {s.high} | {s.medium} | {s.low} |",
            )
        lines.append('')

    if report.warnings:
        lines += ['## Warnings', '']
        lines += [f"- {warning}" for warning in report.warnings]
        lines.append('')

    if report.vulnerabilities:
        lines += ['## Vulnerabilities', '']
        for vuln in report.vulnerabilities:
            lines += [f"### {vuln.id} ({vuln.severity.value.upper()})", '']
            lines.append(f"**Package:** {vuln.package}@{vuln.installed_version}")
            if vuln.fixed_version:
                lines.append(f"**Fixed in:** {vuln.fixed_version}")
            if vuln.cvss is not None:
                lines.append(f"**CVSS Score:** {vuln.cvss}")
            lines += ['', vuln.description, '']
            if vuln.references:
                lines.append('**References:**')
                lines += [f"- {ref}" for ref in vuln.references]
                lines.append('')

    if report.remediations:
        lines += [
            '## Recommended Remediations',
            '',
            '| Package | Current | Target | Risk | Breaking | Fixes |',
            '|---------|---------|--------|------|----------|-------|',
        ]
        for rem in report.remediations:
            lines.append(
                f"| {rem.package} | {rem.current_version} | {rem.target_version} | {rem.risk_level} "
                f"| {'Yes ⚠️' if rem.is_breaking else 'No ✅'} | {', '.join(rem.vulnerabilities_fixed)} |",
            )
        lines.append('')

        for rem in report.remediations:
            if not (rem.breaking_changes or rem.migration_guide_url or rem.changelog_url):
                continue
            lines += [f"### {rem.package}: {rem.current_version} → {rem.target_version}", '']
            if rem.breaking_changes:
                lines.append('**Breaking Changes:**')
                lines += [f"- {bc.type.upper()}: {bc.description}" for bc in rem.breaking_changes]
                lines.append('')
            if rem.migration_guide_url:
                lines += [f"**Migration Guide:** {rem.migration_guide_url}", '']
            if rem.changelog_url:
                lines += [f"**Changelog:** {rem.changelog_url}", '']

    return '\n'.join(lines)


def export_report(report: ScanReport, fmt: ExportFormat | str) -> str:
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.MARKDOWN:
        return export_markdown(report)
    if fmt is ExportFormat.SARIF:
        return export_sarif(report)
    return export_json(report)
