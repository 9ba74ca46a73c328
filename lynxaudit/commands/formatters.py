"""Human and machine renderings of a ScanReport for the terminal."""
import json
from enum import Enum

from rich.console import Console
from rich.console import Group
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from lynxaudit.models.ecosystem import Severity
from lynxaudit.models.scan import ScanReport
from lynxaudit.services.export_service import export_markdown
from lynxaudit.services.export_service import export_sarif

MAX_TABLE_DEPENDENCIES = 20

_SEVERITY_STYLES = {
    Severity.CRITICAL: 'bold white on red',
    Severity.HIGH: 'bold red',
    Severity.MEDIUM: 'yellow',
    Severity.LOW: 'green',
    Severity.NONE: 'dim',
}

_SEVERITY_ICONS = {
    Severity.CRITICAL: ('✗', 'red'),
    Severity.HIGH: ('⚠', 'dark_orange'),
    Severity.MEDIUM: ('●', 'yellow'),
    Severity.LOW: ('○', 'blue'),
}


class OutputFormat(str, Enum):
    TABLE = 'table'
    JSON = 'json'
    MARKDOWN = 'markdown'
    SUMMARY = 'summary'
    SARIF = 'sarif'


def severity_text(severity: Severity) -> Text:
    if severity is Severity.NONE:
        return Text('-', style='dim')
    return Text(severity.value.upper(), style=_SEVERITY_STYLES[severity])


def score_text(score: int) -> Text:
    if score >= 80:
        style = 'bold green'
    elif score >= 60:
        style = 'bold yellow'
    elif score >= 40:
        style = 'bold dark_orange'
    else:
        style = 'bold red'
    return Text(f"{score}/100", style=style)


def _truncate(value: str, width: int) -> str:
    return value if len(value) <= width else value[:width - 3] + '...'


def format_json(report: ScanReport, deep: bool = False) -> str:
    data = report.to_dict()
    if deep:
        data['dependencyDetails'] = [
            {
                **dep.model_dump(mode='json', by_alias=True, exclude_none=True),
                'vulnerabilities': [
                    v.model_dump(mode='json', by_alias=True, exclude_none=True)
                    for v in report.vulnerabilities if v.package == dep.name
                ],
            }
            for dep in report.dependencies
        ]
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_summary(report: ScanReport) -> Text:
    s = report.summary
    if s.has_blocking:
        icon = Text('✗', style='red')
    elif s.medium:
        icon = Text('⚠', style='yellow')
    else:
        icon = Text('✓', style='green')

    text = Text.assemble(icon, f" {report.target}@{report.version} - Score: ", score_text(report.security_score), '\n')
    parts = [
        Text(f"{count} {label}", style=style)
        for count, label, style in (
            (s.critical, 'critical', 'red'),
            (s.high, 'high', 'dark_orange'),
            (s.medium, 'medium', 'yellow'),
            (s.low, 'low', 'green'),
        )
        if count
    ]
    if parts:
        text.append('  Vulnerabilities: ')
        text.append_text(Text(', ').join(parts))
    else:
        text.append('  No vulnerabilities found', style='green')
    direct = sum(1 for d in report.dependencies if d.direct)
    text.append(f"\n  Dependencies: {len(report.dependencies)} ({direct} direct)")
    return text


def format_table(report: ScanReport) -> Group:
    s = report.summary
    parts: list = [
        Text('Lynx Audit - Scan Results', style='bold cyan'),
        Rule(style='dim'),
        Text.assemble(('Package: ', 'bold'), f"{report.target}@{report.version}"),
        Text.assemble(('Ecosystem: ', 'bold'), report.ecosystem),
        Text.assemble(('Security Score: ', 'bold'), score_text(report.security_score)),
        Text.assemble(('Scan Date: ', 'bold'), report.scan_date.isoformat()),
    ]

    summary = Table(title='Vulnerability Summary')
    for column in ('Critical', 'High', 'Medium', 'Low', 'Total'):
        summary.add_column(column, justify='right')
    summary.add_row(
        Text(str(s.critical), style='bold red' if s.critical else 'dim'),
        Text(str(s.high), style='bold dark_orange' if s.high else 'dim'),
        Text(str(s.medium), style='yellow' if s.medium else 'dim'),
        Text(str(s.low), style='green' if s.low else 'dim'),
        Text(str(s.total), style='bold'),
    )
    parts.append(summary)

    if report.dependencies:
        deps = Table(title=f"Dependencies ({len(report.dependencies)})")
        deps.add_column('Package', style='cyan')
        deps.add_column('Version')
        deps.add_column('Direct')
        deps.add_column('Vulns', justify='right')
        deps.add_column('Max Severity')
        ordered = sorted(report.dependencies, key=lambda d: (-d.vulnerability_count, not d.direct))
        for dep in ordered[:MAX_TABLE_DEPENDENCIES]:
            deps.add_row(
                _truncate(dep.name, 28),
                dep.version,
                Text('Yes', style='cyan') if dep.direct else Text('No', style='dim'),
                Text(str(dep.vulnerability_count), style='red' if dep.vulnerability_count else 'dim'),
                severity_text(dep.max_severity),
            )
        parts.append(deps)
        if len(report.dependencies) > MAX_TABLE_DEPENDENCIES:
            parts.append(
                Text(f"  ... and {len(report.dependencies) - MAX_TABLE_DEPENDENCIES} more dependencies", style='dim'),
            )

    if report.vulnerabilities:
        vulns = Table(title=f"Vulnerabilities ({len(report.vulnerabilities)})")
        for column in ('ID', 'Severity', 'Package', 'Installed', 'Fixed'):
            vulns.add_column(column)
        for v in report.vulnerabilities:
            vulns.add_row(
                _truncate(v.id, 20), severity_text(v.severity), _truncate(v.package, 23),
                v.installed_version, v.fixed_version or Text('N/A', style='dim'),
            )
        parts.append(vulns)

    if report.remediations:
        rems = Table(title=f"Recommended Upgrades ({len(report.remediations)})")
        for column in ('Package', 'Current', 'Target', 'Fixes', 'Breaking'):
            rems.add_column(column)
        for r in report.remediations:
            rems.add_row(
                _truncate(r.package, 23), r.current_version, Text(r.target_version, style='green'),
                str(len(r.vulnerabilities_fixed)),
                Text('Yes', style='yellow') if r.is_breaking else Text('No', style='dim'),
            )
        parts.append(rems)

    if report.warnings:
        parts.append(Text(f"Warnings ({len(report.warnings)}):", style='bold yellow'))
        parts.extend(Text(f"  {w}", style='yellow') for w in report.warnings)

    return Group(*parts)


def format_deep(report: ScanReport) -> Group:
    s = report.summary
    vulns_text = Text(str(s.total), style='red' if s.total else 'green')
    parts: list = [
        Text('Lynx Audit - Deep Scan Results', style='bold cyan'),
        Rule(style='dim'),
        Text.assemble(
            (report.target, 'bold'), f"@{report.version} | Score: ", score_text(report.security_score),
            f" | Deps: {len(report.dependencies)} | Vulns: ", vulns_text,
        ),
    ]
    if s.total:
        breakdown = [
            Text(f"{count}{label}", style=style)
            for count, label, style in (
                (s.critical, 'C', 'red'), (s.high, 'H', 'dark_orange'),
                (s.medium, 'M', 'yellow'), (s.low, 'L', 'green'),
            )
            if count
        ]
        parts.append(Text.assemble('Breakdown: ', Text(' ').join(breakdown)))
    parts.append(Rule(style='dim'))

    by_package: dict[str, list] = {}
    for vuln in report.vulnerabilities:
        by_package.setdefault(vuln.package, []).append(vuln)

    ordered = sorted(report.dependencies, key=lambda d: (-d.vulnerability_count, not d.direct, d.name))
    vulnerable = [d for d in ordered if d.vulnerability_count > 0]
    clean = [d for d in ordered if d.vulnerability_count == 0]

    if vulnerable:
        parts.append(Text(f"\n⚠ Vulnerable Dependencies ({len(vulnerable)}):\n", style='bold red'))
        for dep in vulnerable:
            icon, style = _SEVERITY_ICONS.get(dep.max_severity, ('○', 'blue'))
            dep_vulns = by_package.get(dep.name, [])
            parts.append(
                Text.assemble(
                    (icon, style), ' [',
                    ('D', 'cyan') if dep.direct else ('T', 'dim'),
                    f"] {dep.name}@{dep.version}".ljust(42), ' ',
                    severity_text(dep.max_severity), f" ({len(dep_vulns)})",
                ),
            )
            for vuln in dep_vulns:
                fix = Text(f"→{vuln.fixed_version}", style='green') if vuln.fixed_version else Text('no fix', style='dim')
                parts.append(Text.assemble((f"      └─ {vuln.id} ", 'dim'), fix))

    if clean:
        parts.append(Text(f"\n✓ Clean Dependencies ({len(clean)}):", style='bold green'))
        direct = [f"{d.name}@{d.version}" for d in clean if d.direct]
        transitive = [f"{d.name}@{d.version}" for d in clean if not d.direct]
        if direct:
            parts.append(Text.assemble((f"  Direct ({len(direct)}): ", 'cyan'), ', '.join(direct)))
        if transitive:
            parts.append(Text.assemble((f"  Transitive ({len(transitive)}): ", 'dim'), ', '.join(transitive)))

    if report.package_scans:
        scans = Table(title='Packages Scanned')
        for column in ('Package', 'Version', 'Score', 'Critical', 'High', 'Medium', 'Low'):
            scans.add_column(column)
        for pkg in sorted(report.package_scans, key=lambda p: p.summary.total, reverse=True):
            scans.add_row(
                pkg.name, pkg.version, score_text(pkg.security_score),
                str(pkg.summary.critical), str(pkg.summary.high),
                str(pkg.summary.medium), str(pkg.summary.low),
            )
        parts.append(scans)

    return Group(*parts)


def render(report: ScanReport, output: OutputFormat, console: Console, deep: bool = False) -> None:
    """Print ``report`` to ``console`` in the requested format."""
    if output is OutputFormat.JSON:
        console.out(format_json(report, deep=deep), highlight=False)
    elif output is OutputFormat.MARKDOWN:
        console.out(export_markdown(report), highlight=False)
    elif output is OutputFormat.SARIF:
        console.out(export_sarif(report), highlight=False)
    elif output is OutputFormat.SUMMARY:
        console.print(format_summary(report))
    elif deep:
        console.print(format_deep(report))
    else:
        console.print(format_table(report))
