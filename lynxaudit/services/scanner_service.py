import time
from contextlib import contextmanager

import structlog

from lynxaudit.core.config import RegistryConfig
from lynxaudit.core.errors import LynxError
from lynxaudit.core.errors import RegistryFetchError
from lynxaudit.core.errors import ScanExecutionError
from lynxaudit.core.errors import ValidationError
from lynxaudit.models.dependency import Dependency
from lynxaudit.models.dependency import ParsedManifest
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.models.ecosystem import max_severity
from lynxaudit.models.scan import DataSource
from lynxaudit.models.scan import EcosystemDetails
from lynxaudit.models.scan import PackageScan
from lynxaudit.models.scan import ScanMetadata
from lynxaudit.models.scan import ScanReport
from lynxaudit.models.scan import ScanRequest
from lynxaudit.models.scan import ScanStatus
from lynxaudit.models.scan import ScanStep
from lynxaudit.models.scan import ScanSummary
from lynxaudit.models.vulnerability import Vulnerability
from lynxaudit.models.vulnerability import dedupe_vulnerabilities
from lynxaudit.services.ecosystems.factory import ResolverFactory
from lynxaudit.services.manifest_service import ManifestService
from lynxaudit.services.osv_service import OsvService
from lynxaudit.services.remediation_service import RemediationService
from lynxaudit.services.score import score_summary

logger = structlog.get_logger('scanner_service')

MANIFEST_VERSION = 'manifest'


class ScanReporter:
    """Progress sink for manifest scans. The default ignores everything."""

    def start(self, total: int) -> None:
        pass

    def package_started(self, index: int, name: str) -> None:
        pass

    def package_finished(self, index: int, name: str, report: ScanReport | None, error: str | None) -> None:
        pass

    def log(self, message: str) -> None:
        pass


class _StepTimer:
    def __init__(self):
        self.steps: list[ScanStep] = []

    @contextmanager
    def step(self, name: str, details: str | None = None):
        started = time.perf_counter()
        record = ScanStep(step=name, details=details)
        try:
            yield record
        except Exception:
            record.status = 'failed'
            raise
        finally:
            record.duration_ms = int((time.perf_counter() - started) * 1000)
            self.steps.append(record)


class ScannerService:
    """Runs the resolve, advise, score and remediate pipeline."""

    def __init__(
        self,
        resolvers: ResolverFactory,
        advisory: OsvService,
        remediation: RemediationService,
        manifests: ManifestService | None = None,
        config: RegistryConfig | None = None,
    ):
        self.resolvers = resolvers
        self.advisory = advisory
        self.remediation = remediation
        self.manifests = manifests or ManifestService()
        self.config = config or RegistryConfig()

    def validate(self, ecosystem: str) -> Ecosystem:
        try:
            parsed = Ecosystem.parse(ecosystem)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if not self.config.is_enabled(parsed.value):
            raise ValidationError(f"Ecosystem {parsed} is disabled")
        return parsed

    def scan_package(self, request: ScanRequest, scan_id: str = '') -> ScanReport:
        ecosystem = self.validate(request.ecosystem)
        resolver = self.resolvers.get_resolver(ecosystem)
        timer = _StepTimer()
        started = time.perf_counter()
        logger.info(
            'Scanning package', ecosystem=str(ecosystem),
            package=request.package, version=request.version or 'latest',
        )

        with timer.step('Resolve dependencies', resolver.resolver_name):
            resolution = resolver.resolve(request.package, request.version)
        root = resolution.root
        if root is None:
            reason = resolution.errors[0].reason if resolution.errors else 'no metadata'
            raise ScanExecutionError(
                f"Could not resolve {request.package}@{request.version or 'latest'}: {reason}",
            )

        vulnerabilities = dedupe_vulnerabilities(resolution.vulnerabilities)
        report = self._finish(
            timer,
            ScanReport(
                id=scan_id,
                ecosystem=str(ecosystem),
                target=request.package,
                version=root.version,
                dependencies=resolution.dependencies,
                vulnerabilities=vulnerabilities,
                warnings=[str(e) for e in resolution.errors],
            ),
        )
        report.scan_metadata = ScanMetadata(
            scan_duration_ms=int((time.perf_counter() - started) * 1000),
            data_sources_queried=[
                DataSource(
                    name=resolver.registry_name, url=resolver.registry_url,
                    queries_count=len(resolution.dependencies) + len(resolution.errors),
                ),
                DataSource(
                    name='OSV', url=self.advisory.query_url,
                    queries_count=len(resolution.dependencies),
                ),
            ],
            ecosystem_details=EcosystemDetails(
                package_registry=resolver.registry_name,
                dependency_resolver=resolver.resolver_name,
            ),
            scan_steps=timer.steps,
        )
        logger.info(
            'Scan completed', package=request.package, version=root.version,
            dependencies=len(report.dependencies), vulnerabilities=report.summary.total,
            score=report.security_score, duration_ms=report.scan_metadata.scan_duration_ms,
        )
        return report

    def scan_manifest(
        self,
        content: str,
        file_name: str,
        deep: bool = True,
        reporter: ScanReporter | None = None,
        scan_id: str = '',
        manifest: ParsedManifest | None = None,
    ) -> ScanReport:
        reporter = reporter or ScanReporter()
        manifest = manifest or self.manifests.parse(content, file_name)
        ecosystem = self.validate(manifest.ecosystem)
        resolver = self.resolvers.get_resolver(ecosystem)
        timer = _StepTimer()
        started = time.perf_counter()

        declared = manifest.dependencies
        reporter.start(len(declared))
        reporter.log(f"Parsed {len(declared)} dependencies from {file_name}")

        with timer.step('Scan dependencies', 'full sub-scan per dependency' if deep else 'direct lookup'):
            if deep:
                dependencies, vulnerabilities, warnings, package_scans = self._deep_scan(
                    manifest, scan_id, reporter,
                )
            else:
                dependencies, vulnerabilities, warnings = self._shallow_scan(manifest, resolver, reporter)
                package_scans = None

        report = self._finish(
            timer,
            ScanReport(
                id=scan_id,
                ecosystem=str(ecosystem),
                target=file_name,
                version=MANIFEST_VERSION,
                dependencies=dependencies,
                vulnerabilities=dedupe_vulnerabilities(vulnerabilities),
                warnings=warnings,
                is_manifest_scan=True,
                package_scans=package_scans,
            ),
        )
        report.scan_metadata = ScanMetadata(
            scan_duration_ms=int((time.perf_counter() - started) * 1000),
            data_sources_queried=[
                DataSource(name=resolver.registry_name, url=resolver.registry_url, queries_count=len(declared)),
                DataSource(name='OSV', url=self.advisory.query_url, queries_count=len(dependencies)),
            ],
            ecosystem_details=EcosystemDetails(
                package_registry=resolver.registry_name,
                dependency_resolver=resolver.resolver_name,
                manifest_parsed=file_name,
            ),
            scan_steps=timer.steps,
        )
        reporter.log(
            f"Scan complete: {report.summary.total} vulnerabilities, score {report.security_score}/100",
        )
        return report

    def _finish(self, timer: _StepTimer, report: ScanReport) -> ScanReport:
        with timer.step('Calculate score'):
            report.summary = ScanSummary.from_vulnerabilities(report.vulnerabilities)
            report.security_score = score_summary(report.summary, len(report.dependencies))
        with timer.step('Generate remediations'):
            report.remediations = self.remediation.generate(report.vulnerabilities, report.dependencies)
        report.status = ScanStatus.COMPLETED
        return report

    def _shallow_scan(self, manifest: ParsedManifest, resolver, reporter: ScanReporter):
        dependencies: list[Dependency] = []
        vulnerabilities: list[Vulnerability] = []
        warnings: list[str] = []

        for index, declared in enumerate(manifest.dependencies):
            reporter.package_started(index, declared.name)
            version = declared.version
            if version is None:
                try:
                    version = resolver.fetch_metadata(declared.name, None).version
                except RegistryFetchError as e:
                    warnings.append(f"Could not resolve latest version of {declared.name}: {e.reason}")
                    logger.warning('Latest version lookup failed', package=declared.name, error=e.reason)

            found = self.advisory.query(declared.name, manifest.ecosystem, version) if version else []
            dependencies.append(
                Dependency(
                    name=declared.name,
                    version=version or 'latest',
                    ecosystem=manifest.ecosystem,
                    direct=True,
                    vulnerability_count=len(found),
                    max_severity=max_severity(v.severity for v in found),
                ),
            )
            vulnerabilities.extend(found)
            reporter.log(f"{declared.name}@{version or 'latest'}: {len(found)} vulnerabilities")
            reporter.package_finished(index, declared.name, None, None)

        return dependencies, vulnerabilities, warnings

    def _deep_scan(self, manifest: ParsedManifest, scan_id: str, reporter: ScanReporter):
        dependencies: list[Dependency] = []
        seen: set[str] = set()
        vulnerabilities: list[Vulnerability] = []
        warnings: list[str] = []
        package_scans: list[PackageScan] = []

        for index, declared in enumerate(manifest.dependencies):
            sub_id = f"{scan_id}-{index}" if scan_id else str(index)
            reporter.package_started(index, declared.name)
            reporter.log(f"Scanning {declared.name}@{declared.version or 'latest'}")
            try:
                sub_report = self.scan_package(
                    ScanRequest(ecosystem=manifest.ecosystem, package=declared.name, version=declared.version),
                    scan_id=sub_id,
                )
            except (LynxError, ValueError) as e:
                logger.warning('Sub-scan failed', package=declared.name, error=str(e))
                warnings.append(str(e))
                package_scans.append(
                    PackageScan(
                        id=sub_id, name=declared.name, version=declared.version or 'latest',
                        status=ScanStatus.ERROR, error=str(e),
                    ),
                )
                reporter.log(f"{declared.name}: failed ({e})")
                reporter.package_finished(index, declared.name, None, str(e))
                continue

            for dep in sub_report.dependencies:
                if dep.key not in seen:
                    seen.add(dep.key)
                    dependencies.append(dep)
            vulnerabilities.extend(sub_report.vulnerabilities)
            warnings.extend(sub_report.warnings)
            package_scans.append(
                PackageScan(
                    id=sub_id, name=declared.name, version=sub_report.version,
                    security_score=sub_report.security_score, summary=sub_report.summary,
                ),
            )
            reporter.log(
                f"{declared.name}@{sub_report.version}: {sub_report.summary.total} vulnerabilities, "
                f"score {sub_report.security_score}/100",
            )
            reporter.package_finished(index, declared.name, sub_report, None)

        return dependencies, vulnerabilities, warnings, package_scans
