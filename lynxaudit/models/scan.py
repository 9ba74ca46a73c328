from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from lynxaudit.models.dependency import Dependency
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.models.ecosystem import Severity
from lynxaudit.models.remediation import Remediation
from lynxaudit.models.vulnerability import Vulnerability


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanStatus(str, Enum):
    SCANNING = 'scanning'
    COMPLETED = 'completed'
    ERROR = 'error'

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self is not ScanStatus.SCANNING


class ScanRequest(BaseModel):
    """A package coordinate to scan."""
    ecosystem: str
    package: str
    version: str | None = None

    @field_validator('package')
    @classmethod
    def package_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Must specify package name')
        return v.strip()

    @field_validator('version', mode='before')
    @classmethod
    def blank_version_is_latest(cls, v):
        if v is None or (isinstance(v, str) and v.strip() in ('', 'latest')):
            return None
        return str(v).strip()

    @field_validator('ecosystem', mode='before')
    @classmethod
    def normalize_ecosystem(cls, v) -> str:
        if not v:
            raise ValueError('Must specify ecosystem')
        return str(Ecosystem.parse(str(v)))


class ScanFileRequest(BaseModel):
    """A manifest upload."""
    content: str
    file_name: str = Field(alias='fileName')
    deep: bool = True

    model_config = ConfigDict(populate_by_name=True)


class ScanSummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0

    @classmethod
    def from_vulnerabilities(cls, vulnerabilities: list[Vulnerability]) -> 'ScanSummary':
        summary = cls(total=len(vulnerabilities))
        for vuln in vulnerabilities:
            if vuln.severity is Severity.CRITICAL:
                summary.critical += 1
            elif vuln.severity is Severity.HIGH:
                summary.high += 1
            elif vuln.severity is Severity.MEDIUM:
                summary.medium += 1
            elif vuln.severity is Severity.LOW:
                summary.low += 1
        return summary

    @property
    def has_blocking(self) -> bool:
        """Critical or high findings present."""
        return self.critical > 0 or self.high > 0


class ScanStep(BaseModel):
    step: str
    status: Literal['complete', 'skipped', 'failed'] = 'complete'
    duration_ms: int = Field(alias='durationMs', default=0)
    details: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class DataSource(BaseModel):
    name: str
    url: str
    queries_count: int = Field(alias='queriesCount', default=0)

    model_config = ConfigDict(populate_by_name=True)


class EcosystemDetails(BaseModel):
    package_registry: str = Field(alias='packageRegistry')
    dependency_resolver: str = Field(alias='dependencyResolver')
    manifest_parsed: str | None = Field(alias='manifestParsed', default=None)

    model_config = ConfigDict(populate_by_name=True)


class ScanMetadata(BaseModel):
    scan_duration_ms: int = Field(alias='scanDurationMs', default=0)
    data_sources_queried: list[DataSource] = Field(alias='dataSourcesQueried', default_factory=list)
    ecosystem_details: EcosystemDetails | None = Field(alias='ecosystemDetails', default=None)
    scan_steps: list[ScanStep] = Field(alias='scanSteps', default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class PackageScan(BaseModel):
    """Per-package roll-up row of a deep manifest scan."""
    id: str
    name: str
    version: str
    security_score: int = Field(alias='securityScore', default=100)
    summary: ScanSummary = Field(default_factory=ScanSummary)
    status: ScanStatus = ScanStatus.COMPLETED
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class ScanReport(BaseModel):
    """A completed scan, as exported and served over the API."""
    id: str = ''
    status: ScanStatus = ScanStatus.COMPLETED
    ecosystem: str
    target: str
    version: str
    scan_date: datetime = Field(alias='scanDate', default_factory=utcnow)
    security_score: int = Field(alias='securityScore', default=100)
    summary: ScanSummary = Field(default_factory=ScanSummary)
    dependencies: list[Dependency] = Field(default_factory=list)
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    remediations: list[Remediation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    scan_metadata: ScanMetadata | None = Field(alias='scanMetadata', default=None)
    is_manifest_scan: bool = Field(alias='isManifestScan', default=False)
    package_scans: list[PackageScan] | None = Field(alias='packageScans', default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class ScanProgress(BaseModel):
    current: int = 0
    total: int = 0
    current_package: str | None = Field(alias='currentPackage', default=None)
    log: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ScanJob(BaseModel):
    id: str
    status: ScanStatus = ScanStatus.SCANNING
    kind: Literal['package', 'manifest'] = 'package'
    request: dict = Field(default_factory=dict)
    created_at: datetime = Field(alias='createdAt', default_factory=utcnow)
    progress: ScanProgress | None = None
    result: ScanReport | None = None
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    def status_view(self, log_lines: int = 50) -> dict:
        """What a poller sees while the job is running."""
        view = {
            'id': self.id,
            'status': str(self.status),
            'createdAt': self.created_at.isoformat(),
        }
        if self.progress is not None:
            progress = self.progress.model_dump(mode='json', by_alias=True)
            progress['log'] = progress['log'][-log_lines:]
            view['progress'] = progress
        if self.error:
            view['error'] = self.error
        return view
