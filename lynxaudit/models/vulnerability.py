from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from lynxaudit.models.ecosystem import Severity


class Vulnerability(BaseModel):
    """A normalized advisory match for one installed package version."""
    id: str
    severity: Severity
    cvss: float | None = None
    package: str
    installed_version: str = Field(alias='installedVersion')
    fixed_version: str | None = Field(alias='fixedVersion', default=None)
    description: str = 'No description available'
    references: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


def dedupe_vulnerabilities(vulnerabilities: list[Vulnerability]) -> list[Vulnerability]:
    """Keep the first occurrence of every advisory id, preserving order."""
    seen: set[str] = set()
    unique = []
    for vuln in vulnerabilities:
        if vuln.id in seen:
            continue
        seen.add(vuln.id)
        unique.append(vuln)
    return unique
