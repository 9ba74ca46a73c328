from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from lynxaudit.models.ecosystem import Severity


class Dependency(BaseModel):
    """One resolved node of a dependency graph."""
    name: str
    version: str
    ecosystem: str
    direct: bool = False
    parent: str | None = None
    vulnerability_count: int = Field(alias='vulnerabilityCount', default=0)
    max_severity: Severity = Field(alias='maxSeverity', default=Severity.NONE)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def key(self) -> str:
        """Identity within one resolution."""
        return f"{self.name}@{self.version}"


class ParsedDependency(BaseModel):
    """A dependency as declared in a manifest, before resolution."""
    name: str
    # None means "resolve latest"
    version: str | None = None
    is_dev: bool = Field(alias='isDev', default=False)

    model_config = ConfigDict(populate_by_name=True)


class ParsedManifest(BaseModel):
    ecosystem: str
    file_name: str = Field(alias='fileName')
    dependencies: list[ParsedDependency] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)
