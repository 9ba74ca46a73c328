from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class BreakingChange(BaseModel):
    type: Literal['removed', 'moved', 'changed', 'deprecated'] = 'changed'
    description: str
    old_signature: str | None = Field(alias='oldSignature', default=None)
    new_signature: str | None = Field(alias='newSignature', default=None)

    model_config = ConfigDict(populate_by_name=True)


class Remediation(BaseModel):
    """One proposed upgrade per vulnerable package."""
    id: str
    package: str
    current_version: str = Field(alias='currentVersion')
    target_version: str = Field(alias='targetVersion')
    vulnerabilities_fixed: list[str] = Field(alias='vulnerabilitiesFixed', default_factory=list)
    risk_level: Literal['low', 'medium', 'high'] = Field(alias='riskLevel', default='low')
    is_breaking: bool = Field(alias='isBreaking', default=False)
    breaking_changes: list[BreakingChange] | None = Field(alias='breakingChanges', default=None)
    migration_guide_url: str | None = Field(alias='migrationGuideUrl', default=None)
    changelog_url: str | None = Field(alias='changelogUrl', default=None)

    model_config = ConfigDict(populate_by_name=True)
