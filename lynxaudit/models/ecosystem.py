from enum import Enum


class Ecosystem(str, Enum):
    PYPI = 'pypi'
    NPM = 'npm'
    MAVEN = 'maven'
    GO = 'go'
    RUBYGEMS = 'rubygems'

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return self.value

    @property
    def osv_name(self) -> str:
        """Ecosystem name as the OSV advisory service spells it."""
        return _OSV_NAMES[self]

    @classmethod
    def parse(cls, value: str) -> 'Ecosystem':
        """Case-insensitive lookup; raises ValueError on unknown names."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ', '.join(e.value for e in cls)
            raise ValueError(
                f"Invalid ecosystem {value!r}. Valid ecosystems: {valid}",
            ) from None


_OSV_NAMES = {
    Ecosystem.PYPI: 'PyPI',
    Ecosystem.NPM: 'npm',
    Ecosystem.MAVEN: 'Maven',
    Ecosystem.GO: 'Go',
    Ecosystem.RUBYGEMS: 'RubyGems',
}


class Severity(str, Enum):
    CRITICAL = 'critical'
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'
    NONE = 'none'

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def from_cvss(cls, score: float) -> 'Severity':
        if score >= 9.0:
            return cls.CRITICAL
        if score >= 7.0:
            return cls.HIGH
        if score >= 4.0:
            return cls.MEDIUM
        return cls.LOW


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.NONE: 0,
}


def max_severity(severities) -> Severity:
    """Highest severity in the iterable, ``Severity.NONE`` when empty."""
    return max(severities, key=lambda s: s.rank, default=Severity.NONE)
