"""Configuration management for lynxaudit."""
import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() == 'true'


@dataclass
class HttpConfig:
    """Outbound HTTP behaviour shared by every registry and advisory call."""
    timeout: float = field(
        default_factory=lambda: float(os.getenv('LYNX_HTTP_TIMEOUT', '20')),
    )
    retries: int = 3
    pool_size: int = 20
    cache_name: str = field(
        default_factory=lambda: os.getenv(
            'LYNX_CACHE_PATH', '.requests-cache/lynx.sqlite3',
        ),
    )
    cache_ttl: int = 60 * 60  # 1 hour in seconds
    user_agent: str = 'lynxaudit'


@dataclass
class RegistryConfig:
    """Package registry endpoints and per-ecosystem switches."""
    pypi_url: str = 'https://pypi.org/pypi'
    npm_url: str = 'https://registry.npmjs.org'
    maven_url: str = 'https://repo1.maven.org/maven2'
    go_proxy_url: str = 'https://proxy.golang.org'
    rubygems_url: str = 'https://rubygems.org'

    enable_pypi: bool = field(default_factory=lambda: _env_bool('ENABLE_PYPI', True))
    enable_npm: bool = field(default_factory=lambda: _env_bool('ENABLE_NPM', True))
    enable_maven: bool = field(default_factory=lambda: _env_bool('ENABLE_MAVEN', True))
    enable_go: bool = field(default_factory=lambda: _env_bool('ENABLE_GO', True))
    enable_rubygems: bool = field(
        default_factory=lambda: _env_bool('ENABLE_RUBYGEMS', True),
    )

    # Sibling nodes of one tree level fetched concurrently
    resolver_workers: int = field(
        default_factory=lambda: int(os.getenv('LYNX_RESOLVER_WORKERS', '4')),
    )

    def is_enabled(self, ecosystem: str) -> bool:
        return bool(getattr(self, f"enable_{ecosystem}", False))


@dataclass
class AdvisoryConfig:
    """OSV advisory service settings."""
    api_url: str = field(
        default_factory=lambda: os.getenv('OSV_API_URL', 'https://api.osv.dev/v1'),
    )
    # When False, query by package only and match versions locally
    prefilter: bool = field(default_factory=lambda: _env_bool('OSV_PREFILTER', True))
    calls_per_second: int = 20


@dataclass
class JobConfig:
    """Scan job retention and execution limits."""
    ttl: int = 30 * 60  # 30 minutes in seconds
    sweep_interval: int = 60
    max_jobs: int = field(
        default_factory=lambda: int(os.getenv('LYNX_MAX_JOBS', '500')),
    )
    job_timeout: int = field(
        default_factory=lambda: int(os.getenv('LYNX_JOB_TIMEOUT', '600')),
    )
    workers: int = 4
    progress_log_lines: int = 50


@dataclass
class RemediationConfig:
    """Upgrade target selection and changelog lookup settings."""
    # 'lexicographic' keeps plain string ordering of fixed versions
    version_ordering: Literal['lexicographic', 'semantic'] = field(
        default_factory=lambda: os.getenv(  # type: ignore[arg-type]
            'LYNX_VERSION_ORDERING', 'lexicographic',
        ),
    )
    raw_content_url: str = 'https://raw.githubusercontent.com'
    changelog_paths: tuple[str, ...] = (
        'main/CHANGELOG.md',
        'master/CHANGELOG.md',
        'main/HISTORY.md',
        'main/CHANGES.rst',
    )
    fetch_changelogs: bool = field(
        default_factory=lambda: _env_bool('LYNX_FETCH_CHANGELOGS', True),
    )


@dataclass
class ServerConfig:
    host: str = field(default_factory=lambda: os.getenv('HOST', '0.0.0.0'))
    port: int = field(default_factory=lambda: int(os.getenv('PORT', '8080')))
    https_port: int = field(
        default_factory=lambda: int(os.getenv('HTTPS_PORT', '8443')),
    )
    enable_https: bool = field(
        default_factory=lambda: _env_bool('ENABLE_HTTPS', False),
    )
    certs_dir: Path = field(default_factory=lambda: Path(os.getenv('LYNX_CERTS_DIR', 'certs')))
    allowed_origins: list[str] = field(
        default_factory=lambda: os.getenv(
            'ALLOWED_ORIGINS',
            'http://localhost:5173,http://localhost:8080,https://localhost:8443',
        ).split(','),
    )

    @property
    def key_path(self) -> Path:
        return self.certs_dir / 'server.key'

    @property
    def cert_path(self) -> Path:
        return self.certs_dir / 'server.crt'


@dataclass
class GitHubConfig:
    token: str | None = field(
        default_factory=lambda: os.getenv('GITHUB_TOKEN'),
    )

    def __repr__(self) -> str:
        return "GitHubConfig(token='*****')"


@dataclass
class LynxConfig:
    http: HttpConfig = field(default_factory=HttpConfig)
    registries: RegistryConfig = field(default_factory=RegistryConfig)
    advisory: AdvisoryConfig = field(default_factory=AdvisoryConfig)
    jobs: JobConfig = field(default_factory=JobConfig)
    remediation: RemediationConfig = field(default_factory=RemediationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO').upper())

    def redacted(self) -> dict:
        """Configuration safe to expose over the API."""
        return {
            'logLevel': self.log_level,
            'enablePypi': self.registries.enable_pypi,
            'enableNpm': self.registries.enable_npm,
            'enableMaven': self.registries.enable_maven,
            'enableGo': self.registries.enable_go,
            'enableRubygems': self.registries.enable_rubygems,
            'osvApiUrl': self.advisory.api_url,
            'jobTtlSeconds': self.jobs.ttl,
            'maxJobs': self.jobs.max_jobs,
            'versionOrdering': self.remediation.version_ordering,
            'githubToken': '***' if self.github.token else None,
        }

    @classmethod
    def load(cls) -> 'LynxConfig':
        return cls()


_config: LynxConfig | None = None


def get_config() -> LynxConfig:
    global _config
    if _config is None:
        _config = LynxConfig.load()
    return _config
