from lynxaudit.core.config import AdvisoryConfig
from lynxaudit.core.config import GitHubConfig
from lynxaudit.core.config import JobConfig
from lynxaudit.core.config import LynxConfig
from lynxaudit.core.config import RegistryConfig
from lynxaudit.core.config import RemediationConfig
from lynxaudit.core.config import ServerConfig


def test_defaults(monkeypatch):
    for name in ('ENABLE_NPM', 'OSV_API_URL', 'LYNX_MAX_JOBS', 'LYNX_VERSION_ORDERING'):
        monkeypatch.delenv(name, raising=False)

    assert RegistryConfig().enable_npm is True
    assert AdvisoryConfig().api_url == 'https://api.osv.dev/v1'
    assert JobConfig().ttl == 30 * 60
    assert JobConfig().max_jobs == 500
    assert RemediationConfig().version_ordering == 'lexicographic'


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('ENABLE_NPM', 'false')
    monkeypatch.setenv('ENABLE_GO', 'TRUE')
    monkeypatch.setenv('OSV_API_URL', 'http://osv.internal/v1')
    monkeypatch.setenv('LYNX_MAX_JOBS', '7')
    monkeypatch.setenv('ALLOWED_ORIGINS', 'https://a.example,https://b.example')

    assert RegistryConfig().enable_npm is False
    assert RegistryConfig().enable_go is True
    assert AdvisoryConfig().api_url == 'http://osv.internal/v1'
    assert JobConfig().max_jobs == 7
    assert ServerConfig().allowed_origins == ['https://a.example', 'https://b.example']


def test_server_cert_paths(tmp_path):
    config = ServerConfig(certs_dir=tmp_path)
    assert config.key_path == tmp_path / 'server.key'
    assert config.cert_path == tmp_path / 'server.crt'


def test_github_token_never_printed():
    config = GitHubConfig(token='ghp_secret')
    assert 'ghp_secret' not in repr(config)
    assert 'ghp_secret' not in repr(LynxConfig(github=config))


def test_redacted_config():
    config = LynxConfig(
        registries=RegistryConfig(enable_rubygems=False),
        github=GitHubConfig(token=None),
    )
    redacted = config.redacted()
    assert redacted['enableRubygems'] is False
    assert redacted['githubToken'] is None
    assert 'jobTtlSeconds' in redacted
