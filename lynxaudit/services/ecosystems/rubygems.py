from urllib.parse import quote

from lynxaudit.core.errors import RegistryFetchError
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.base import EcosystemResolver
from lynxaudit.services.ecosystems.base import PackageMetadata


class RubyGemsResolver(EcosystemResolver):
    """Runtime dependencies up to depth 2, always following the latest release."""

    ecosystem = Ecosystem.RUBYGEMS
    max_depth = 2
    registry_name = 'RubyGems.org'
    resolver_name = 'RubyGems API (runtime dependencies, latest per edge)'

    @property
    def registry_url(self) -> str:
        return self.config.rubygems_url

    def _latest_url(self, gem: str) -> str:
        return f"{self.config.rubygems_url.rstrip('/')}/api/v1/gems/{quote(gem)}.json"

    def _version_url(self, gem: str, version: str) -> str:
        return (
            f"{self.config.rubygems_url.rstrip('/')}/api/v2/rubygems/"
            f"{quote(gem)}/versions/{quote(version)}.json"
        )

    def fetch_metadata(self, name: str, version: str | None) -> PackageMetadata:
        if version is None:
            data = self._get_json(self._latest_url(name), name, version)
        else:
            try:
                data = self._get_json(self._version_url(name, version), name, version)
            except RegistryFetchError:
                # Unknown version: fall back to the latest release
                data = self._get_json(self._latest_url(name), name, None)

        if not isinstance(data, dict) or not data.get('version'):
            raise self._fail(name, version, 'missing version')

        runtime = (data.get('dependencies') or {}).get('runtime') or []
        return PackageMetadata(
            name=data.get('name') or name,
            version=data['version'],
            dependencies=[(d['name'], d.get('requirements')) for d in runtime if d.get('name')],
        )

    def list_versions(self, name: str) -> list[str]:
        url = f"{self.config.rubygems_url.rstrip('/')}/api/v1/versions/{quote(name)}.json"
        data = self._get_json(url, name, None)
        if not isinstance(data, list):
            raise self._fail(name, None, f"expected a JSON array, got {type(data).__name__}")
        return [v['number'] for v in data if isinstance(v, dict) and v.get('number')]
