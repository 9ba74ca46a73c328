from urllib.parse import quote

from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.base import EcosystemResolver
from lynxaudit.services.ecosystems.base import PackageMetadata


class NpmResolver(EcosystemResolver):
    """
    Production dependencies up to depth 3.

    Every transitive edge follows the registry's ``latest`` tag rather than
    the declared semver range.
    """

    ecosystem = Ecosystem.NPM
    max_depth = 3
    registry_name = 'npm registry'
    resolver_name = 'npm registry (dependencies, latest per edge)'

    @property
    def registry_url(self) -> str:
        return self.config.npm_url

    def _package_url(self, name: str) -> str:
        # Scoped packages keep their "@" but escape the slash
        return f"{self.config.npm_url.rstrip('/')}/{quote(name, safe='@')}"

    def fetch_metadata(self, name: str, version: str | None) -> PackageMetadata:
        url = f"{self._package_url(name)}/{quote(version or 'latest', safe='')}"
        data = self._get_json(url, name, version)
        if not isinstance(data, dict) or not data.get('version'):
            raise self._fail(name, version, 'missing version')
        return PackageMetadata(
            name=data.get('name') or name,
            version=data['version'],
            dependencies=[(child, None) for child in (data.get('dependencies') or {})],
        )

    def list_versions(self, name: str) -> list[str]:
        data = self._get_object(self._package_url(name), name, None)
        return list((data.get('versions') or {}).keys())
