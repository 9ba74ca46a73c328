from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.base import EcosystemResolver
from lynxaudit.services.ecosystems.base import PackageMetadata


def escape_module_path(module: str) -> str:
    """Go module proxy case encoding: "Azure" -> "!azure"."""
    return ''.join(f"!{c.lower()}" if c.isupper() else c for c in module)


class GoResolver(EcosystemResolver):
    """
    Single node only.

    The module proxy's info endpoints expose no dependency list, so
    transitive modules are not resolved.
    """

    ecosystem = Ecosystem.GO
    max_depth = 0
    registry_name = 'Go module proxy'
    resolver_name = 'Go module proxy (@latest / .info)'

    @property
    def registry_url(self) -> str:
        return self.config.go_proxy_url

    def _module_url(self, module: str) -> str:
        return f"{self.config.go_proxy_url.rstrip('/')}/{escape_module_path(module)}"

    def fetch_metadata(self, name: str, version: str | None) -> PackageMetadata:
        if version is None:
            url = f"{self._module_url(name)}/@latest"
        else:
            url = f"{self._module_url(name)}/@v/{escape_module_path(version)}.info"
        data = self._get_json(url, name, version)
        if not isinstance(data, dict) or not data.get('Version'):
            raise self._fail(name, version, 'missing Version')
        return PackageMetadata(name=name, version=data['Version'])

    def list_versions(self, name: str) -> list[str]:
        response = self._get(f"{self._module_url(name)}/@v/list", name, None)
        return [line.strip() for line in response.text.splitlines() if line.strip()]
