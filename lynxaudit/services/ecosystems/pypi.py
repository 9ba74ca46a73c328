import re
from urllib.parse import quote

from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.base import EcosystemResolver
from lynxaudit.services.ecosystems.base import PackageMetadata

# "requests (>=2.0.0)", "PySocks!=1.5.7,>=1.5.6; extra == 'socks'"
_REQUIREMENT_NAME = re.compile(r'^([A-Za-z0-9][A-Za-z0-9._-]*)')
_EXTRA_MARKER = re.compile(r'extra\s*==')


class PyPIResolver(EcosystemResolver):
    """Root plus its declared requirements. No recursion into their trees."""

    ecosystem = Ecosystem.PYPI
    max_depth = 1
    registry_name = 'PyPI'
    resolver_name = 'PyPI JSON API (requires_dist)'

    @property
    def registry_url(self) -> str:
        return self.config.pypi_url

    def is_direct(self, depth: int) -> bool:
        return depth <= 1

    def _url(self, name: str, version: str | None) -> str:
        base = self.config.pypi_url.rstrip('/')
        if version is None:
            return f"{base}/{quote(name)}/json"
        return f"{base}/{quote(name)}/{quote(version)}/json"

    def fetch_metadata(self, name: str, version: str | None) -> PackageMetadata:
        data = self._get_object(self._url(name, version), name, version)
        info = data.get('info') or {}
        if not info.get('version'):
            raise self._fail(name, version, 'missing info.version')

        children: list[tuple[str, str | None]] = []
        seen: set[str] = set()
        for requirement in info.get('requires_dist') or []:
            # Optional extras are not installed by default
            if ';' in requirement and _EXTRA_MARKER.search(requirement.split(';', 1)[1]):
                continue
            match = _REQUIREMENT_NAME.match(requirement.strip())
            if not match:
                continue
            child = match.group(1)
            if child.lower() in seen:
                continue
            seen.add(child.lower())
            children.append((child, None))

        return PackageMetadata(
            name=info.get('name') or name,
            version=info['version'],
            dependencies=children,
        )

    def list_versions(self, name: str) -> list[str]:
        data = self._get_object(self._url(name, None), name, None)
        releases = data.get('releases') or {}
        return [v for v, files in releases.items() if isinstance(files, list) and files]
