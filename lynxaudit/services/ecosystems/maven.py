import re
import xml.etree.ElementTree as ET

from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.base import EcosystemResolver
from lynxaudit.services.ecosystems.base import PackageMetadata

_RANGE_CHARS = re.compile(r'[\[\]()]')


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for element in root.iter():
        if isinstance(element.tag, str) and '}' in element.tag:
            element.tag = element.tag.split('}', 1)[1]
    return root


def _text(element: ET.Element | None, path: str) -> str | None:
    if element is None:
        return None
    found = element.find(path)
    if found is None or found.text is None:
        return None
    return found.text.strip() or None


def clean_maven_version(version: str | None) -> str | None:
    """Turn a declared POM version into something resolvable, or None for latest."""
    if not version:
        return None
    # Property placeholders cannot be evaluated without the parent POM
    if '${' in version:
        return None
    cleaned = _RANGE_CHARS.sub('', version)
    # "[1.0,2.0)" -> "1.0"
    cleaned = cleaned.split(',')[0].strip()
    return cleaned or None


class MavenResolver(EcosystemResolver):
    """
    Compile-scope POM dependencies up to depth 2.

    Package names are ``groupId:artifactId``. Unlike npm and RubyGems the
    declared child version is kept when it is concrete.
    """

    ecosystem = Ecosystem.MAVEN
    max_depth = 2
    registry_name = 'Maven Central'
    resolver_name = 'Maven Central (maven-metadata.xml + POM)'

    @property
    def registry_url(self) -> str:
        return self.config.maven_url

    def child_version(self, requested: str | None) -> str | None:
        return clean_maven_version(requested)

    def _coordinates(self, name: str, version: str | None) -> tuple[str, str]:
        if ':' not in name:
            raise self._fail(name, version, 'expected groupId:artifactId')
        group, artifact = name.split(':', 1)
        return group, artifact

    def _artifact_url(self, name: str, version: str | None) -> str:
        group, artifact = self._coordinates(name, version)
        return f"{self.config.maven_url.rstrip('/')}/{group.replace('.', '/')}/{artifact}"

    def _parse_xml(self, text: str, name: str, version: str | None) -> ET.Element:
        try:
            return _strip_namespaces(ET.fromstring(text))
        except ET.ParseError as e:
            raise self._fail(name, version, f"invalid XML: {e}") from e

    def _metadata(self, name: str, version: str | None) -> ET.Element:
        url = f"{self._artifact_url(name, version)}/maven-metadata.xml"
        return self._parse_xml(self._get(url, name, version).text, name, version)

    def fetch_metadata(self, name: str, version: str | None) -> PackageMetadata:
        if version is None:
            metadata = self._metadata(name, version)
            version = _text(metadata, 'versioning/latest') or _text(metadata, 'versioning/release')
            if not version:
                raise self._fail(name, None, 'no latest version in maven-metadata.xml')

        _, artifact = self._coordinates(name, version)
        pom_url = f"{self._artifact_url(name, version)}/{version}/{artifact}-{version}.pom"
        pom = self._parse_xml(self._get(pom_url, name, version).text, name, version)

        children: list[tuple[str, str | None]] = []
        for dep in pom.findall('dependencies/dependency'):
            scope = _text(dep, 'scope')
            if scope not in (None, 'compile'):
                continue
            group_id = _text(dep, 'groupId')
            artifact_id = _text(dep, 'artifactId')
            if not group_id or not artifact_id:
                continue
            children.append((f"{group_id}:{artifact_id}", _text(dep, 'version')))

        return PackageMetadata(name=name, version=version, dependencies=children)

    def list_versions(self, name: str) -> list[str]:
        metadata = self._metadata(name, None)
        return [
            v.text.strip() for v in metadata.findall('versioning/versions/version')
            if v.text and v.text.strip()
        ]
