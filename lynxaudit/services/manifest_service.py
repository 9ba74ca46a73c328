"""Manifest parsing.

Turns the raw text of a dependency declaration file into a
``ParsedManifest``. Gemfile and pom.xml support is pattern based and only
captures the common declaration shapes: nested groups, conditionals and
property-driven versions are not interpreted.
"""
import json
import re
from pathlib import PurePath

import structlog

from lynxaudit.core.errors import ManifestParseError
from lynxaudit.core.errors import UnsupportedManifestError
from lynxaudit.models.dependency import ParsedDependency
from lynxaudit.models.dependency import ParsedManifest
from lynxaudit.models.ecosystem import Ecosystem

logger = structlog.get_logger('manifest_service')

_EGG = re.compile(r'#egg=([a-zA-Z0-9_.-]+)')
_REQUIREMENT = re.compile(r'^([a-zA-Z0-9_.-]+)(?:\[.*?\])?\s*(?:([=<>~!]+)\s*(.+))?')
_NPM_PREFIX = re.compile(r'^[\^~>=<]+')
_GO_REQUIRE = re.compile(r'^require\s+(\S+)\s+(\S+)')
_GEM = re.compile(r'''gem\s+['"]([^'"]+)['"](?:\s*,\s*['"]([^'"]+)['"])?''')
_GEM_OPERATOR = re.compile(r'^[~>=<]+\s*')
_POM_DEPENDENCY = re.compile(
    r'<dependency>\s*<groupId>([^<]+)</groupId>\s*<artifactId>([^<]+)</artifactId>'
    r'(?:\s*<version>([^<]+)</version>)?',
)


def detect_ecosystem(file_name: str) -> Ecosystem | None:
    """Ecosystem implied by a manifest's base name, case-insensitive."""
    name = PurePath(file_name.replace('\\', '/')).name.lower()
    if name == 'requirements.txt' or (name.endswith('.txt') and 'requirements' in name):
        return Ecosystem.PYPI
    if name in ('package.json', 'package-lock.json'):
        return Ecosystem.NPM
    if name in ('go.mod', 'go.sum'):
        return Ecosystem.GO
    if name in ('gemfile', 'gemfile.lock'):
        return Ecosystem.RUBYGEMS
    if name == 'pom.xml':
        return Ecosystem.MAVEN
    return None


def parse_requirements(content: str) -> list[ParsedDependency]:
    deps = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('-'):
            # -r, -c, --index-url ... ; only editable installs name a package
            egg = _EGG.search(line)
            if egg:
                deps.append(ParsedDependency(name=egg.group(1).lower()))
            continue

        line = line.split(' #', 1)[0].split(';', 1)[0].strip()
        match = _REQUIREMENT.match(line)
        if not match:
            continue
        version = match.group(3)
        if version:
            version = version.split(',', 1)[0].strip() or None
        deps.append(ParsedDependency(name=match.group(1).lower(), version=version))
    return deps


def clean_npm_version(version: str | None) -> str | None:
    """``^4.17.1`` -> ``4.17.1``; non-registry specifiers mean latest."""
    if not version or not isinstance(version, str):
        return None
    version = version.strip()
    if version in ('*', 'latest', ''):
        return None
    if version.startswith(('git', 'http', 'file:', 'link:')):
        return None
    cleaned = _NPM_PREFIX.sub('', version).split(' ')[0]
    return cleaned or None


def parse_package_json(content: str, file_name: str = 'package.json') -> list[ParsedDependency]:
    try:
        pkg = json.loads(content)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid package.json format: {e}", file_name) from e
    if not isinstance(pkg, dict):
        raise ManifestParseError('Invalid package.json format: expected an object', file_name)

    deps = []
    for section, is_dev in (('dependencies', False), ('devDependencies', True)):
        for name, version in (pkg.get(section) or {}).items():
            deps.append(
                ParsedDependency(name=name, version=clean_npm_version(version), is_dev=is_dev),
            )
    return deps


def parse_go_mod(content: str) -> list[ParsedDependency]:
    deps = []
    in_block = False
    for line in content.splitlines():
        line = line.split('//', 1)[0].strip()
        if line.startswith('require ('):
            in_block = True
            continue
        if line == ')':
            in_block = False
            continue
        if line.startswith('require ') and '(' not in line:
            match = _GO_REQUIRE.match(line)
            if match:
                deps.append(ParsedDependency(name=match.group(1), version=match.group(2)))
            continue
        if in_block and line:
            parts = line.split()
            if len(parts) >= 2:
                deps.append(ParsedDependency(name=parts[0], version=parts[1]))
    return deps


def parse_gemfile(content: str) -> list[ParsedDependency]:
    deps = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        match = _GEM.search(line)
        if match:
            version = match.group(2)
            deps.append(
                ParsedDependency(
                    name=match.group(1),
                    version=_GEM_OPERATOR.sub('', version) if version else None,
                ),
            )
    return deps


def parse_pom_xml(content: str) -> list[ParsedDependency]:
    return [
        ParsedDependency(
            name=f"{group.strip()}:{artifact.strip()}",
            version=version.strip() if version else None,
        )
        for group, artifact, version in _POM_DEPENDENCY.findall(content)
    ]


class ManifestService:
    """Parses uploaded manifests into declared dependency lists."""

    def parse(self, content: str, file_name: str) -> ParsedManifest:
        ecosystem = detect_ecosystem(file_name)
        if ecosystem is None:
            raise UnsupportedManifestError(file_name)

        if ecosystem is Ecosystem.PYPI:
            deps = parse_requirements(content)
        elif ecosystem is Ecosystem.NPM:
            deps = parse_package_json(content, file_name)
        elif ecosystem is Ecosystem.GO:
            deps = parse_go_mod(content)
        elif ecosystem is Ecosystem.RUBYGEMS:
            deps = parse_gemfile(content)
        else:
            deps = parse_pom_xml(content)

        logger.info(
            'Parsed manifest', file_name=file_name,
            ecosystem=str(ecosystem), dependencies=len(deps),
        )
        return ParsedManifest(ecosystem=str(ecosystem), file_name=file_name, dependencies=deps)
