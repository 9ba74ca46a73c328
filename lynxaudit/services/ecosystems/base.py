import threading
from abc import ABC
from abc import abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field
from typing import Any

import requests
import structlog

from lynxaudit.core.config import RegistryConfig
from lynxaudit.core.errors import RegistryFetchError
from lynxaudit.models.dependency import Dependency
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.models.ecosystem import max_severity
from lynxaudit.models.vulnerability import Vulnerability
from lynxaudit.services.osv_service import OsvService

logger = structlog.get_logger('resolver')


@dataclass
class PackageMetadata:
    """What a registry tells us about one package version."""
    name: str
    version: str
    # (child name, requested version); None requests the latest release
    dependencies: list[tuple[str, str | None]] = field(default_factory=list)


@dataclass
class ResolutionError:
    package: str
    version: str | None
    reason: str
    parent: str | None = None

    def __str__(self) -> str:
        return f"Could not resolve {self.package}@{self.version or 'latest'}: {self.reason}"


@dataclass
class ResolutionResult:
    """Partial-success outcome of one resolve call."""
    dependencies: list[Dependency] = field(default_factory=list)
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    errors: list[ResolutionError] = field(default_factory=list)

    @property
    def root(self) -> Dependency | None:
        return self.dependencies[0] if self.dependencies else None


@dataclass
class _Node:
    name: str
    version: str | None
    depth: int
    parent: str | None = None


@dataclass
class _Visit:
    node: _Node
    metadata: PackageMetadata | None = None
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    error: RegistryFetchError | None = None


class EcosystemResolver(ABC):
    """
    Resolves a bounded dependency tree from one ecosystem's public registry.

    Traversal is breadth first: the root comes first, then its direct
    children, and so on. Each level's registry and advisory lookups run on a
    bounded thread pool while this thread alone claims ``visited`` keys and
    appends results in claim order, so output order and ``direct``/``parent``
    attribution do not depend on thread scheduling.
    """

    ecosystem: Ecosystem
    max_depth: int = 0
    registry_name: str = ''
    resolver_name: str = ''

    def __init__(
        self,
        session: requests.Session,
        advisory: OsvService,
        config: RegistryConfig | None = None,
        timeout: float = 20,
        workers: int | None = None,
    ):
        self.session = session
        self.advisory = advisory
        self.config = config or RegistryConfig()
        self.timeout = timeout
        self.workers = max(1, workers or self.config.resolver_workers)

    # -- Registry surface --

    @abstractmethod
    def fetch_metadata(self, name: str, version: str | None) -> PackageMetadata:
        """Registry metadata for one version; raises RegistryFetchError."""

    @abstractmethod
    def list_versions(self, name: str) -> list[str]:
        """All published versions, unsorted; raises RegistryFetchError."""

    @property
    def registry_url(self) -> str:
        return ''

    # -- Ecosystem policy --

    def is_direct(self, depth: int) -> bool:
        return depth == 0

    def child_version(self, requested: str | None) -> str | None:
        """Version to resolve for a transitive edge. Default: always latest."""
        return None

    # -- Resolution --

    def resolve(self, name: str, version: str | None = None) -> ResolutionResult:
        result = ResolutionResult()
        visited: set[str] = set()
        visited_lock = threading.Lock()
        emitted: set[str] = set()

        def claim(node_name: str, node_version: str | None) -> bool:
            key = f"{node_name}@{node_version or 'latest'}"
            with visited_lock:
                if key in visited:
                    return False
                visited.add(key)
                return True

        claim(name, version)
        level = [_Node(name, version, depth=0)]

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"resolve-{self.ecosystem}") as executor:
            while level:
                visits = list(executor.map(self._visit, level))
                next_level: list[_Node] = []

                for visit in visits:
                    node = visit.node
                    if visit.error is not None or visit.metadata is None:
                        logger.warning(
                            'Dropping unresolvable node', ecosystem=str(self.ecosystem),
                            package=node.name, version=node.version or 'latest',
                            parent=node.parent, error=str(visit.error),
                        )
                        result.errors.append(
                            ResolutionError(
                                package=node.name, version=node.version,
                                reason=visit.error.reason if visit.error else 'no metadata',
                                parent=node.parent,
                            ),
                        )
                        continue

                    metadata = visit.metadata
                    dep = Dependency(
                        name=metadata.name,
                        version=metadata.version,
                        ecosystem=str(self.ecosystem),
                        direct=self.is_direct(node.depth),
                        parent=node.parent,
                        vulnerability_count=len(visit.vulnerabilities),
                        max_severity=max_severity(v.severity for v in visit.vulnerabilities),
                    )
                    # A "latest" request may land on an already emitted version
                    if dep.key in emitted:
                        continue
                    emitted.add(dep.key)
                    result.dependencies.append(dep)
                    result.vulnerabilities.extend(visit.vulnerabilities)

                    if node.depth >= self.max_depth:
                        continue
                    for child_name, requested in metadata.dependencies:
                        child_version = self.child_version(requested)
                        if claim(child_name, child_version):
                            next_level.append(
                                _Node(child_name, child_version, node.depth + 1, parent=metadata.name),
                            )
                level = next_level

        logger.info(
            'Resolution complete', ecosystem=str(self.ecosystem), package=name,
            dependencies=len(result.dependencies), errors=len(result.errors),
        )
        return result

    def _visit(self, node: _Node) -> _Visit:
        try:
            metadata = self.fetch_metadata(node.name, node.version)
        except RegistryFetchError as e:
            return _Visit(node=node, error=e)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # Unexpected payload shape drops this node, not the whole tree
            return _Visit(node=node, error=self._fail(node.name, node.version, f"malformed metadata: {e}"))
        vulnerabilities = self.advisory.query(metadata.name, self.ecosystem, metadata.version)
        return _Visit(node=node, metadata=metadata, vulnerabilities=vulnerabilities)

    # -- HTTP helpers --

    def _fail(self, name: str, version: str | None, reason: str) -> RegistryFetchError:
        return RegistryFetchError(str(self.ecosystem), name, version, reason)

    def _get(self, url: str, name: str, version: str | None) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise self._fail(name, version, str(e)) from e
        if response.status_code != 200:
            raise self._fail(name, version, f"HTTP {response.status_code}")
        return response

    def _get_json(self, url: str, name: str, version: str | None) -> Any:
        response = self._get(url, name, version)
        try:
            return response.json()
        except ValueError as e:
            raise self._fail(name, version, f"invalid JSON: {e}") from e

    def _get_object(self, url: str, name: str, version: str | None) -> dict[str, Any]:
        data = self._get_json(url, name, version)
        if not isinstance(data, dict):
            raise self._fail(name, version, f"expected a JSON object, got {type(data).__name__}")
        return data
