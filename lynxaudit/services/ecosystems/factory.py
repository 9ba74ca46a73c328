import requests

from lynxaudit.core.config import RegistryConfig
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.base import EcosystemResolver
from lynxaudit.services.ecosystems.go import GoResolver
from lynxaudit.services.ecosystems.maven import MavenResolver
from lynxaudit.services.ecosystems.npm import NpmResolver
from lynxaudit.services.ecosystems.pypi import PyPIResolver
from lynxaudit.services.ecosystems.rubygems import RubyGemsResolver
from lynxaudit.services.osv_service import OsvService


class ResolverFactory:
    _MAPPING: dict[Ecosystem, type[EcosystemResolver]] = {
        Ecosystem.PYPI: PyPIResolver,
        Ecosystem.NPM: NpmResolver,
        Ecosystem.MAVEN: MavenResolver,
        Ecosystem.GO: GoResolver,
        Ecosystem.RUBYGEMS: RubyGemsResolver,
    }

    def __init__(
        self,
        session: requests.Session,
        advisory: OsvService,
        config: RegistryConfig | None = None,
        timeout: float = 20,
    ):
        self.session = session
        self.advisory = advisory
        self.config = config or RegistryConfig()
        self.timeout = timeout

    def get_resolver(self, ecosystem: Ecosystem | str) -> EcosystemResolver:
        if not isinstance(ecosystem, Ecosystem):
            ecosystem = Ecosystem.parse(ecosystem)
        resolver_cls = self._MAPPING.get(ecosystem)
        if resolver_cls is None:
            raise ValueError(f"Unsupported ecosystem: {ecosystem}")
        return resolver_cls(self.session, self.advisory, config=self.config, timeout=self.timeout)
