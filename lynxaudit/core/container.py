"""Dependency Injection Container."""
from typing import Optional

import requests

from lynxaudit.core.client import get_http_client
from lynxaudit.core.config import get_config
from lynxaudit.core.config import LynxConfig
from lynxaudit.services.changelog_service import ChangelogService
from lynxaudit.services.ecosystems.factory import ResolverFactory
from lynxaudit.services.job_service import JobStore
from lynxaudit.services.job_service import ScanJobManager
from lynxaudit.services.manifest_service import ManifestService
from lynxaudit.services.osv_service import OsvService
from lynxaudit.services.remediation_service import RemediationService
from lynxaudit.services.scanner_service import ScannerService
from lynxaudit.services.version_service import VersionService


class Container:
    """Simple DI Container to manage service lifecycles."""

    _instance: Optional['Container'] = None

    def __init__(self, config: LynxConfig | None = None, session: requests.Session | None = None) -> None:
        self.config: LynxConfig = config or get_config()
        self._session = session
        self._osv_service: OsvService | None = None
        self._resolver_factory: ResolverFactory | None = None
        self._remediation_service: RemediationService | None = None
        self._scanner_service: ScannerService | None = None
        self._version_service: VersionService | None = None
        self._job_manager: ScanJobManager | None = None

    @classmethod
    def get_instance(cls) -> 'Container':
        if cls._instance is None:
            cls._instance = Container()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None and cls._instance._job_manager is not None:
            cls._instance._job_manager.shutdown()
        cls._instance = None

    # -- Infrastructure --

    def get_session(self) -> requests.Session:
        if self._session is None:
            http = self.config.http
            self._session = get_http_client(
                cache_name=http.cache_name,
                expire_after=http.cache_ttl,
                retries=http.retries,
                pool_size=http.pool_size,
                user_agent=http.user_agent,
            )
        return self._session

    # -- Services (Singletons) --

    def get_osv_service(self) -> OsvService:
        if not self._osv_service:
            self._osv_service = OsvService(
                self.get_session(), self.config.advisory, timeout=self.config.http.timeout,
            )
        return self._osv_service

    def get_resolver_factory(self) -> ResolverFactory:
        if not self._resolver_factory:
            self._resolver_factory = ResolverFactory(
                self.get_session(),
                self.get_osv_service(),
                config=self.config.registries,
                timeout=self.config.http.timeout,
            )
        return self._resolver_factory

    def get_remediation_service(self) -> RemediationService:
        if not self._remediation_service:
            changelogs = ChangelogService(
                self.get_session(), self.config.remediation, self.config.github,
                timeout=self.config.http.timeout,
            )
            self._remediation_service = RemediationService(self.config.remediation, changelogs=changelogs)
        return self._remediation_service

    def get_scanner_service(self) -> ScannerService:
        if not self._scanner_service:
            self._scanner_service = ScannerService(
                self.get_resolver_factory(),
                self.get_osv_service(),
                self.get_remediation_service(),
                ManifestService(),
                config=self.config.registries,
            )
        return self._scanner_service

    def get_version_service(self) -> VersionService:
        if not self._version_service:
            self._version_service = VersionService(self.get_resolver_factory())
        return self._version_service

    def get_job_manager(self, store: JobStore | None = None) -> ScanJobManager:
        if not self._job_manager:
            self._job_manager = ScanJobManager(self.get_scanner_service(), store=store, config=self.config.jobs)
        return self._job_manager

# Global Accessor


def get_container() -> Container:
    return Container.get_instance()
