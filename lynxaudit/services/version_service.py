import structlog

from lynxaudit.core.errors import ValidationError
from lynxaudit.core.versions import sort_versions_desc
from lynxaudit.models.ecosystem import Ecosystem
from lynxaudit.services.ecosystems.factory import ResolverFactory

logger = structlog.get_logger('version_service')


class VersionService:
    """Published versions of a package, newest first."""

    def __init__(self, resolvers: ResolverFactory):
        self.resolvers = resolvers

    def list_versions(self, ecosystem: str, package: str) -> list[str]:
        try:
            parsed = Ecosystem.parse(ecosystem)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if not package or not package.strip():
            raise ValidationError('Must specify package name')

        versions = self.resolvers.get_resolver(parsed).list_versions(package.strip())
        logger.debug('Listed versions', ecosystem=str(parsed), package=package, count=len(versions))
        return sort_versions_desc(list(dict.fromkeys(versions)))
