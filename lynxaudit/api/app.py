"""
FastAPI application for lynxaudit.

Routes only translate HTTP to service calls. Scans run on the job
manager's worker pool; handlers are plain ``def`` so blocking registry
lookups (version listing) run on FastAPI's thread pool.
"""
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter
from fastapi import FastAPI
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response

from lynxaudit.__version__ import __version__
from lynxaudit.core.container import Container
from lynxaudit.core.container import get_container
from lynxaudit.core.errors import JobNotFoundError
from lynxaudit.core.errors import LynxError
from lynxaudit.core.errors import ManifestParseError
from lynxaudit.core.errors import RegistryFetchError
from lynxaudit.core.errors import ValidationError
from lynxaudit.models.scan import ScanFileRequest
from lynxaudit.models.scan import ScanJob
from lynxaudit.models.scan import ScanReport
from lynxaudit.models.scan import ScanRequest
from lynxaudit.models.scan import ScanStatus
from lynxaudit.services.export_service import export_report
from lynxaudit.services.export_service import ExportFormat

logger = structlog.get_logger('api')


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': message})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    @app.exception_handler(ManifestParseError)
    async def bad_request(request: Request, exc: LynxError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        messages = [str(e.get('msg', e)) for e in exc.errors()]
        return _error(400, '; '.join(messages) or 'Invalid request')

    @app.exception_handler(JobNotFoundError)
    async def not_found(request: Request, exc: JobNotFoundError):
        return _error(404, 'Scan not found')

    @app.exception_handler(RegistryFetchError)
    async def upstream_failed(request: Request, exc: RegistryFetchError):
        return _error(502, str(exc))

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.exception('Unhandled API error', path=request.url.path)
        return _error(500, str(exc) or 'Internal server error')


def build_router(container: Container) -> APIRouter:
    router = APIRouter()
    started = time.monotonic()

    def completed_report(scan_id: str) -> ScanReport:
        report = container.get_job_manager().get_result(scan_id)
        if report is None:
            raise ValidationError(f"Scan {scan_id} is not completed")
        return report

    @router.get('/health')
    def health():
        return {
            'status': 'ok',
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime()),
            'version': __version__,
            'uptime': round(time.monotonic() - started, 3),
        }

    @router.get('/ready')
    def ready():
        return {'status': 'ready'}

    @router.get('/api/config')
    def config():
        return container.config.redacted()

    @router.post('/api/scan')
    def create_scan(request: ScanRequest):
        job = container.get_job_manager().create_package_job(request)
        return {'id': job.id, 'status': str(job.status)}

    @router.post('/api/scan/file')
    def create_file_scan(request: ScanFileRequest):
        job, dependency_count = container.get_job_manager().create_manifest_job(request)
        return {'id': job.id, 'status': str(job.status), 'dependencyCount': dependency_count}

    @router.get('/api/scan/{scan_id}')
    def get_scan(scan_id: str):
        manager = container.get_job_manager()
        job: ScanJob = manager.get(scan_id)
        if job.status is ScanStatus.COMPLETED and job.result is not None:
            return job.result.to_dict()
        return job.status_view(manager.config.progress_log_lines)

    @router.get('/api/scan/{scan_id}/status')
    def get_scan_status(scan_id: str):
        return container.get_job_manager().get_status(scan_id)

    @router.get('/api/scan/{scan_id}/dependencies')
    def get_dependencies(scan_id: str):
        report = completed_report(scan_id)
        return [d.model_dump(mode='json', by_alias=True, exclude_none=True) for d in report.dependencies]

    @router.get('/api/scan/{scan_id}/vulnerabilities')
    def get_vulnerabilities(scan_id: str):
        report = completed_report(scan_id)
        return [v.model_dump(mode='json', by_alias=True, exclude_none=True) for v in report.vulnerabilities]

    @router.get('/api/scan/{scan_id}/remediations')
    def get_remediations(scan_id: str):
        report = completed_report(scan_id)
        return [r.model_dump(mode='json', by_alias=True, exclude_none=True) for r in report.remediations]

    @router.get('/api/scan/{scan_id}/export')
    def export_scan(scan_id: str, format: str = 'json'):
        try:
            fmt = ExportFormat(format.lower())
        except ValueError:
            raise ValidationError(
                f"Invalid format {format!r}. Valid formats: {', '.join(f.value for f in ExportFormat)}",
            ) from None
        report = completed_report(scan_id)
        return Response(
            content=export_report(report, fmt),
            media_type=fmt.media_type,
            headers={'Content-Disposition': f'attachment; filename="{scan_id}.{fmt.extension}"'},
        )

    @router.get('/api/versions/{ecosystem}/{package:path}')
    def list_versions(ecosystem: str, package: str):
        versions = container.get_version_service().list_versions(ecosystem, package)
        return {'ecosystem': ecosystem, 'package': package, 'versions': versions}

    return router


def create_app(container: Container | None = None, start_sweeper: bool = True) -> FastAPI:
    container = container or get_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager = container.get_job_manager()
        if start_sweeper:
            manager.start()
        logger.info('API started', version=__version__)
        yield
        manager.shutdown()
        logger.info('API stopped')

    app = FastAPI(title='lynxaudit', version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=container.config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    register_error_handlers(app)
    app.include_router(build_router(container))
    return app
