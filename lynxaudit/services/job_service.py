"""Asynchronous scan jobs.

Jobs live in an injected ``JobStore``. Request handlers read copies, the
background workers publish whole status transitions under the store lock,
and a sweeper thread expires old jobs, caps the store size and fails jobs
that have been scanning for too long.
"""
import threading
import time
import uuid
from abc import ABC
from abc import abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from datetime import timedelta

import structlog

from lynxaudit.core.config import JobConfig
from lynxaudit.core.errors import JobNotFoundError
from lynxaudit.models.scan import ScanFileRequest
from lynxaudit.models.scan import ScanJob
from lynxaudit.models.scan import ScanProgress
from lynxaudit.models.scan import ScanReport
from lynxaudit.models.scan import ScanRequest
from lynxaudit.models.scan import ScanStatus
from lynxaudit.models.scan import utcnow
from lynxaudit.services.scanner_service import ScannerService
from lynxaudit.services.scanner_service import ScanReporter

logger = structlog.get_logger('job_service')

TIMEOUT_MESSAGE = 'Scan timed out'


def new_job_id() -> str:
    return f"scan-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class JobStore(ABC):
    """Concurrency-safe job storage. Readers always get copies."""

    @abstractmethod
    def get(self, job_id: str) -> ScanJob | None:
        ...

    @abstractmethod
    def put(self, job: ScanJob) -> None:
        ...

    @abstractmethod
    def update(self, job_id: str, mutate: Callable[[ScanJob], None]) -> ScanJob | None:
        """Apply ``mutate`` to the stored job atomically; None if absent."""

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        ...

    @abstractmethod
    def list(self) -> list[ScanJob]:
        ...

    def __len__(self) -> int:
        return len(self.list())


class InMemoryJobStore(JobStore):
    def __init__(self):
        self._jobs: dict[str, ScanJob] = {}
        self._lock = threading.RLock()

    def get(self, job_id: str) -> ScanJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def put(self, job: ScanJob) -> None:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)

    def update(self, job_id: str, mutate: Callable[[ScanJob], None]) -> ScanJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            mutate(job)
            return job.model_copy(deep=True)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list(self) -> list[ScanJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class _JobReporter(ScanReporter):
    """Writes manifest scan progress and sub-scan results into the store."""

    def __init__(self, manager: 'ScanJobManager', job_id: str):
        self.manager = manager
        self.job_id = job_id

    def _progress(self, mutate: Callable[[ScanProgress], None]) -> None:
        def apply(job: ScanJob) -> None:
            if job.status.is_terminal:
                return
            if job.progress is None:
                job.progress = ScanProgress()
            mutate(job.progress)

        self.manager.store.update(self.job_id, apply)

    def start(self, total: int) -> None:
        def apply(progress: ScanProgress) -> None:
            progress.total = total
        self._progress(apply)

    def package_started(self, index: int, name: str) -> None:
        def apply(progress: ScanProgress) -> None:
            progress.current = index + 1
            progress.current_package = name
        self._progress(apply)

    def package_finished(self, index: int, name: str, report: ScanReport | None, error: str | None) -> None:
        sub_id = f"{self.job_id}-{index}"
        sub_job = ScanJob(
            id=sub_id,
            status=ScanStatus.ERROR if error else ScanStatus.COMPLETED,
            request={'package': name},
            created_at=self.manager.clock(),
            result=report,
            error=error,
        )
        if report is not None or error is not None:
            self.manager.store.put(sub_job)

    def log(self, message: str) -> None:
        keep = self.manager.config.progress_log_lines * 4

        def apply(progress: ScanProgress) -> None:
            progress.log.append(message)
            del progress.log[:-keep]
        self._progress(apply)


class ScanJobManager:
    """Creates scan jobs, runs them in the background and serves their state."""

    def __init__(
        self,
        scanner: ScannerService,
        store: JobStore | None = None,
        config: JobConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scanner = scanner
        self.store = store or InMemoryJobStore()
        self.config = config or JobConfig()
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=self.config.workers, thread_name_prefix='scan-job')
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    # -- Creation --

    def create_package_job(self, request: ScanRequest) -> ScanJob:
        # Pre-flight: reject disabled ecosystems before a job exists
        self.scanner.validate(request.ecosystem)
        job = ScanJob(
            id=new_job_id(), kind='package', created_at=self.clock(),
            request=request.model_dump(mode='json'),
        )
        self.store.put(job)
        logger.info('Scan job created', job_id=job.id, package=request.package, ecosystem=request.ecosystem)
        self._executor.submit(self._run, job.id, lambda: self.scanner.scan_package(request, scan_id=job.id))
        return job

    def create_manifest_job(self, request: ScanFileRequest) -> tuple[ScanJob, int]:
        """Parse up front so malformed manifests fail the request, not the job."""
        manifest = self.scanner.manifests.parse(request.content, request.file_name)
        self.scanner.validate(manifest.ecosystem)
        job = ScanJob(
            id=new_job_id(), kind='manifest', created_at=self.clock(),
            request={'fileName': request.file_name, 'deep': request.deep, 'ecosystem': manifest.ecosystem},
            progress=ScanProgress(total=len(manifest.dependencies)),
        )
        self.store.put(job)
        logger.info(
            'Manifest job created', job_id=job.id, file_name=request.file_name,
            dependencies=len(manifest.dependencies), deep=request.deep,
        )
        reporter = _JobReporter(self, job.id)
        self._executor.submit(
            self._run, job.id,
            lambda: self.scanner.scan_manifest(
                request.content, request.file_name, deep=request.deep,
                reporter=reporter, scan_id=job.id, manifest=manifest,
            ),
        )
        return job, len(manifest.dependencies)

    # -- Execution --

    def _run(self, job_id: str, work: Callable[[], ScanReport]) -> None:
        try:
            with structlog.contextvars.bound_contextvars(job_id=job_id):
                report = work()
        except Exception as e:
            logger.exception('Scan job failed', job_id=job_id)
            self._publish(job_id, ScanStatus.ERROR, error=str(e) or e.__class__.__name__)
            return
        report.id = job_id
        self._publish(job_id, ScanStatus.COMPLETED, result=report)

    def _publish(
        self,
        job_id: str,
        status: ScanStatus,
        result: ScanReport | None = None,
        error: str | None = None,
    ) -> bool:
        published = False

        def apply(job: ScanJob) -> None:
            nonlocal published
            if job.status.is_terminal:
                return
            job.status = status
            job.result = result
            job.error = error
            published = True

        self.store.update(job_id, apply)
        if published:
            logger.info('Scan job finished', job_id=job_id, status=str(status), error=error)
        else:
            logger.debug('Discarding late result', job_id=job_id, status=str(status))
        return published

    # -- Reads --

    def get(self, job_id: str) -> ScanJob:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_status(self, job_id: str) -> dict:
        return self.get(job_id).status_view(self.config.progress_log_lines)

    def get_result(self, job_id: str) -> ScanReport | None:
        """The report once completed, otherwise None."""
        job = self.get(job_id)
        return job.result if job.status is ScanStatus.COMPLETED else None

    # -- Retention --

    def sweep(self, now: datetime | None = None) -> dict[str, int]:
        now = now or self.clock()
        ttl = timedelta(seconds=self.config.ttl)
        timeout = timedelta(seconds=self.config.job_timeout)
        expired = evicted = timed_out = 0

        for job in self.store.list():
            if now - job.created_at > ttl and self.store.delete(job.id):
                expired += 1

        overflow = len(self.store) - self.config.max_jobs
        if overflow > 0:
            for job in sorted(self.store.list(), key=lambda j: j.created_at)[:overflow]:
                if self.store.delete(job.id):
                    evicted += 1

        for job in self.store.list():
            if job.status is ScanStatus.SCANNING and now - job.created_at > timeout:
                if self._publish(job.id, ScanStatus.ERROR, error=TIMEOUT_MESSAGE):
                    timed_out += 1

        if expired or evicted or timed_out:
            logger.info(
                'Swept scan jobs', expired=expired, evicted=evicted,
                timed_out=timed_out, remaining=len(self.store),
            )
        return {'expired': expired, 'evicted': evicted, 'timed_out': timed_out}

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.config.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception('Job sweep failed')

    def start(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name='scan-job-sweeper', daemon=True)
        self._sweeper.start()
        logger.debug('Job sweeper started', interval=self.config.sweep_interval)

    def shutdown(self, wait: bool = False) -> None:
        self._stop.set()
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
