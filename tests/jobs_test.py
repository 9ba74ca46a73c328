import threading
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from conftest import FakeSession
from conftest import osv_handler
from conftest import pypi_release
from lynxaudit.core.config import JobConfig
from lynxaudit.core.errors import JobNotFoundError
from lynxaudit.core.errors import ManifestParseError
from lynxaudit.core.errors import ValidationError
from lynxaudit.models.scan import ScanFileRequest
from lynxaudit.models.scan import ScanJob
from lynxaudit.models.scan import ScanReport
from lynxaudit.models.scan import ScanRequest
from lynxaudit.models.scan import ScanStatus
from lynxaudit.services.job_service import InMemoryJobStore
from lynxaudit.services.job_service import new_job_id
from lynxaudit.services.job_service import ScanJobManager
from lynxaudit.services.job_service import TIMEOUT_MESSAGE

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class BlockingScanner:
    """Scanner stand-in whose scans wait until released."""

    def __init__(self, fail: Exception | None = None):
        self.release = threading.Event()
        self.fail = fail

    def validate(self, ecosystem):
        return ecosystem

    def scan_package(self, request, scan_id=''):
        self.release.wait(5)
        if self.fail is not None:
            raise self.fail
        return ScanReport(ecosystem=request.ecosystem, target=request.package, version='1.0.0')


@pytest.fixture
def clock():
    return Clock()


def make_manager(scanner, clock, **config):
    return ScanJobManager(scanner, config=JobConfig(**config), clock=clock)


def test_job_ids_are_unique():
    first, second = new_job_id(), new_job_id()
    assert first.startswith('scan-')
    assert first != second


def test_store_hands_out_copies():
    store = InMemoryJobStore()
    store.put(ScanJob(id='a'))

    copy = store.get('a')
    copy.status = ScanStatus.COMPLETED

    assert store.get('a').status is ScanStatus.SCANNING
    assert len(store) == 1
    assert store.delete('a')
    assert not store.delete('a')
    assert store.get('a') is None


def test_package_job_completes(make_scanner, clock):
    routes = {'https://pypi.org/pypi/six/json': pypi_release('six', '1.16.0')}
    manager = make_manager(make_scanner(FakeSession(routes, post=osv_handler())), clock)

    job = manager.create_package_job(ScanRequest(ecosystem='pypi', package='six'))
    assert job.status is ScanStatus.SCANNING
    manager.shutdown(wait=True)

    finished = manager.get(job.id)
    assert finished.status is ScanStatus.COMPLETED
    assert finished.result.id == job.id
    assert finished.result.security_score == 100
    assert manager.get_result(job.id).version == '1.16.0'
    assert manager.get_status(job.id)['status'] == 'completed'


def test_failed_job_records_error(make_scanner, clock):
    manager = make_manager(make_scanner(FakeSession({}, post=osv_handler())), clock)

    job = manager.create_package_job(ScanRequest(ecosystem='pypi', package='nope'))
    manager.shutdown(wait=True)

    status = manager.get_status(job.id)
    assert status['status'] == 'error'
    assert 'HTTP 404' in status['error']
    assert manager.get_result(job.id) is None


def test_disabled_ecosystem_fails_before_job_creation(make_scanner, registry_config, clock):
    registry_config.enable_go = False
    manager = make_manager(make_scanner(FakeSession({})), clock)
    with pytest.raises(ValidationError):
        manager.create_package_job(ScanRequest(ecosystem='go', package='golang.org/x/net'))
    assert len(manager.store) == 0
    manager.shutdown()


def test_bad_manifest_fails_before_job_creation(make_scanner, clock):
    manager = make_manager(make_scanner(FakeSession({})), clock)
    with pytest.raises(ManifestParseError):
        manager.create_manifest_job(ScanFileRequest(content='x', file_name='Cargo.toml'))
    assert len(manager.store) == 0
    manager.shutdown()


def test_manifest_job_tracks_progress_and_sub_scans(make_scanner, clock):
    routes = {
        'https://pypi.org/pypi/six/1.16.0/json': pypi_release('six', '1.16.0'),
        'https://pypi.org/pypi/idna/3.6/json': pypi_release('idna', '3.6'),
    }
    manager = make_manager(make_scanner(FakeSession(routes, post=osv_handler())), clock)

    job, count = manager.create_manifest_job(
        ScanFileRequest(content='six==1.16.0\nidna==3.6\n', file_name='requirements.txt'),
    )
    assert count == 2
    assert job.kind == 'manifest'
    manager.shutdown(wait=True)

    finished = manager.get(job.id)
    assert finished.status is ScanStatus.COMPLETED
    assert finished.progress.total == 2
    assert finished.progress.current == 2
    assert finished.progress.current_package == 'idna'
    assert any('Scan complete' in line for line in finished.progress.log)
    assert [p.id for p in finished.result.package_scans] == [f"{job.id}-0", f"{job.id}-1"]

    sub_job = manager.get(f"{job.id}-1")
    assert sub_job.status is ScanStatus.COMPLETED
    assert sub_job.result.target == 'idna'


def test_unknown_job_raises(make_scanner, clock):
    manager = make_manager(make_scanner(FakeSession({})), clock)
    with pytest.raises(JobNotFoundError):
        manager.get('scan-missing')
    manager.shutdown()


def test_expired_jobs_are_removed(clock):
    scanner = BlockingScanner()
    manager = make_manager(scanner, clock, ttl=1800, job_timeout=10_000)
    job = manager.create_package_job(ScanRequest(ecosystem='pypi', package='six'))
    scanner.release.set()
    manager.shutdown(wait=True)
    assert manager.get(job.id).status is ScanStatus.COMPLETED

    clock.advance(1800)
    assert manager.sweep()['expired'] == 0

    clock.advance(1)
    assert manager.sweep() == {'expired': 1, 'evicted': 0, 'timed_out': 0}
    with pytest.raises(JobNotFoundError):
        manager.get(job.id)


def test_oldest_jobs_are_evicted_over_capacity(clock):
    manager = make_manager(BlockingScanner(), clock, max_jobs=2)
    for index in range(4):
        manager.store.put(
            ScanJob(id=f"job-{index}", status=ScanStatus.COMPLETED, created_at=clock() + timedelta(seconds=index)),
        )

    assert manager.sweep()['evicted'] == 2
    assert sorted(job.id for job in manager.store.list()) == ['job-2', 'job-3']
    manager.shutdown()


def test_stuck_job_times_out_and_ignores_late_result(clock):
    scanner = BlockingScanner()
    manager = make_manager(scanner, clock, job_timeout=600)
    job = manager.create_package_job(ScanRequest(ecosystem='pypi', package='six'))

    clock.advance(601)
    assert manager.sweep()['timed_out'] == 1

    scanner.release.set()
    manager.shutdown(wait=True)

    status = manager.get_status(job.id)
    assert status['status'] == 'error'
    assert status['error'] == TIMEOUT_MESSAGE
    assert manager.get_result(job.id) is None


def test_scan_exception_becomes_job_error(clock):
    scanner = BlockingScanner(fail=RuntimeError('boom'))
    scanner.release.set()
    manager = make_manager(scanner, clock)

    job = manager.create_package_job(ScanRequest(ecosystem='pypi', package='six'))
    manager.shutdown(wait=True)

    assert manager.get(job.id).error == 'boom'


def test_terminal_job_is_never_overwritten(clock):
    manager = make_manager(BlockingScanner(), clock)
    manager.store.put(ScanJob(id='done', status=ScanStatus.ERROR, error='first'))

    assert not manager._publish('done', ScanStatus.COMPLETED)
    assert manager.get('done').error == 'first'
    manager.shutdown()
