"""Exception taxonomy for lynxaudit.

Only pre-flight errors (``ValidationError``, ``ManifestParseError``) abort a
request before work starts. ``RegistryFetchError`` and ``AdvisoryQueryError``
are raised inside a single node fetch and absorbed by the resolver or the
advisory client. ``ScanExecutionError`` terminates a job as ``error``.
"""


class LynxError(Exception):
    """Base class for all lynxaudit errors."""


class ValidationError(LynxError):
    """Bad ecosystem, format or missing request fields."""


class ManifestParseError(LynxError):
    """Manifest content could not be parsed."""

    def __init__(self, message: str, file_name: str | None = None):
        super().__init__(message)
        self.file_name = file_name


class UnsupportedManifestError(ManifestParseError):
    """File name does not match any known manifest pattern."""

    def __init__(self, file_name: str):
        super().__init__(f"Unsupported manifest file: {file_name}", file_name)


class RegistryFetchError(LynxError):
    """A package registry could not serve metadata for one node."""

    def __init__(self, ecosystem: str, package: str, version: str | None, reason: str):
        super().__init__(
            f"{ecosystem} registry fetch failed for {package}@{version or 'latest'}: {reason}",
        )
        self.ecosystem = ecosystem
        self.package = package
        self.version = version
        self.reason = reason


class AdvisoryQueryError(LynxError):
    """The advisory service failed to answer a query."""


class ScanExecutionError(LynxError):
    """Uncaught failure in the middle of a scan pipeline."""


class JobNotFoundError(LynxError):
    """No job is stored under the requested id."""

    def __init__(self, job_id: str):
        super().__init__(f"Scan not found: {job_id}")
        self.job_id = job_id
