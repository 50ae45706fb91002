"""Custom exceptions for SCA Sentinel.

Two families matter to the pipeline:

* ``AnalysisError`` — something went wrong with one dependency.  The error is
  recorded on that dependency and the scan continues.
* ``ServiceError`` — a shared backing service (search index, vulnerability
  database) could not be opened or is corrupt.  The scan aborts.
"""


class ScaError(Exception):
    """Base exception for all SCA Sentinel errors."""


class AnalysisError(ScaError):
    """Per-dependency analysis failure (non-fatal)."""

    def __init__(self, message: str, *, stage: str | None = None, file_path: str | None = None):
        self.stage = stage
        self.file_path = file_path
        super().__init__(message)


class EvidenceFormatError(AnalysisError):
    """Raised when an evidence record cannot be turned into a dependency."""


class ServiceError(ScaError):
    """Base exception for fatal backing-service failures."""


class IndexUnavailableError(ServiceError):
    """The CPE search index is not open or cannot be queried."""


class DatabaseUnavailableError(ServiceError):
    """The vulnerability database cannot be opened or queried."""
