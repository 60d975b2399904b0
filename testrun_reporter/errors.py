"""Exception types raised by the reporting pipeline."""

from typing import Optional


class ReporterError(Exception):
    """Base class for all reporter errors."""


class ConfigurationError(ReporterError):
    """Invalid input value. Raised before any report file is processed."""


class DecodeError(ReporterError):
    """A report file is not well-formed for the selected reporter."""

    def __init__(self, file_name: str, cause: str):
        self.file_name = file_name
        self.cause = cause
        super().__init__(f"Failed to parse {file_name}: {cause}")


class NoResultsError(ReporterError):
    """No report files were found and fail-on-no-results is set."""


class PublishingError(ReporterError):
    """GitHub API rejected a check run, comment or summary request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
