from __future__ import annotations

from typing import Optional


class TreeReaderError(Exception):
    """Base error for the tree reader."""


class ValidationError(TreeReaderError):
    """Raised when user input is invalid."""


class InvalidUrlError(ValidationError):
    """Raised when a browse URL does not have the projects/repos/browse shape."""


class AccessDeniedError(TreeReaderError):
    """Raised when the remote service refuses access to a resource."""


class NotFoundError(TreeReaderError):
    """Raised when a requested resource is not found."""


class RefNotFoundError(NotFoundError):
    """Raised when the requested ref is absent from the branch list."""


class EmptyTreeError(NotFoundError):
    """Raised when no files exist under the requested subpath."""


class ExternalServiceError(TreeReaderError):
    """Raised when the remote service fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailableError(ExternalServiceError):
    """Raised on transport failures or non-2xx answers from the branch/raw endpoints."""


class ArchiveFetchError(ExternalServiceError):
    """Raised when the archive endpoint answers with a non-2xx status."""


class UnexpectedResponseError(ExternalServiceError):
    """Raised when a response body does not have the expected shape."""


class ArchiveFormatError(TreeReaderError):
    """Raised when the archive payload is not a valid gzip/tar stream."""


class NotModifiedError(TreeReaderError):
    """Raised when the caller's etag still matches; use the cached copy."""

    def __init__(self, message: str = "Not modified", *, etag: Optional[str] = None) -> None:
        super().__init__(message)
        self.etag = etag
