from __future__ import annotations


class UploadError(Exception):
    """Base class for every client-side failure; carries the process exit code."""

    exit_code = 1


class UsageError(UploadError):
    exit_code = 2


class ConfigurationError(UploadError):
    exit_code = 3


class FileAccessError(UploadError):
    exit_code = 4


class NotAFileError(FileAccessError):
    pass


class InvalidDestinationError(UploadError):
    exit_code = 5


class TransportError(UploadError):
    exit_code = 6


class RemoteRejectionError(UploadError):
    exit_code = 7

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        message = f"HTTP {status_code}"
        if body:
            message += f"\n{body}"
        super().__init__(message)
