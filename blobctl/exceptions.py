"""
Custom exceptions for blobctl.
"""

from __future__ import annotations

from typing import Optional


class StorageError(Exception):
    """Base exception for all blobctl errors."""

    def __init__(self, message: str, code: str = "", original: Exception = None):
        super().__init__(message)
        self.code = code
        self.original = original

    def __str__(self):
        if self.code:
            return f"[{self.code}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(StorageError):
    """Raised when required configuration is missing or invalid."""


class AuthenticationError(StorageError):
    """Raised when a capability token cannot be issued."""


class TransientTransferError(StorageError):
    """Raised when a single transfer attempt fails; the retry loop decides what happens next."""

    attempts = 1


class UploadExhaustedError(StorageError):
    """Raised when an upload still fails after every allowed attempt."""

    def __init__(
        self,
        file_path: str,
        attempts: int,
        code: str = "",
        original: Optional[Exception] = None,
    ):
        super().__init__(
            f"Unable to upload file '{file_path}' after {attempts} attempt(s)",
            code=code,
            original=original,
        )
        self.file_path = file_path
        self.attempts = attempts


class DownloadError(StorageError):
    """Raised when downloading a single object fails."""

    def __init__(
        self,
        file_name: str,
        message: str,
        code: str = "",
        original: Optional[Exception] = None,
        attempts: int = 1,
    ):
        super().__init__(message, code=code, original=original)
        self.file_name = file_name
        self.attempts = attempts


class ListError(StorageError):
    """Raised when listing containers or blobs fails."""


class ContainerError(StorageError):
    """Raised when creating or deleting a container fails."""


def error_details(error: Exception) -> tuple[str, str]:
    """Return ``(code, message)`` for a botocore ``ClientError`` or any other exception."""
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        resp = response.get("Error", {})
        return resp.get("Code", "Unknown"), resp.get("Message", "(no message)")
    return "", str(error) or type(error).__name__
