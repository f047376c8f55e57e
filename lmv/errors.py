"""Exception types shared by discovery, the file API and sharing.

Unsupported file types (anything without a ``.md`` / ``.markdown``
extension) are filtered out silently and have no exception of their own.
"""
from __future__ import annotations

from pathlib import Path


class LmvError(Exception):
    """Base class for lmv errors."""


class NoInputsError(LmvError):
    """Raised when discovery is requested without any input tokens."""

    def __init__(self, message: str = "No inputs specified") -> None:
        super().__init__(message)


class NotFoundError(LmvError):
    """Raised in strict mode when a literal input path does not exist.

    Attributes:
        path: Absolute path that was looked up.
    """

    def __init__(self, path: Path) -> None:
        super().__init__(f"Input not found: {path}")
        self.path = path


class FileNotAllowedError(LmvError):
    """Raised when a relative path is not a member of the allowed file set."""

    def __init__(self, rel_path: str) -> None:
        super().__init__(f"File not allowed: {rel_path}")
        self.rel_path = rel_path


class AccessError(LmvError):
    """Raised when a discovered file can no longer be read or written."""

    def __init__(self, rel_path: str, reason: str) -> None:
        super().__init__(f"{rel_path}: {reason}")
        self.rel_path = rel_path
        self.reason = reason


class ExternalToolUnavailable(LmvError):
    """Raised internally when the ignore-rule tool is missing or fails."""


class UpstreamServiceError(LmvError):
    """Raised when the sharing service rejects or fails a request.

    Attributes:
        status_code: HTTP status to surface to the client.
    """

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code
