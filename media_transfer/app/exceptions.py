"""Server exception types.

These keep service code HTTP-agnostic while still allowing the global
exception handlers in ``media_transfer/app/main.py`` to map errors to the
JSON failure envelope.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

MiB = 1024 * 1024


def describe_limit(limit_bytes: int) -> str:
    return f"{round(limit_bytes / MiB)}MB"


class UploadValidationError(Exception):
    """Client-caused upload failure (missing file, malformed form, limits)."""

    def __init__(
        self,
        error: str,
        details: Optional[str] = None,
        *,
        status_code: int = 400,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(details or error)
        self.error = error
        self.details = details
        self.status_code = status_code
        self.extra = dict(extra or {})


class FileTooLargeError(UploadValidationError):
    """Raised when an uploaded file exceeds the configured size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            "File too large",
            f"File size exceeds the limit of {describe_limit(limit)}",
            status_code=413,
            extra={"maxSize": describe_limit(limit)},
        )
        self.limit = limit


class FieldTooLargeError(UploadValidationError):
    """Raised when a non-file form field exceeds the field size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            "Field too large",
            f"Form field exceeds the limit of {describe_limit(limit)}",
            status_code=413,
            extra={"maxSize": describe_limit(limit)},
        )
        self.limit = limit


class StorageError(Exception):
    """Raised for filesystem failures under the uploads directory."""

    def __init__(self, error: str, details: str, *, status_code: int = 500) -> None:
        super().__init__(details)
        self.error = error
        self.details = details
        self.status_code = status_code


class StartupFatalError(Exception):
    """Raised when TLS material cannot be loaded; the process must not serve."""
