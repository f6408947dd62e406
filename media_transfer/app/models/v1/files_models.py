"""API models for the upload/list/health endpoints.

Field names are camelCase on the wire; clients of the original JS server
read them verbatim.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class UploadedFileRecord(BaseModel):
    """Metadata for one stored upload. Built once, never mutated."""

    model_config = ConfigDict(frozen=True)

    originalName: str
    savedAs: str  # unique on-disk name
    size: int
    mimeType: str
    path: str  # client-declared logical path, defaults to originalName
    uploadTime: str
    savedPath: str  # absolute filesystem path


class FileListingEntry(BaseModel):
    name: str
    size: int
    modified: str
    path: str


class UploadResponse(BaseModel):
    success: bool = True
    message: str = "File uploaded successfully"
    file: UploadedFileRecord


class FilesResponse(BaseModel):
    success: bool = True
    files: List[FileListingEntry]


class HealthResponse(BaseModel):
    success: bool = True
    message: str = "Server is running"
    timestamp: str
    uploadsDirectory: str


class ErrorResponse(BaseModel):
    """Failure envelope shared by every endpoint."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    error: str
    details: Optional[str] = None
    maxSize: Optional[str] = None
