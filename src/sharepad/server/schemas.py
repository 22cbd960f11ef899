"""Request/response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs runtime access
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from sharepad.storage.models import VersionInfo  # noqa: TC001 - Pydantic needs runtime access

if TYPE_CHECKING:
    from sharepad.storage.models import FileMetadata, FileSummary


class HealthResponse(BaseModel):
    """Service health."""

    status: str
    environments: int
    active_uploads: int


# =============================================================================
# Files
# =============================================================================


class FileEntry(BaseModel):
    """A live file with its version summary."""

    name: str
    size: int
    modified: datetime
    version_count: int
    current_version: VersionInfo | None = None

    @classmethod
    def from_summary(cls, summary: FileSummary) -> FileEntry:
        return cls(
            name=summary.name,
            size=summary.size,
            modified=summary.modified,
            version_count=summary.version_count,
            current_version=summary.metadata.current_version if summary.metadata else None,
        )


class VersionList(BaseModel):
    """Full version history of one file."""

    file_name: str
    current_version_id: str | None
    versions: list[VersionInfo]

    @classmethod
    def from_metadata(cls, metadata: FileMetadata) -> VersionList:
        current = metadata.current_version
        return cls(
            file_name=metadata.original_file_name,
            current_version_id=current.version_id if current else None,
            versions=metadata.versions,
        )


class UploadedFile(BaseModel):
    """Result of storing one uploaded file."""

    file_name: str
    version_id: str
    file_size: int
    version_count: int


class UploadResponse(BaseModel):
    """Result of a multi-file upload."""

    uploaded: list[UploadedFile]


class VersionDeleteResponse(BaseModel):
    """Result of deleting one version."""

    file_name: str
    deleted_version_id: str
    remaining_versions: int
    current_version_id: str | None


# =============================================================================
# Chunked Uploads
# =============================================================================


class InitiateUploadRequest(BaseModel):
    """Request to open a chunked upload session."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str | None = Field(default=None, alias="fileName")
    file_size: int | None = Field(default=None, alias="fileSize")
    total_chunks: int | None = Field(default=None, alias="totalChunks")
    environment: str | None = None


class InitiateUploadResponse(BaseModel):
    upload_id: str
    file_name: str
    environment: str


class ChunkResponse(BaseModel):
    success: bool = True
    uploaded_chunks: int
    total_chunks: int


class CompleteUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    upload_id: str | None = Field(default=None, alias="uploadId")


class UploadStatusResponse(BaseModel):
    file_name: str
    uploaded_chunks: int
    total_chunks: int
    progress: float


class UploadConfigResponse(BaseModel):
    """Client-side chunking parameters."""

    chunk_size_bytes: int


class CleanupResponse(BaseModel):
    sessions_cleaned_up: int
    active_sessions: int
    temp_files_cleaned_up: int
    remaining_temp_files: int
