"""Data models for versioned file storage."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs runtime access

from pydantic import BaseModel, Field, computed_field


class VersionInfo(BaseModel):
    """One stored version of a file."""

    version_id: str
    """Time-sortable identifier, also the stem of the archived blob."""

    file_name: str
    """Physical blob name: the original name while current, else version_id + ext."""

    uploaded_at: datetime
    """Recency key; the newest version is the current one."""

    file_size: int
    """Size in bytes."""

    is_image_file: bool = False
    is_text_file: bool = False
    is_pdf_file: bool = False


class FileMetadata(BaseModel):
    """
    Version history for one logical file in one environment.

    Stored as JSON next to the archived version blobs. `versions` is kept
    sorted newest first and the current version is always derived from it.
    """

    original_file_name: str
    """Stable, sanitized logical name."""

    versions: list[VersionInfo] = Field(default_factory=list)
    """Newest first by uploaded_at; ties keep the most recently inserted first."""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def current_version(self) -> VersionInfo | None:
        """The live version, or None if there is no history."""
        return self.versions[0] if self.versions else None

    def sort_versions(self) -> None:
        """Re-establish newest-first order (stable, so insertion order breaks ties)."""
        self.versions.sort(key=lambda v: v.uploaded_at, reverse=True)

    def find(self, version_id: str) -> VersionInfo | None:
        """Find a version by ID."""
        return next((v for v in self.versions if v.version_id == version_id), None)

    def add(self, version: VersionInfo) -> None:
        """Insert a version and recompute ordering."""
        self.versions.insert(0, version)
        self.sort_versions()


class FileSummary(BaseModel):
    """A live file in an environment's uploads directory."""

    name: str
    size: int
    modified: datetime
    metadata: FileMetadata | None = None

    @property
    def version_count(self) -> int:
        """Number of stored versions (1 for an untracked live file)."""
        return len(self.metadata.versions) if self.metadata else 1
