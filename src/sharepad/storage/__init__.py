"""Versioned file store, environment lifecycle and chunked uploads."""

from sharepad.storage.chunks import ChunkAssembler, UploadSession
from sharepad.storage.classify import ContentKind, classify, content_flags
from sharepad.storage.environments import EnvironmentRegistry
from sharepad.storage.errors import (
    InvalidArgumentError,
    InvalidStateError,
    MissingDataError,
    NotFoundError,
    SharepadError,
    StorageIOError,
)
from sharepad.storage.models import FileMetadata, FileSummary, VersionInfo
from sharepad.storage.reaper import CleanupReport, SessionReaper
from sharepad.storage.sanitize import sanitize_environment, sanitize_name
from sharepad.storage.versions import VersionStore

__all__ = [
    "ChunkAssembler",
    "CleanupReport",
    "ContentKind",
    "EnvironmentRegistry",
    "FileMetadata",
    "FileSummary",
    "InvalidArgumentError",
    "InvalidStateError",
    "MissingDataError",
    "NotFoundError",
    "SessionReaper",
    "SharepadError",
    "StorageIOError",
    "UploadSession",
    "VersionInfo",
    "VersionStore",
    "classify",
    "content_flags",
    "sanitize_environment",
    "sanitize_name",
]
