"""Sharepad service: the single owner of storage state and notifications."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO

import structlog

from sharepad.notify import NullNotificationSink
from sharepad.storage.chunks import ChunkAssembler
from sharepad.storage.environments import EnvironmentRegistry
from sharepad.storage.errors import NotFoundError, StorageIOError
from sharepad.storage.reaper import SessionReaper
from sharepad.storage.sanitize import sanitize_environment, sanitize_name
from sharepad.storage.versions import VersionStore

if TYPE_CHECKING:
    from sharepad.config.settings import Settings
    from sharepad.notify import NotificationSink
    from sharepad.storage.chunks import UploadSession
    from sharepad.storage.models import FileMetadata, FileSummary, VersionInfo
    from sharepad.storage.reaper import CleanupReport

log = structlog.get_logger()

# Single-shot uploads are spooled under this prefix, outside the chunk naming
# scheme, so the orphan-chunk sweep never touches an upload in progress.
SPOOL_PREFIX = "upload-"


class Sharepad:
    """
    Facade over the environment registry, version store and chunk assembler.

    Every externally supplied environment or file name is sanitized here.
    Mutations emit a notification and request a deferred empty-environment
    check.
    """

    def __init__(
        self,
        registry: EnvironmentRegistry,
        versions: VersionStore,
        assembler: ChunkAssembler,
        reaper: SessionReaper,
        notifier: NotificationSink | None = None,
    ) -> None:
        self.registry = registry
        self.versions = versions
        self.assembler = assembler
        self.reaper = reaper
        self.notifier: NotificationSink = notifier or NullNotificationSink()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        notifier: NotificationSink | None = None,
    ) -> Sharepad:
        """Build a service rooted at the configured data directory."""
        registry = EnvironmentRegistry(
            uploads_root=settings.uploads_dir,
            texts_root=settings.texts_dir,
            default_environment=settings.default_environment,
            cleanup_delay_seconds=settings.cleanup_delay_seconds,
        )
        assembler = ChunkAssembler(settings.temp_dir)
        return cls(
            registry=registry,
            versions=VersionStore(registry),
            assembler=assembler,
            reaper=SessionReaper(
                assembler,
                expiry_seconds=settings.session_expiry_seconds,
                stale_seconds=settings.session_stale_seconds,
            ),
            notifier=notifier,
        )

    def environment(self, name: str | None) -> str:
        """Sanitize an environment name."""
        return sanitize_environment(name, default=self.registry.default_environment)

    # =========================================================================
    # Shared Text
    # =========================================================================

    def get_text(self, env: str | None) -> str:
        return self.registry.get_shared_text(self.environment(env))

    def set_text(self, env: str | None, text: str, exclude: Any = None) -> None:
        """Replace the shared text and notify every client except `exclude`."""
        env = self.environment(env)
        self.registry.set_shared_text(env, text)
        self.notifier.emit_text_changed(env, text, exclude=exclude)

    # =========================================================================
    # Files and Versions
    # =========================================================================

    def list_files(self, env: str | None) -> list[FileSummary]:
        return self.versions.list_all_versioned_files(self.environment(env))

    def store_upload(
        self,
        env: str | None,
        file_name: str | None,
        stream: BinaryIO,
    ) -> tuple[VersionInfo, FileMetadata]:
        """Store a single-shot upload as a new version of file_name."""
        env = self.environment(env)
        name = sanitize_name(file_name)
        spool: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=self.assembler.temp_dir, prefix=SPOOL_PREFIX, suffix=".part", delete=False
            ) as out:
                spool = Path(out.name)
                shutil.copyfileobj(stream, out)
            result = self.versions.create_new_version(env, name, None, spool)
        except OSError as e:
            raise StorageIOError(f"Failed to receive {name}: {e}") from e
        finally:
            if spool is not None:
                spool.unlink(missing_ok=True)

        self._files_changed(env)
        return result

    def resolve_download(
        self,
        env: str | None,
        file_name: str,
        version_id: str | None = None,
    ) -> Path:
        """
        Resolve the blob to serve for a file, optionally at a given version.

        Raises:
            NotFoundError: If the file or version does not exist

        """
        env = self.environment(env)
        name = sanitize_name(file_name)
        if version_id is None:
            path = self.versions.live_path(env, name)
        else:
            resolved = self.versions.get_file_version_path(env, name, version_id)
            if resolved is None:
                raise NotFoundError(f"Version {version_id} not found for {name}")
            path = resolved
        if not path.is_file():
            raise NotFoundError(f"File {name} not found")
        return path

    def delete_file(self, env: str | None, file_name: str) -> None:
        env = self.environment(env)
        self.versions.delete_file(env, sanitize_name(file_name))
        self._files_changed(env)

    def list_versions(self, env: str | None, file_name: str) -> FileMetadata:
        """
        Get the version history of a file.

        Raises:
            NotFoundError: If the file has no history

        """
        name = sanitize_name(file_name)
        metadata = self.versions.read_file_metadata(self.environment(env), name)
        if not metadata.versions:
            raise NotFoundError(f"No versions found for {name}")
        return metadata

    def delete_version(self, env: str | None, file_name: str, version_id: str) -> FileMetadata:
        env = self.environment(env)
        metadata = self.versions.delete_file_version(env, sanitize_name(file_name), version_id)
        self._files_changed(env)
        return metadata

    def promote_version(self, env: str | None, file_name: str, version_id: str) -> FileMetadata:
        env = self.environment(env)
        metadata = self.versions.promote_version(env, sanitize_name(file_name), version_id)
        self._files_changed(env)
        return metadata

    # =========================================================================
    # Chunked Uploads
    # =========================================================================

    def initiate_upload(
        self,
        file_name: str | None,
        file_size: Any,
        total_chunks: Any,
        environment: str | None = None,
    ) -> UploadSession:
        return self.assembler.initiate(
            file_name,
            file_size,
            total_chunks,
            environment=self.environment(environment),
        )

    def receive_chunk(
        self,
        upload_id: str,
        chunk_index: Any,
        data: bytes | BinaryIO,
    ) -> UploadSession:
        return self.assembler.receive_chunk(upload_id, chunk_index, data)

    def complete_upload(self, upload_id: str) -> tuple[VersionInfo, FileMetadata]:
        """Reassemble a chunked upload and store it as a new version."""

        def store(session: UploadSession, combined: Path) -> tuple[VersionInfo, FileMetadata]:
            result = self.versions.create_new_version(
                session.environment,
                session.file_name,
                None,
                combined,
            )
            self._files_changed(session.environment)
            return result

        return self.assembler.complete(upload_id, store)

    def cancel_upload(self, upload_id: str) -> UploadSession:
        return self.assembler.cancel(upload_id)

    def upload_status(self, upload_id: str) -> dict[str, Any]:
        return self.assembler.status(upload_id)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reap_sessions(self) -> int:
        return self.reaper.reap()

    def run_cleanup(self) -> CleanupReport:
        return self.reaper.run_cleanup()

    def sweep_environments(self) -> int:
        return self.registry.sweep()

    def startup(self) -> None:
        """Reclaim temp files left behind by a previous process."""
        removed = self.reaper.cleanup_orphaned_chunks()
        spools = 0
        for path in self.assembler.temp_dir.glob(f"{SPOOL_PREFIX}*"):
            try:
                path.unlink()
                spools += 1
            except OSError as e:
                log.warning("stale_spool_not_removed", path=str(path), error=str(e))
        log.info("startup_cleanup_completed", orphan_chunks=removed, stale_spools=spools)

    def _files_changed(self, env: str) -> None:
        self.notifier.emit_file_list_changed(env)
        self.registry.schedule_cleanup(env)
