"""Versioned file storage with a single live copy per file."""

from __future__ import annotations

import os
import shutil
import threading
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path, PurePath
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from sharepad.storage.classify import content_flags
from sharepad.storage.errors import NotFoundError, StorageIOError
from sharepad.storage.models import FileMetadata, FileSummary, VersionInfo

if TYPE_CHECKING:
    from sharepad.storage.environments import EnvironmentRegistry

log = structlog.get_logger()

METADATA_FILE = "metadata.json"
INCOMING_PREFIX = ".incoming-"


def new_version_id(timestamp: datetime) -> str:
    """Generate a time-sortable version ID (millisecond timestamp + random suffix)."""
    millis = int(timestamp.timestamp() * 1000)
    return f"{millis:013d}-{uuid.uuid4().hex[:8]}"


class VersionStore:
    """
    Append-only version history per (environment, file).

    The current version always lives at the environment root under its
    original name. Every other version is archived as
    `.versions/{original_name}/{version_id}{ext}`. A version that gets
    demoted is archived before the live copy is overwritten, so the version
    folder never has gaps.

    Each metadata read-modify-write cycle runs under a lock keyed by
    (environment, file).
    """

    def __init__(self, registry: EnvironmentRegistry) -> None:
        self.registry = registry
        self._locks: dict[tuple[str, str], threading.RLock] = {}
        self._locks_guard = threading.Lock()
        registry.add_cleanup_hook(self.cleanup_orphaned_version_folders)

    def _lock_for(self, env: str, name: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get((env, name))
            if lock is None:
                lock = self._locks[(env, name)] = threading.RLock()
            return lock

    # =========================================================================
    # Paths
    # =========================================================================

    def live_path(self, env: str, name: str) -> Path:
        """Path of the live (current) copy."""
        return self.registry.get_uploads_dir(env) / name

    def version_dir(self, env: str, name: str) -> Path:
        """Private version folder of a file."""
        return self.registry.get_versions_root(env) / name

    def metadata_path(self, env: str, name: str) -> Path:
        return self.version_dir(env, name) / METADATA_FILE

    def archived_path(self, env: str, name: str, version_id: str) -> Path:
        """Path of an archived version blob."""
        return self.version_dir(env, name) / f"{version_id}{PurePath(name).suffix}"

    # =========================================================================
    # Metadata
    # =========================================================================

    def read_file_metadata(self, env: str, name: str) -> FileMetadata:
        """
        Read the metadata for a file.

        Returns an empty record if none exists. Unparsable metadata is treated
        as missing so a corrupt document cannot wedge the file.
        """
        path = self.metadata_path(env, name)
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return FileMetadata(original_file_name=name)
        except OSError as e:
            log.warning("metadata_read_failed", environment=env, file=name, error=str(e))
            return FileMetadata(original_file_name=name)

        try:
            metadata = FileMetadata.model_validate_json(data)
        except ValidationError as e:
            log.warning(
                "metadata_corrupt",
                environment=env,
                file=name,
                error_count=e.error_count(),
            )
            return FileMetadata(original_file_name=name)

        metadata.sort_versions()
        return metadata

    def _write_file_metadata(self, env: str, name: str, metadata: FileMetadata) -> None:
        path = self.metadata_path(env, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{INCOMING_PREFIX}{uuid.uuid4().hex}.json")
        try:
            tmp.write_text(metadata.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)

    # =========================================================================
    # Version Operations
    # =========================================================================

    def create_new_version(
        self,
        env: str,
        original_file_name: str,
        size: int | None,
        source_path: Path,
    ) -> tuple[VersionInfo, FileMetadata]:
        """
        Store the bytes at source_path as the new current version.

        The previous live copy is archived under its own version ID first.
        Metadata is persisted only after the live copy is in place, so a
        failure leaves the previous state untouched.

        Args:
            env: Environment name
            original_file_name: Sanitized logical file name
            size: Size in bytes (measured from source_path if None)
            source_path: File holding the new bytes

        Returns:
            The new VersionInfo and the updated metadata

        """
        name = original_file_name
        with self._lock_for(env, name):
            metadata = self.read_file_metadata(env, name)
            current = metadata.current_version

            try:
                self.registry.get_uploads_dir(env, create_if_missing=True)
                version_dir = self.version_dir(env, name)
                version_dir.mkdir(parents=True, exist_ok=True)
                live = self.live_path(env, name)

                if current is not None and live.is_file():
                    shutil.copyfile(live, self.archived_path(env, name, current.version_id))

                self._install_live_copy(source_path, live, version_dir)
                if size is None:
                    size = live.stat().st_size
            except OSError as e:
                log.error("version_create_failed", environment=env, file=name, error=str(e))
                raise StorageIOError(f"Failed to store {name}: {e}") from e

            if current is not None:
                current.file_name = self.archived_path(env, name, current.version_id).name

            uploaded_at = self._next_timestamp(metadata)
            version = VersionInfo(
                version_id=new_version_id(uploaded_at),
                file_name=name,
                uploaded_at=uploaded_at,
                file_size=size,
                **content_flags(name),
            )
            metadata.add(version)
            self._persist(env, name, metadata)

        log.info(
            "version_created",
            environment=env,
            file=name,
            version_id=version.version_id,
            size=size,
            versions=len(metadata.versions),
        )
        return version, metadata

    def get_file_version_path(self, env: str, name: str, version_id: str) -> Path | None:
        """Resolve a version to its blob: the live copy if current, else its archive."""
        metadata = self.read_file_metadata(env, name)
        version = metadata.find(version_id)
        if version is None:
            return None
        current = metadata.current_version
        if current is not None and current.version_id == version_id:
            return self.live_path(env, name)
        return self.archived_path(env, name, version_id)

    def delete_file_version(self, env: str, name: str, version_id: str) -> FileMetadata:
        """
        Delete one version of a file.

        Deleting the current version promotes the newest remaining one into
        the live copy. Deleting the last version removes the metadata and the
        version folder entirely.

        Raises:
            NotFoundError: If the version is unknown

        """
        with self._lock_for(env, name):
            metadata = self.read_file_metadata(env, name)
            version = metadata.find(version_id)
            if version is None:
                raise NotFoundError(f"Version {version_id} not found for {name}")

            current = metadata.current_version
            was_current = current is not None and current.version_id == version_id
            live = self.live_path(env, name)

            try:
                self.archived_path(env, name, version_id).unlink(missing_ok=True)
                metadata.versions.remove(version)

                if was_current:
                    live.unlink(missing_ok=True)
                    self._promote_newest_remaining(env, name, metadata)

                if metadata.versions:
                    self._persist(env, name, metadata)
                else:
                    self._remove_version_dir(env, name)
            except OSError as e:
                log.error("version_delete_failed", environment=env, file=name, error=str(e))
                raise StorageIOError(f"Failed to delete version {version_id}: {e}") from e

        log.info(
            "version_deleted",
            environment=env,
            file=name,
            version_id=version_id,
            was_current=was_current,
            remaining=len(metadata.versions),
        )
        return metadata

    def promote_version(self, env: str, name: str, version_id: str) -> FileMetadata:
        """
        Make an archived version the current one.

        The promoted version takes the newest timestamp so that the current
        version stays the most recent one. Promoting the current version is a
        no-op.

        Raises:
            NotFoundError: If the version or its archived blob is missing

        """
        with self._lock_for(env, name):
            metadata = self.read_file_metadata(env, name)
            target = metadata.find(version_id)
            if target is None:
                raise NotFoundError(f"Version {version_id} not found for {name}")

            current = metadata.current_version
            if current is not None and current.version_id == version_id:
                return metadata

            source = self.archived_path(env, name, version_id)
            if not source.is_file():
                raise NotFoundError(f"Archived data for version {version_id} is missing")

            live = self.live_path(env, name)
            version_dir = self.version_dir(env, name)
            try:
                if current is not None and live.is_file():
                    archived = self.archived_path(env, name, current.version_id)
                    shutil.copyfile(live, archived)
                    current.file_name = archived.name
                self._install_live_copy(source, live, version_dir)
            except OSError as e:
                log.error("version_promote_failed", environment=env, file=name, error=str(e))
                raise StorageIOError(f"Failed to promote version {version_id}: {e}") from e

            target.file_name = name
            target.uploaded_at = self._next_timestamp(metadata)
            metadata.sort_versions()
            self._persist(env, name, metadata)

        log.info("version_promoted", environment=env, file=name, version_id=version_id)
        return metadata

    def delete_file(self, env: str, name: str) -> None:
        """
        Delete a file with its whole version history.

        Raises:
            NotFoundError: If neither a live copy nor history exists

        """
        with self._lock_for(env, name):
            live = self.live_path(env, name)
            version_dir = self.version_dir(env, name)
            if not live.is_file() and not version_dir.is_dir():
                raise NotFoundError(f"File {name} not found")
            try:
                live.unlink(missing_ok=True)
                self._remove_version_dir(env, name)
            except OSError as e:
                log.error("file_delete_failed", environment=env, file=name, error=str(e))
                raise StorageIOError(f"Failed to delete {name}: {e}") from e

        log.info("file_deleted", environment=env, file=name)

    # =========================================================================
    # Listing and Maintenance
    # =========================================================================

    def list_all_versioned_files(self, env: str) -> list[FileSummary]:
        """List the live files of an environment with their version metadata."""
        uploads_dir = self.registry.get_uploads_dir(env)
        if not uploads_dir.is_dir():
            return []

        summaries = []
        for entry in sorted(uploads_dir.iterdir()):
            try:
                if not entry.is_file():
                    continue
                stat = entry.stat()
            except FileNotFoundError:
                continue
            metadata = self.read_file_metadata(env, entry.name)
            summaries.append(
                FileSummary(
                    name=entry.name,
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                    metadata=metadata if metadata.versions else None,
                )
            )
        return summaries

    def cleanup_orphaned_version_folders(self, env: str) -> int:
        """
        Remove version folders with neither a live file nor metadata.

        Such folders are left behind by interrupted operations. Returns the
        number of folders removed.
        """
        versions_root = self.registry.get_versions_root(env)
        if not versions_root.is_dir():
            return 0

        removed = 0
        for folder in list(versions_root.iterdir()):
            if not folder.is_dir():
                continue
            name = folder.name
            with self._lock_for(env, name):
                if self.live_path(env, name).is_file() or (folder / METADATA_FILE).is_file():
                    continue
                try:
                    shutil.rmtree(folder)
                    removed += 1
                except OSError as e:
                    log.warning(
                        "orphan_version_folder_not_removed",
                        environment=env,
                        folder=name,
                        error=str(e),
                    )

        if removed:
            log.info("orphan_version_folders_removed", environment=env, count=removed)
        return removed

    # =========================================================================
    # Internals
    # =========================================================================

    def _persist(self, env: str, name: str, metadata: FileMetadata) -> None:
        try:
            self._write_file_metadata(env, name, metadata)
        except OSError as e:
            log.error("metadata_write_failed", environment=env, file=name, error=str(e))
            raise StorageIOError(f"Failed to write metadata for {name}: {e}") from e

    def _promote_newest_remaining(self, env: str, name: str, metadata: FileMetadata) -> None:
        """Copy the newest remaining version into the live slot."""
        live = self.live_path(env, name)
        while metadata.versions:
            candidate = metadata.versions[0]
            source = self.archived_path(env, name, candidate.version_id)
            if source.is_file():
                self._install_live_copy(source, live, self.version_dir(env, name))
                candidate.file_name = name
                return
            log.error(
                "archived_version_missing",
                environment=env,
                file=name,
                version_id=candidate.version_id,
            )
            metadata.versions.pop(0)

    def _remove_version_dir(self, env: str, name: str) -> None:
        version_dir = self.version_dir(env, name)
        if version_dir.is_dir():
            shutil.rmtree(version_dir)

    @staticmethod
    def _install_live_copy(source: Path, live: Path, staging_dir: Path) -> None:
        """Copy source over the live copy, replacing it in one rename."""
        staging_dir.mkdir(parents=True, exist_ok=True)
        tmp = staging_dir / f"{INCOMING_PREFIX}{uuid.uuid4().hex}"
        try:
            shutil.copyfile(source, tmp)
            os.replace(tmp, live)
        finally:
            tmp.unlink(missing_ok=True)

    @staticmethod
    def _next_timestamp(metadata: FileMetadata) -> datetime:
        """Now, nudged past the newest existing version if the clock lags."""
        now = datetime.now(UTC)
        current = metadata.current_version
        if current is not None and current.uploaded_at >= now:
            return current.uploaded_at + timedelta(microseconds=1)
        return now
