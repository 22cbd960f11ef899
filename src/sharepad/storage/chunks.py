"""Chunked upload sessions and reassembly."""

from __future__ import annotations

import re
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Literal, TypeVar

import structlog

from sharepad.storage.errors import (
    InvalidArgumentError,
    InvalidStateError,
    MissingDataError,
    NotFoundError,
    StorageIOError,
)
from sharepad.storage.sanitize import DEFAULT_ENVIRONMENT, sanitize_name

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

T = TypeVar("T")

# Temp files are named "{upload_id}_chunk_{index}" or "{upload_id}_combined"
# so ownership can be recovered from the name alone.
TEMP_FILE_PATTERN = re.compile(r"^(?P<upload_id>[^_]+)_(?:chunk_\d+|combined)$")


def chunk_file_name(upload_id: str, chunk_index: int) -> str:
    """Temp file name of one buffered chunk."""
    return f"{upload_id}_chunk_{chunk_index}"


def combined_file_name(upload_id: str) -> str:
    """Temp file name of the reassembled upload."""
    return f"{upload_id}_combined"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class UploadSession:
    """In-memory state of one multi-part upload."""

    upload_id: str
    environment: str
    file_name: str
    original_file_name: str
    file_size: int
    total_chunks: int
    chunks: dict[int, Path] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    last_activity: datetime | None = None
    status: Literal["active", "canceled"] = "active"
    canceled_at: datetime | None = None
    completing: bool = False

    @property
    def uploaded_chunks(self) -> int:
        """Number of distinct chunk indices received."""
        return len(self.chunks)

    @property
    def progress(self) -> float:
        """Percentage of chunks received."""
        return self.uploaded_chunks / self.total_chunks * 100

    @property
    def is_canceled(self) -> bool:
        return self.status == "canceled"


class ChunkAssembler:
    """
    Buffers upload chunks on disk and reassembles them in index order.

    Each chunk goes to its own temp file, so chunks of one session can be
    received concurrently and in any order. The session table is guarded by
    a lock; chunk bytes are written outside it.
    """

    def __init__(self, temp_dir: Path | str) -> None:
        self.temp_dir = Path(temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self._sessions: dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Session Table
    # =========================================================================

    def get(self, upload_id: str) -> UploadSession | None:
        """Get a session by ID."""
        with self._lock:
            return self._sessions.get(upload_id)

    def _require(self, upload_id: str) -> UploadSession:
        session = self._sessions.get(upload_id)
        if session is None:
            raise NotFoundError("Upload session not found")
        return session

    def sessions(self) -> list[UploadSession]:
        """Snapshot of all tracked sessions."""
        with self._lock:
            return list(self._sessions.values())

    def active_upload_ids(self) -> set[str]:
        with self._lock:
            return set(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # =========================================================================
    # Upload Protocol
    # =========================================================================

    def initiate(
        self,
        file_name: str | None,
        file_size: Any,
        total_chunks: Any,
        environment: str = DEFAULT_ENVIRONMENT,
    ) -> UploadSession:
        """
        Open a new upload session.

        Raises:
            InvalidArgumentError: If a parameter is missing or not a positive integer

        """
        if not file_name or not file_size or not total_chunks:
            raise InvalidArgumentError("Missing required parameters")
        try:
            size = int(file_size)
            chunk_count = int(total_chunks)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError("fileSize and totalChunks must be integers") from e
        if size <= 0 or chunk_count <= 0:
            raise InvalidArgumentError("fileSize and totalChunks must be positive")

        session = UploadSession(
            upload_id=str(uuid.uuid4()),
            environment=environment,
            file_name=sanitize_name(file_name),
            original_file_name=file_name,
            file_size=size,
            total_chunks=chunk_count,
        )
        with self._lock:
            self._sessions[session.upload_id] = session

        log.info(
            "upload_initiated",
            upload_id=session.upload_id,
            environment=environment,
            file=session.file_name,
            size=size,
            total_chunks=chunk_count,
        )
        return session

    def receive_chunk(
        self,
        upload_id: str,
        chunk_index: Any,
        data: bytes | BinaryIO,
    ) -> UploadSession:
        """
        Buffer one chunk to its own temp file.

        Receiving an index again overwrites that chunk without counting it
        twice.

        Raises:
            NotFoundError: If the session is unknown
            InvalidArgumentError: If the index is not within 0..total_chunks-1
            StorageIOError: If the chunk cannot be written

        """
        with self._lock:
            session = self._require(upload_id)
            try:
                index = int(chunk_index)
            except (TypeError, ValueError) as e:
                raise InvalidArgumentError("chunkIndex must be an integer") from e
            if not 0 <= index < session.total_chunks:
                raise InvalidArgumentError(
                    f"chunkIndex {index} outside 0..{session.total_chunks - 1}"
                )

        path = self.temp_dir / chunk_file_name(upload_id, index)
        try:
            if isinstance(data, bytes | bytearray | memoryview):
                path.write_bytes(data)
            else:
                with path.open("wb") as out:
                    shutil.copyfileobj(data, out)
        except OSError as e:
            log.error("chunk_write_failed", upload_id=upload_id, chunk_index=index, error=str(e))
            raise StorageIOError(f"Failed to store chunk {index}: {e}") from e

        with self._lock:
            if self._sessions.get(upload_id) is not session:
                path.unlink(missing_ok=True)
                raise NotFoundError("Upload session not found")
            session.chunks[index] = path
            session.last_activity = _now()

        log.debug(
            "chunk_received",
            upload_id=upload_id,
            chunk_index=index,
            uploaded_chunks=session.uploaded_chunks,
            total_chunks=session.total_chunks,
        )
        return session

    def complete(
        self,
        upload_id: str,
        consume: Callable[[UploadSession, Path], T],
    ) -> T:
        """
        Concatenate all chunks in index order and hand the result to consume.

        The chunk files, the combined file and the session are removed
        afterwards whether or not consume succeeds.

        Args:
            upload_id: Session to complete
            consume: Called with the session and the path of the combined file

        Returns:
            Whatever consume returns

        Raises:
            NotFoundError: If the session is unknown
            InvalidStateError: If not every chunk has been received
            MissingDataError: If a received chunk file has disappeared

        """
        with self._lock:
            session = self._require(upload_id)
            if session.completing:
                raise InvalidStateError("Upload is already being completed")
            if session.uploaded_chunks != session.total_chunks:
                raise InvalidStateError(
                    f"Incomplete upload: {session.uploaded_chunks}/{session.total_chunks} chunks"
                )
            session.completing = True
            session.last_activity = _now()

        combined = self.temp_dir / combined_file_name(upload_id)
        try:
            self._concatenate(session, combined)
            result = consume(session, combined)
        except Exception:
            log.exception("upload_complete_failed", upload_id=upload_id, file=session.file_name)
            raise
        finally:
            self.discard(upload_id)
            combined.unlink(missing_ok=True)

        log.info(
            "upload_completed",
            upload_id=upload_id,
            environment=session.environment,
            file=session.file_name,
            size=session.file_size,
        )
        return result

    def cancel(self, upload_id: str) -> UploadSession:
        """
        Mark a session as canceled.

        Nothing is deleted here; the reaper removes canceled sessions so an
        in-flight completion never loses its chunk files mid-read.

        Raises:
            NotFoundError: If the session is unknown

        """
        with self._lock:
            session = self._require(upload_id)
            session.status = "canceled"
            session.canceled_at = _now()

        log.info("upload_canceled", upload_id=upload_id, file=session.original_file_name)
        return session

    def status(self, upload_id: str) -> dict[str, Any]:
        """
        Report progress of a session.

        Raises:
            NotFoundError: If the session is unknown

        """
        with self._lock:
            session = self._require(upload_id)
            return {
                "file_name": session.original_file_name,
                "uploaded_chunks": session.uploaded_chunks,
                "total_chunks": session.total_chunks,
                "progress": session.progress,
            }

    def discard(self, upload_id: str) -> int:
        """
        Drop a session and delete its chunk files (best effort).

        Returns the number of chunk files deleted.
        """
        with self._lock:
            session = self._sessions.pop(upload_id, None)
        if session is None:
            return 0

        deleted = 0
        for path in session.chunks.values():
            try:
                if path.exists():
                    path.unlink()
                    deleted += 1
            except OSError as e:
                log.warning(
                    "chunk_delete_failed", upload_id=upload_id, path=str(path), error=str(e)
                )
        return deleted

    def _concatenate(self, session: UploadSession, combined: Path) -> None:
        try:
            with combined.open("wb") as out:
                for index in range(session.total_chunks):
                    path = session.chunks.get(index)
                    if path is None or not path.is_file():
                        raise MissingDataError(f"Missing chunk {index}")
                    with path.open("rb") as chunk:
                        shutil.copyfileobj(chunk, out)
        except FileNotFoundError as e:
            raise MissingDataError(f"Chunk vanished during reassembly: {e.filename}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to combine chunks: {e}") from e
