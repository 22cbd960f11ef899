"""Reaping of expired, stale and canceled upload sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from sharepad.storage.chunks import TEMP_FILE_PATTERN

if TYPE_CHECKING:
    from sharepad.storage.chunks import ChunkAssembler, UploadSession

log = structlog.get_logger()


@dataclass
class CleanupReport:
    """Outcome of a manually triggered cleanup."""

    sessions_cleaned_up: int
    active_sessions: int
    temp_files_cleaned_up: int
    remaining_temp_files: int


class SessionReaper:
    """
    Removes upload sessions that will never complete.

    A session is removed when it is older than the expiry threshold, when
    it was canceled, or when it has been idle longer than the staleness
    threshold. Temp files whose owning session is gone are removed too.
    """

    def __init__(
        self,
        assembler: ChunkAssembler,
        expiry_seconds: float = 30 * 60,
        stale_seconds: float = 2 * 60,
    ) -> None:
        self.assembler = assembler
        self.expiry = timedelta(seconds=expiry_seconds)
        self.stale = timedelta(seconds=stale_seconds)

    def removal_reason(self, session: UploadSession, now: datetime) -> str | None:
        """Return why a session should be removed, or None to keep it."""
        if session.completing:
            return None
        if session.is_canceled:
            return "canceled"
        if now - session.created_at > self.expiry:
            return "expired"
        last_activity = session.last_activity or session.created_at
        if now - last_activity > self.stale:
            return "stale"
        return None

    def reap(self, now: datetime | None = None) -> int:
        """
        Remove every eligible session and then sweep orphaned temp files.

        Returns the number of sessions removed.
        """
        now = now or datetime.now(UTC)
        removed = 0
        for session in self.assembler.sessions():
            reason = self.removal_reason(session, now)
            if reason is None:
                continue
            deleted = self.assembler.discard(session.upload_id)
            removed += 1
            log.info(
                "session_reaped",
                upload_id=session.upload_id,
                file=session.original_file_name,
                reason=reason,
                chunk_files=deleted,
            )

        self.cleanup_orphaned_chunks()

        if removed:
            log.info("session_reap_completed", removed=removed)
        return removed

    def cleanup_orphaned_chunks(self) -> int:
        """
        Delete temp files that belong to no tracked session.

        Covers temp files left behind by a restart that lost the in-memory
        session table. Returns the number of files deleted.
        """
        temp_dir = self.assembler.temp_dir
        if not temp_dir.is_dir():
            return 0

        active = self.assembler.active_upload_ids()
        deleted = 0
        for path in temp_dir.iterdir():
            match = TEMP_FILE_PATTERN.match(path.name)
            if match is None or match.group("upload_id") in active:
                continue
            try:
                path.unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                log.warning("orphan_chunk_not_removed", path=str(path), error=str(e))

        if deleted:
            log.info("orphan_chunks_removed", count=deleted)
        return deleted

    def run_cleanup(self) -> CleanupReport:
        """Reap immediately and report what was reclaimed."""
        sessions_before = len(self.assembler)
        files_before = self._count_temp_files()

        self.reap()

        sessions_after = len(self.assembler)
        files_after = self._count_temp_files()
        report = CleanupReport(
            sessions_cleaned_up=sessions_before - sessions_after,
            active_sessions=sessions_after,
            temp_files_cleaned_up=files_before - files_after,
            remaining_temp_files=files_after,
        )
        log.info("manual_cleanup_completed", **vars(report))
        return report

    def _count_temp_files(self) -> int:
        try:
            return sum(1 for _ in self.assembler.temp_dir.iterdir())
        except OSError as e:
            log.error("temp_dir_read_failed", error=str(e))
            return 0
