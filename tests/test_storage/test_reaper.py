"""Tests for SessionReaper."""

from datetime import timedelta

from sharepad.storage.chunks import chunk_file_name, combined_file_name


def _age(session, created=0, idle=None):
    """Shift a session's timestamps into the past (in seconds)."""
    session.created_at -= timedelta(seconds=created)
    if idle is not None:
        session.last_activity = session.created_at + timedelta(seconds=created - idle)


class TestRemovalReason:
    """Tests for the per-session eligibility check."""

    def test_fresh_session_kept(self, assembler, reaper):
        session = assembler.initiate("a.bin", 1, 1)
        assert reaper.removal_reason(session, session.created_at) is None

    def test_expired(self, assembler, reaper):
        session = assembler.initiate("a.bin", 1, 1)
        now = session.created_at + timedelta(minutes=31)
        session.last_activity = now
        assert reaper.removal_reason(session, now) == "expired"

    def test_stale(self, assembler, reaper):
        session = assembler.initiate("a.bin", 1, 1)
        now = session.created_at + timedelta(minutes=5)
        assert reaper.removal_reason(session, now) == "stale"

    def test_recent_activity_keeps_session(self, assembler, reaper):
        session = assembler.initiate("a.bin", 1, 1)
        now = session.created_at + timedelta(minutes=10)
        session.last_activity = now - timedelta(seconds=30)
        assert reaper.removal_reason(session, now) is None

    def test_canceled(self, assembler, reaper):
        session = assembler.initiate("a.bin", 1, 1)
        assembler.cancel(session.upload_id)
        assert reaper.removal_reason(session, session.created_at) == "canceled"

    def test_completing_session_is_protected(self, assembler, reaper):
        session = assembler.initiate("a.bin", 1, 1)
        assembler.cancel(session.upload_id)
        session.completing = True
        now = session.created_at + timedelta(hours=2)
        assert reaper.removal_reason(session, now) is None


class TestReap:
    """Tests for sweeping the session table."""

    def test_reaps_only_eligible_sessions(self, assembler, reaper):
        keep = assembler.initiate("keep.bin", 2, 2)
        canceled = assembler.initiate("gone.bin", 2, 2)
        stale = assembler.initiate("stale.bin", 2, 2)
        assembler.receive_chunk(canceled.upload_id, 0, b"x")
        assembler.receive_chunk(stale.upload_id, 0, b"y")
        assembler.cancel(canceled.upload_id)
        _age(stale, created=600, idle=300)

        assert reaper.reap() == 2

        assert assembler.get(keep.upload_id) is keep
        assert assembler.get(canceled.upload_id) is None
        assert assembler.get(stale.upload_id) is None
        assert list(assembler.temp_dir.iterdir()) == []

    def test_nothing_to_reap(self, assembler, reaper):
        assembler.initiate("a.bin", 1, 1)
        assert reaper.reap() == 0
        assert len(assembler) == 1

    def test_reap_also_removes_orphans(self, assembler, reaper):
        orphan = assembler.temp_dir / chunk_file_name("deadbeef", 0)
        orphan.write_bytes(b"x")

        reaper.reap()

        assert not orphan.exists()


class TestOrphanedChunks:
    """Tests for temp files without an owning session."""

    def test_removes_only_orphans(self, assembler, reaper):
        session = assembler.initiate("a.bin", 2, 2)
        assembler.receive_chunk(session.upload_id, 0, b"live")
        orphan_chunk = assembler.temp_dir / chunk_file_name("lost", 3)
        orphan_combined = assembler.temp_dir / combined_file_name("lost")
        unrelated = assembler.temp_dir / "README"
        for path in (orphan_chunk, orphan_combined, unrelated):
            path.write_bytes(b"x")

        assert reaper.cleanup_orphaned_chunks() == 2

        assert session.chunks[0].exists()
        assert unrelated.exists()
        assert not orphan_chunk.exists()
        assert not orphan_combined.exists()

    def test_missing_temp_dir(self, assembler, reaper):
        assembler.temp_dir.rmdir()
        assert reaper.cleanup_orphaned_chunks() == 0


class TestRunCleanup:
    def test_reports_counts(self, assembler, reaper):
        keep = assembler.initiate("keep.bin", 2, 2)
        gone = assembler.initiate("gone.bin", 2, 2)
        assembler.receive_chunk(keep.upload_id, 0, b"a")
        assembler.receive_chunk(gone.upload_id, 0, b"b")
        assembler.receive_chunk(gone.upload_id, 1, b"c")
        assembler.cancel(gone.upload_id)
        (assembler.temp_dir / chunk_file_name("lost", 0)).write_bytes(b"d")

        report = reaper.run_cleanup()

        assert report.sessions_cleaned_up == 1
        assert report.active_sessions == 1
        assert report.temp_files_cleaned_up == 3
        assert report.remaining_temp_files == 1
