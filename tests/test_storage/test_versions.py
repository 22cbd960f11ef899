"""Tests for VersionStore."""

from datetime import UTC, datetime

import pytest

from sharepad.storage.errors import NotFoundError, StorageIOError
from sharepad.storage.models import FileMetadata, VersionInfo
from sharepad.storage.versions import METADATA_FILE, new_version_id


class TestCreateNewVersion:
    """Tests for creating versions."""

    def test_first_version_becomes_current(self, store, write_source):
        """The first upload is current and lives under its original name."""
        version, metadata = store.create_new_version("x", "doc.txt", 5, write_source(b"hello"))

        assert metadata.current_version == version
        assert version.file_name == "doc.txt"
        assert version.file_size == 5
        assert version.is_text_file is True
        assert store.live_path("x", "doc.txt").read_bytes() == b"hello"

    def test_second_version_archives_first(self, store, write_source):
        """A new upload archives the previous live copy under its version ID."""
        v1, _ = store.create_new_version("x", "doc.txt", 5, write_source(b"first"))
        v2, metadata = store.create_new_version("x", "doc.txt", 7, write_source(b"second!"))

        assert len(metadata.versions) == 2
        assert metadata.current_version.version_id == v2.version_id
        assert metadata.current_version.file_size == 7
        assert store.live_path("x", "doc.txt").read_bytes() == b"second!"

        archived = store.get_file_version_path("x", "doc.txt", v1.version_id)
        assert archived == store.archived_path("x", "doc.txt", v1.version_id)
        assert archived.read_bytes() == b"first"
        assert metadata.find(v1.version_id).file_name == f"{v1.version_id}.txt"

    def test_current_tracks_latest_across_many_uploads(self, store, write_source):
        """After each upload the newest version is current and live."""
        for i in range(5):
            payload = f"payload-{i}".encode()
            version, metadata = store.create_new_version("x", "a.bin", None, write_source(payload))

            assert metadata.current_version.version_id == version.version_id
            assert version.uploaded_at == max(v.uploaded_at for v in metadata.versions)
            assert store.live_path("x", "a.bin").read_bytes() == payload

        assert len(store.read_file_metadata("x", "a.bin").versions) == 5

    def test_size_measured_when_not_given(self, store, write_source):
        version, _ = store.create_new_version("x", "a.bin", None, write_source(b"12345678"))
        assert version.file_size == 8

    def test_metadata_persisted(self, store, write_source):
        """Metadata is readable from disk after the call returns."""
        version, _ = store.create_new_version("x", "pic.png", 3, write_source(b"png"))

        reloaded = store.read_file_metadata("x", "pic.png")
        assert reloaded.current_version.version_id == version.version_id
        assert reloaded.current_version.is_image_file is True

    def test_failed_copy_leaves_state_untouched(self, store, write_source, temp_data_dir):
        """A missing source raises and persists nothing."""
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))

        with pytest.raises(StorageIOError):
            store.create_new_version("x", "doc.txt", 3, temp_data_dir / "does-not-exist")

        metadata = store.read_file_metadata("x", "doc.txt")
        assert [v.version_id for v in metadata.versions] == [v1.version_id]
        assert store.live_path("x", "doc.txt").read_bytes() == b"one"

    def test_version_ids_are_time_sortable(self):
        early = new_version_id(datetime(2024, 1, 1, tzinfo=UTC))
        late = new_version_id(datetime(2024, 1, 2, tzinfo=UTC))
        assert early < late


class TestReadFileMetadata:
    """Tests for reading metadata."""

    def test_missing_returns_empty(self, store):
        metadata = store.read_file_metadata("x", "nothing.txt")
        assert metadata.original_file_name == "nothing.txt"
        assert metadata.versions == []
        assert metadata.current_version is None

    def test_corrupt_metadata_treated_as_missing(self, store, write_source):
        """Unparsable metadata does not raise."""
        store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        store.metadata_path("x", "doc.txt").write_text("{not json")

        metadata = store.read_file_metadata("x", "doc.txt")
        assert metadata.versions == []


class TestDeleteFileVersion:
    """Tests for deleting versions."""

    def test_delete_non_current_removes_only_archive(self, store, write_source):
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        v2, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"two"))

        metadata = store.delete_file_version("x", "doc.txt", v1.version_id)

        assert [v.version_id for v in metadata.versions] == [v2.version_id]
        assert not store.archived_path("x", "doc.txt", v1.version_id).exists()
        assert store.live_path("x", "doc.txt").read_bytes() == b"two"

    def test_delete_current_promotes_newest_remaining(self, store, write_source):
        """Deleting the current version puts the next newest into the live slot."""
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        v2, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"two"))
        v3, _ = store.create_new_version("x", "doc.txt", 5, write_source(b"three"))

        metadata = store.delete_file_version("x", "doc.txt", v3.version_id)

        assert metadata.current_version.version_id == v2.version_id
        assert metadata.current_version.file_name == "doc.txt"
        assert store.live_path("x", "doc.txt").read_bytes() == b"two"
        assert len(metadata.versions) == 2
        assert store.read_file_metadata("x", "doc.txt").current_version.version_id == v2.version_id
        assert v1.version_id in {v.version_id for v in metadata.versions}

    def test_delete_twice_raises_not_found(self, store, write_source):
        """Second delete of the same version fails and changes nothing."""
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        v2, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"two"))

        store.delete_file_version("x", "doc.txt", v1.version_id)
        with pytest.raises(NotFoundError):
            store.delete_file_version("x", "doc.txt", v1.version_id)

        metadata = store.read_file_metadata("x", "doc.txt")
        assert [v.version_id for v in metadata.versions] == [v2.version_id]
        assert store.live_path("x", "doc.txt").read_bytes() == b"two"

    def test_delete_last_version_removes_everything(self, store, write_source):
        """The last deletion removes live copy, metadata and version folder."""
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))

        metadata = store.delete_file_version("x", "doc.txt", v1.version_id)

        assert metadata.versions == []
        assert metadata.current_version is None
        assert not store.live_path("x", "doc.txt").exists()
        assert not store.version_dir("x", "doc.txt").exists()
        assert store.read_file_metadata("x", "doc.txt").versions == []

    def test_delete_unknown_version(self, store):
        with pytest.raises(NotFoundError):
            store.delete_file_version("x", "doc.txt", "nope")


class TestPromoteVersion:
    """Tests for promoting versions."""

    def test_promote_round_trip(self, store, write_source):
        """Promoting a version makes its exact bytes live."""
        payloads = [b"alpha", b"beta", b"gamma"]
        versions = [
            store.create_new_version("x", "doc.txt", None, write_source(p))[0] for p in payloads
        ]

        order = [(versions[0], b"alpha"), (versions[2], b"gamma"), (versions[1], b"beta")]
        for version, payload in order:
            metadata = store.promote_version("x", "doc.txt", version.version_id)

            assert metadata.current_version.version_id == version.version_id
            assert store.live_path("x", "doc.txt").read_bytes() == payload
            assert len(metadata.versions) == 3

    def test_promoted_version_is_newest(self, store, write_source):
        """Promotion keeps current equal to the max-timestamp version."""
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        store.create_new_version("x", "doc.txt", 3, write_source(b"two"))

        metadata = store.promote_version("x", "doc.txt", v1.version_id)

        assert metadata.versions[0].version_id == v1.version_id
        assert metadata.current_version.uploaded_at == max(v.uploaded_at for v in metadata.versions)

    def test_demoted_version_is_archived(self, store, write_source):
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        v2, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"two"))

        store.promote_version("x", "doc.txt", v1.version_id)

        path = store.get_file_version_path("x", "doc.txt", v2.version_id)
        assert path.read_bytes() == b"two"

    def test_promote_current_is_noop(self, store, write_source):
        v1, before = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))

        after = store.promote_version("x", "doc.txt", v1.version_id)

        assert after.current_version.uploaded_at == before.current_version.uploaded_at
        assert store.live_path("x", "doc.txt").read_bytes() == b"one"

    def test_promote_unknown_version(self, store, write_source):
        store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        with pytest.raises(NotFoundError):
            store.promote_version("x", "doc.txt", "nope")

    def test_promote_missing_archive(self, store, write_source):
        """A version whose archived blob vanished cannot be promoted."""
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        store.create_new_version("x", "doc.txt", 3, write_source(b"two"))
        store.archived_path("x", "doc.txt", v1.version_id).unlink()

        with pytest.raises(NotFoundError):
            store.promote_version("x", "doc.txt", v1.version_id)


class TestGetFileVersionPath:
    """Tests for resolving version paths."""

    def test_current_resolves_to_live_copy(self, store, write_source):
        v1, _ = store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        assert store.get_file_version_path("x", "doc.txt", v1.version_id) == store.live_path(
            "x", "doc.txt"
        )

    def test_unknown_resolves_to_none(self, store, write_source):
        store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        assert store.get_file_version_path("x", "doc.txt", "nope") is None


class TestListingAndMaintenance:
    """Tests for listing files and orphan cleanup."""

    def test_list_all_versioned_files(self, store, registry, write_source):
        store.create_new_version("x", "b.txt", 3, write_source(b"bbb"))
        store.create_new_version("x", "a.pdf", 2, write_source(b"aa"))
        store.create_new_version("x", "a.pdf", 4, write_source(b"aaaa"))
        (registry.get_uploads_dir("x") / "loose.bin").write_bytes(b"z")

        files = store.list_all_versioned_files("x")

        assert [f.name for f in files] == ["a.pdf", "b.txt", "loose.bin"]
        assert files[0].size == 4
        assert files[0].version_count == 2
        assert files[0].metadata.current_version.is_pdf_file is True
        assert files[2].metadata is None
        assert files[2].version_count == 1

    def test_list_missing_environment(self, store):
        assert store.list_all_versioned_files("nowhere") == []

    def test_cleanup_orphaned_version_folders(self, store, registry, write_source):
        """Folders with neither a live file nor metadata are removed."""
        store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        orphan = registry.get_versions_root("x") / "ghost.txt"
        orphan.mkdir(parents=True)
        (orphan / "123-abc.txt").write_bytes(b"stale")

        removed = store.cleanup_orphaned_version_folders("x")

        assert removed == 1
        assert not orphan.exists()
        assert (store.version_dir("x", "doc.txt") / METADATA_FILE).exists()

    def test_delete_file_removes_history(self, store, write_source):
        store.create_new_version("x", "doc.txt", 3, write_source(b"one"))
        store.create_new_version("x", "doc.txt", 3, write_source(b"two"))

        store.delete_file("x", "doc.txt")

        assert not store.live_path("x", "doc.txt").exists()
        assert not store.version_dir("x", "doc.txt").exists()
        with pytest.raises(NotFoundError):
            store.delete_file("x", "doc.txt")


class TestFileMetadataOrdering:
    """Tests for the newest-first ordering rules."""

    def _version(self, version_id, when):
        return VersionInfo(version_id=version_id, file_name="f", uploaded_at=when, file_size=1)

    def test_sorted_newest_first(self):
        metadata = FileMetadata(original_file_name="f")
        metadata.add(self._version("old", datetime(2024, 1, 1, tzinfo=UTC)))
        metadata.add(self._version("new", datetime(2024, 6, 1, tzinfo=UTC)))
        metadata.add(self._version("mid", datetime(2024, 3, 1, tzinfo=UTC)))

        assert [v.version_id for v in metadata.versions] == ["new", "mid", "old"]
        assert metadata.current_version.version_id == "new"

    def test_equal_timestamps_latest_insert_wins(self):
        when = datetime(2024, 1, 1, tzinfo=UTC)
        metadata = FileMetadata(original_file_name="f")
        metadata.add(self._version("first", when))
        metadata.add(self._version("second", when))

        assert metadata.current_version.version_id == "second"

    def test_current_version_serialized(self):
        metadata = FileMetadata(original_file_name="f")
        metadata.add(self._version("only", datetime(2024, 1, 1, tzinfo=UTC)))

        restored = FileMetadata.model_validate_json(metadata.model_dump_json())
        assert restored.current_version.version_id == "only"
        assert "current_version" in metadata.model_dump()
