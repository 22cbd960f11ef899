"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path

import pytest

from sharepad.config.settings import Settings
from sharepad.service import Sharepad
from sharepad.storage.chunks import ChunkAssembler
from sharepad.storage.environments import EnvironmentRegistry
from sharepad.storage.reaper import SessionReaper
from sharepad.storage.versions import VersionStore


class RecordingSink:
    """Notification sink that records every event."""

    def __init__(self):
        self.file_events: list[str] = []
        self.text_events: list[tuple[str, str]] = []

    def emit_file_list_changed(self, env):
        self.file_events.append(env)

    def emit_text_changed(self, env, text, exclude=None):
        self.text_events.append((env, text))


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_data_dir):
    """Settings rooted at the temporary data directory."""
    return Settings(data_dir=temp_data_dir, log_json=False)


@pytest.fixture
def registry(settings):
    """Environment registry over temp directories."""
    return EnvironmentRegistry(
        uploads_root=settings.uploads_dir,
        texts_root=settings.texts_dir,
        default_environment="default",
        cleanup_delay_seconds=0.01,
    )


@pytest.fixture
def store(registry):
    """Version store bound to the registry."""
    return VersionStore(registry)


@pytest.fixture
def assembler(settings):
    """Chunk assembler with a temp directory."""
    return ChunkAssembler(settings.temp_dir)


@pytest.fixture
def reaper(assembler):
    """Session reaper with the default thresholds."""
    return SessionReaper(assembler, expiry_seconds=30 * 60, stale_seconds=2 * 60)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def service(registry, store, assembler, reaper, sink):
    """Sharepad service wired to a recording sink."""
    return Sharepad(registry, store, assembler, reaper, notifier=sink)


@pytest.fixture
def write_source(temp_data_dir):
    """Write bytes to a fresh source file and return its path."""
    counter = iter(range(1_000_000))

    def _write(data: bytes) -> Path:
        path = temp_data_dir / f"source-{next(counter)}"
        path.write_bytes(data)
        return path

    return _write
