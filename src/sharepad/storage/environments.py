"""Environment registry: directories, shared text and empty-environment GC."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

# Reserved subdirectory of every uploads dir holding per-file version history.
# Sanitized names never start with a dot, so it cannot collide with a live file.
VERSIONS_DIR_NAME = ".versions"

TEXT_SUFFIX = ".txt"


class EnvironmentRegistry:
    """
    Tracks environments and owns their on-disk lifecycle.

    Directory structure:
        {uploads_root}/{env}/
            {live files}
            .versions/
                {original_name}/
                    metadata.json
                    {version_id}{ext}
        {texts_root}/{env}.txt

    Environments come into existence lazily on first write and are removed
    again once they hold neither files nor non-empty text. The default
    environment is never removed.
    """

    def __init__(
        self,
        uploads_root: Path | str,
        texts_root: Path | str,
        default_environment: str = "default",
        cleanup_delay_seconds: float = 1.0,
    ) -> None:
        self.uploads_root = Path(uploads_root)
        self.texts_root = Path(texts_root)
        self.default_environment = default_environment
        self.cleanup_delay_seconds = cleanup_delay_seconds
        self._text_cache: dict[str, str] = {}
        self._lock = threading.RLock()
        self._cleanup_hooks: list[Callable[[str], int]] = []

        self.uploads_root.mkdir(parents=True, exist_ok=True)
        self.texts_root.mkdir(parents=True, exist_ok=True)

    def is_default(self, env: str) -> bool:
        """Check whether env is the immortal default environment."""
        return env == self.default_environment

    def add_cleanup_hook(self, hook: Callable[[str], int]) -> None:
        """Register a callable run for an environment on every cleanup check."""
        self._cleanup_hooks.append(hook)

    # =========================================================================
    # Paths
    # =========================================================================

    def get_uploads_dir(self, env: str, create_if_missing: bool = False) -> Path:
        """Get the uploads directory for env, optionally creating it."""
        path = self.uploads_root / env
        if create_if_missing:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def get_versions_root(self, env: str) -> Path:
        """Get the reserved version-storage folder for env."""
        return self.get_uploads_dir(env) / VERSIONS_DIR_NAME

    def get_text_file(self, env: str) -> Path:
        """Get the path of the persisted shared text for env."""
        return self.texts_root / f"{env}{TEXT_SUFFIX}"

    # =========================================================================
    # Shared Text
    # =========================================================================

    def get_shared_text(self, env: str) -> str:
        """
        Get the shared text for env.

        Loads from disk on first access. A missing file means empty text and
        is cached as such; no file is created.
        """
        with self._lock:
            cached = self._text_cache.get(env)
            if cached is not None:
                return cached

            path = self.get_text_file(env)
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                text = ""
            except OSError as e:
                log.error("text_read_failed", environment=env, error=str(e))
                text = ""

            self._text_cache[env] = text
            return text

    def set_shared_text(self, env: str, text: str) -> None:
        """
        Replace the shared text for env (last write wins).

        The cache is updated first so readers see the new text immediately.
        Non-empty text is persisted; empty text removes the file.
        """
        with self._lock:
            self._text_cache[env] = text
            path = self.get_text_file(env)
            if text:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(text, encoding="utf-8")
            else:
                path.unlink(missing_ok=True)

        log.debug("text_updated", environment=env, chars=len(text))
        self.schedule_cleanup(env)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def has_content(self, env: str) -> bool:
        """
        Check whether env holds at least one file or non-empty text.

        Files are looked for at the top of the uploads dir and one level into
        its subdirectories, skipping the reserved version folder.
        """
        uploads_dir = self.get_uploads_dir(env)
        if uploads_dir.is_dir():
            for entry in uploads_dir.iterdir():
                if entry.name == VERSIONS_DIR_NAME:
                    continue
                if entry.is_file():
                    return True
                if entry.is_dir() and any(child.is_file() for child in entry.iterdir()):
                    return True

        return bool(self.get_shared_text(env).strip())

    def cleanup_if_empty(self, env: str) -> bool:
        """
        Remove env's storage if it holds no content.

        Orphaned version folders are cleaned for every environment, including
        the default one. Returns True if the environment was removed.
        """
        for hook in self._cleanup_hooks:
            try:
                hook(env)
            except Exception:
                log.exception("cleanup_hook_failed", environment=env)

        if self.is_default(env):
            return False

        with self._lock:
            if self.has_content(env):
                return False

            removed = True
            uploads_dir = self.get_uploads_dir(env)
            if uploads_dir.is_dir():
                versions_root = uploads_dir / VERSIONS_DIR_NAME
                try:
                    if versions_root.is_dir():
                        versions_root.rmdir()
                    uploads_dir.rmdir()
                except OSError as e:
                    log.warning("environment_dir_not_removed", environment=env, error=str(e))
                    removed = False

            text_file = self.get_text_file(env)
            try:
                if text_file.exists() and not text_file.read_text(encoding="utf-8").strip():
                    text_file.unlink()
            except OSError as e:
                log.warning("environment_text_not_removed", environment=env, error=str(e))
                removed = False

            self._text_cache.pop(env, None)

        if not removed:
            return False

        log.info("environment_removed", environment=env)
        return True

    def list_environments(self) -> list[str]:
        """List every environment that has an uploads dir or a text file."""
        names: set[str] = set()
        if self.uploads_root.is_dir():
            names.update(p.name for p in self.uploads_root.iterdir() if p.is_dir())
        if self.texts_root.is_dir():
            names.update(p.stem for p in self.texts_root.glob(f"*{TEXT_SUFFIX}"))
        with self._lock:
            names.update(self._text_cache)
        return sorted(names)

    def sweep(self) -> int:
        """
        Apply cleanup_if_empty to every known environment.

        Returns the number of environments removed.
        """
        removed = 0
        for env in self.list_environments():
            try:
                if self.cleanup_if_empty(env):
                    removed += 1
            except Exception:
                log.exception("environment_sweep_failed", environment=env)
        if removed:
            log.info("environment_sweep_completed", removed=removed)
        return removed

    def schedule_cleanup(self, env: str) -> None:
        """
        Check env for emptiness after a short delay.

        Only possible from inside a running event loop; elsewhere the periodic
        sweep picks the environment up.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self.cleanup_delay_seconds, self._deferred_cleanup, env)

    def _deferred_cleanup(self, env: str) -> None:
        try:
            self.cleanup_if_empty(env)
        except Exception:
            log.exception("deferred_cleanup_failed", environment=env)
