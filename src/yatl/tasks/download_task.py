"""
Download Task for YATL

This module provides the DownloadTask which installs a release: it streams the
archive, extracts it into a staging directory, writes the completion marker and
moves the result into the installation directory in one rename.
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

from yatl.models.exceptions import ExtractionError, InstallationError
from yatl.models.installation import InstallInfo
from yatl.models.release import GameRelease
from yatl.services.downloader import Downloader
from yatl.services.events import EventManager
from yatl.tasks.task import Task

if TYPE_CHECKING:
    from yatl.models.game_manager import GameManager, Lease

# Share of the progress bar used by the transfer, extraction gets the rest
DOWNLOAD_SHARE = 0.8


def archive_extension(url: str) -> str:
    """Get the archive extension of a download URL, ``.zip`` if there is none."""
    name = Path(urlparse(url).path).name.lower()
    for extension in (".tar.gz", ".tgz", ".zip"):
        if name.endswith(extension):
            return extension
    return ".zip"


class DownloadTask(Task):
    """Download and install one release."""

    kind = "download"

    def __init__(self, manager: GameManager, release: GameRelease, lease: Optional[Lease],
                 downloader: Downloader, event_manager: Optional[EventManager] = None,
                 keep_archive: bool = False):
        super().__init__(release.id, lease, event_manager)
        self.manager = manager
        self.release = release
        self.downloader = downloader
        self.keep_archive = keep_archive

        self.extension = archive_extension(release.download_url)
        self._partial_file: Optional[Path] = None
        self._archive: Optional[Path] = None
        self._staging_dir: Optional[Path] = None

    def _execute(self):
        archive = self._obtain_archive()
        self.check_cancelled()

        self._staging_dir = self.manager.new_staging_directory()
        self._set_progress(DOWNLOAD_SHARE, "Extracting files...")
        try:
            self.manager.file_ops.extract_archive(
                archive, self._staging_dir,
                progress_callback=self._on_extract_progress,
                check_cancelled=self.check_cancelled,
                archive_name=f"archive{self.extension}",
            )
        except ExtractionError:
            if self.keep_archive:
                # a broken cached archive would fail every retry
                self._discard(archive)
            raise

        root = self.manager.file_ops.get_extracted_root_dir(self._staging_dir)
        if root is None:
            raise ExtractionError(f"Archive for {self.target} is empty")

        if not InstallInfo.for_release(self.release).save(root):
            raise InstallationError(f"Could not write installation metadata for {self.target}")

        self.check_cancelled()
        self._finalize(root)
        self._remove_leftovers()

        self.manager._mark_installed(self.target)

    def _obtain_archive(self) -> Path:
        cached = self.manager.get_cached_archive_path(self.target, self.extension)
        if self.keep_archive and cached.is_file():
            self.logger.info(f"Using cached archive {cached}")
            self._archive = cached
            self._set_progress(DOWNLOAD_SHARE, "Using cached archive")
            return cached

        self._partial_file = self.manager.temp_dir / f"{uuid.uuid4().hex}{self.extension}.part"
        self._set_progress(None, f"Downloading {self.target}...")
        self.downloader.fetch(self.release.download_url, self._partial_file,
                              progress_callback=self._on_download_progress,
                              check_cancelled=self.check_cancelled)

        if self.keep_archive:
            try:
                cached.parent.mkdir(parents=True, exist_ok=True)
                os.replace(self._partial_file, cached)
            except OSError as e:
                self.logger.warning(f"Could not keep downloaded archive {cached}: {e}")
                self._archive = self._partial_file
                return self._partial_file
            self._partial_file = None
            self._archive = cached
            return cached

        self._archive = self._partial_file
        return self._partial_file

    def _finalize(self, root: Path):
        target = self.manager.get_install_directory(self.target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"Could not create {target.parent}: {e}")

        if target.exists() or target.is_symlink():
            self.logger.info(f"Replacing existing directory {target}")
            failed = self.manager.file_ops.remove_directory(target)
            if failed:
                raise InstallationError(f"Could not remove previous contents of {target}")

        try:
            os.replace(root, target)
        except OSError as e:
            raise InstallationError(f"Could not move installation into {target}: {e}")
        self.logger.info(f"Installed {self.target} to {target}")

    def _on_download_progress(self, received: int, total: Optional[int]):
        if total:
            self._set_progress(DOWNLOAD_SHARE * received / total)
        else:
            self._set_progress(None)

    def _on_extract_progress(self, fraction: float, message: str):
        self._set_progress(DOWNLOAD_SHARE + (1 - DOWNLOAD_SHARE) * fraction, message)

    def _remove_leftovers(self):
        if self._staging_dir is not None:
            self.manager.file_ops.remove_directory(self._staging_dir)
            self._staging_dir = None
        if self._partial_file is not None:
            self._discard(self._partial_file)
            self._partial_file = None

    def _cleanup(self):
        self._remove_leftovers()

    def _discard(self, path: Path):
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Failed to remove {path}: {e}")
