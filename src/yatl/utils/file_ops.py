"""
File Operations Utilities for YATL

This module provides archive extraction, game root detection and recursive
removal for the download and delete tasks.

Long operations take an optional ``progress_callback(fraction, message)`` and an
optional ``check_cancelled()`` callable. The latter is invoked between members
or entries and is expected to raise to abort the operation.
"""

import logging
import os
import tarfile
import zipfile
from typing import Optional, Callable, List
from pathlib import Path

from yatl.models.exceptions import ExtractionError


class FileOperations:
    """
    File operations utility class for YATL.

    This class handles:
    - Archive extraction (zip, tar.gz)
    - Locating the game root inside extracted content
    - Recursive removal that reports what could not be deleted
    """

    # Files and directories found at the root of a game distribution
    GAME_INDICATORS = [
        "lib",
        "libs",
        "bin",
        "modules",
        "terasology",
        "terasology.bat",
        "terasology.exe",
        "license",
        "readme.markdown",
        "notice",
    ]

    def __init__(self):
        """Initialize the file operations manager."""
        self.logger = logging.getLogger("YATL")

    @staticmethod
    def is_supported_archive(archive_path: str | Path) -> bool:
        name = Path(archive_path).name.lower()
        return name.endswith(('.zip', '.tar.gz', '.tgz'))

    def extract_archive(self, archive_path: str | Path, dest_dir: str | Path,
                        progress_callback: Optional[Callable] = None,
                        check_cancelled: Optional[Callable] = None,
                        archive_name: Optional[str] = None) -> int:
        """
        Extract a zip or tar.gz archive.

        Args:
            archive_path: Path to the archive file
            dest_dir: Destination directory for extraction
            progress_callback: Optional progress callback function
            check_cancelled: Optional callable invoked before every member
            archive_name: Name used to pick the format, defaults to the file name

        Returns:
            int: Number of extracted members

        Raises:
            ExtractionError: If the archive is malformed or cannot be written
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        name = (archive_name or archive_path.name).lower()

        if not archive_path.is_file():
            raise ExtractionError(f"Archive not found: {archive_path}")

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtractionError(f"Could not create extraction directory {dest_dir}: {e}")

        self.logger.info(f"Extracting {archive_path.name} to {dest_dir}")

        if name.endswith('.zip'):
            return self._extract_zip(archive_path, dest_dir, progress_callback, check_cancelled)
        elif name.endswith(('.tar.gz', '.tgz')):
            return self._extract_tar_gz(archive_path, dest_dir, progress_callback, check_cancelled)
        else:
            raise ExtractionError(f"Unsupported archive format: {name}")

    def _extract_zip(self, archive_path: Path, dest_dir: Path,
                     progress_callback: Optional[Callable] = None,
                     check_cancelled: Optional[Callable] = None) -> int:
        """Extract a ZIP archive."""
        try:
            with zipfile.ZipFile(archive_path, 'r') as zip_ref:
                members = zip_ref.infolist()
                total_files = len(members)
                dest_root = dest_dir.resolve()

                for i, member in enumerate(members):
                    if check_cancelled:
                        check_cancelled()

                    target = (dest_dir / member.filename).resolve()
                    if target != dest_root and dest_root not in target.parents:
                        raise ExtractionError(f"Archive member escapes extraction directory: {member.filename}")

                    zip_ref.extract(member, dest_dir)

                    if progress_callback and total_files > 0:
                        progress_callback((i + 1) / total_files, f"Extracting files... ({i + 1}/{total_files})")

            self.logger.info(f"Extracted {total_files} files from {archive_path.name}")
            return total_files

        except (zipfile.BadZipFile, OSError, EOFError) as e:
            raise ExtractionError(f"ZIP extraction failed: {e}")

    def _extract_tar_gz(self, archive_path: Path, dest_dir: Path,
                        progress_callback: Optional[Callable] = None,
                        check_cancelled: Optional[Callable] = None) -> int:
        """Extract a TAR.GZ archive."""
        try:
            with tarfile.open(archive_path, 'r:gz') as tar_ref:
                members = tar_ref.getmembers()
                total_files = len(members)

                for i, member in enumerate(members):
                    if check_cancelled:
                        check_cancelled()

                    tar_ref.extract(member, dest_dir, filter='data')

                    if progress_callback and total_files > 0:
                        progress_callback((i + 1) / total_files, f"Extracting files... ({i + 1}/{total_files})")

            self.logger.info(f"Extracted {total_files} files from {archive_path.name}")
            return total_files

        except (tarfile.TarError, OSError, EOFError) as e:
            raise ExtractionError(f"TAR.GZ extraction failed: {e}")

    def get_extracted_root_dir(self, extract_dir: str | Path) -> Optional[Path]:
        """
        Get the root directory of extracted content.

        Archives usually wrap the game in one top level folder; this looks one
        or two levels down for a directory that looks like a game root.

        Args:
            extract_dir: Directory where archive was extracted

        Returns:
            Path: Path to the game root directory, or None if nothing was extracted
        """
        extract_path = Path(extract_dir)
        contents = list(extract_path.iterdir())

        if not contents:
            self.logger.warning(f"Extract directory is empty: {extract_dir}")
            return None

        # If there's only one directory, check if it's the game root
        if len(contents) == 1 and contents[0].is_dir():
            single_dir = contents[0]

            if self._is_game_root_directory(single_dir):
                return single_dir

            # If not, check one level deeper
            sub_contents = list(single_dir.iterdir())
            if len(sub_contents) == 1 and sub_contents[0].is_dir():
                if self._is_game_root_directory(sub_contents[0]):
                    return sub_contents[0]

            return single_dir

        if self._is_game_root_directory(extract_path):
            return extract_path

        for item in contents:
            if item.is_dir() and self._is_game_root_directory(item):
                return item

        self.logger.warning(f"Could not determine game root, using extract directory: {extract_dir}")
        return extract_path

    def _is_game_root_directory(self, directory: Path) -> bool:
        """
        Check if a directory appears to be a game root directory.

        Args:
            directory: Directory to check

        Returns:
            bool: True if at least two game indicators are present
        """
        if not directory.is_dir():
            return False

        found_indicators = 0
        for item in directory.iterdir():
            if item.name.lower() in self.GAME_INDICATORS:
                found_indicators += 1

        return found_indicators >= 2

    def remove_directory(self, dir_path: str | Path,
                         check_cancelled: Optional[Callable] = None) -> List[Path]:
        """
        Remove a directory recursively, bottom-up.

        Removal carries on past entries that cannot be deleted so that as much
        as possible is gone when the call returns.

        Args:
            dir_path: Directory path to remove
            check_cancelled: Optional callable invoked before every entry

        Returns:
            list: Paths that could not be removed (empty on success)
        """
        path = Path(dir_path)
        failed: List[Path] = []

        if not path.exists() and not path.is_symlink():
            self.logger.debug(f"Directory not found, nothing to remove: {path}")
            return failed

        if path.is_symlink() or not path.is_dir():
            try:
                path.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to remove {path}: {e}")
                failed.append(path)
            return failed

        def on_walk_error(error: OSError):
            self.logger.warning(f"Failed to list {error.filename}: {error}")
            failed.append(Path(error.filename))

        for root, dirs, files in os.walk(path, topdown=False, onerror=on_walk_error):
            root_path = Path(root)
            for name in files:
                if check_cancelled:
                    check_cancelled()
                file_path = root_path / name
                try:
                    file_path.unlink()
                except OSError as e:
                    self.logger.warning(f"Failed to remove {file_path}: {e}")
                    failed.append(file_path)
            for name in dirs:
                dir_entry = root_path / name
                # os.walk does not descend into directory symlinks
                if dir_entry.is_symlink():
                    try:
                        dir_entry.unlink()
                    except OSError as e:
                        self.logger.warning(f"Failed to remove {dir_entry}: {e}")
                        failed.append(dir_entry)
                    continue
                try:
                    dir_entry.rmdir()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    if not any(dir_entry in f.parents or f == dir_entry for f in failed):
                        self.logger.warning(f"Failed to remove {dir_entry}: {e}")
                        failed.append(dir_entry)

        try:
            path.rmdir()
        except OSError as e:
            if not failed:
                self.logger.warning(f"Failed to remove {path}: {e}")
                failed.append(path)

        if failed:
            self.logger.warning(f"{len(failed)} entries could not be removed from {path}")
        else:
            self.logger.debug(f"Removed directory: {path}")
        return failed

