"""
Game Installation Manager for YATL

This module provides the GameManager class which owns the installation root:
the deterministic directory of every game identifier, the set of installed
games, and the per-identifier leases that keep two operations on the same game
from overlapping.
"""

import logging
import threading
import uuid
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional
from urllib.parse import quote, unquote

from yatl.models.exceptions import ConflictError, InstallationError, NotFoundError
from yatl.models.installation import Installation
from yatl.models.release import Build, GameIdentifier, GameRelease, Profile
from yatl.services.downloader import Downloader
from yatl.services.events import EventManager, Events
from yatl.tasks.delete_task import DeleteTask
from yatl.tasks.download_task import DownloadTask
from yatl.utils.file_ops import FileOperations

STAGING_DIRNAME = ".staging"


class Lease:
    """
    Exclusive claim on one game identifier.

    Released once; later calls to release() do nothing.
    """

    def __init__(self, manager: 'GameManager', game_id: GameIdentifier):
        self.manager = manager
        self.game_id = game_id
        self._released = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"Lease({self.game_id}, {state})"

    def __enter__(self) -> 'Lease':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    @property
    def released(self) -> bool:
        return self._released

    def release(self):
        with self._lock:
            if self._released:
                return
            self._released = True
        self.manager._release(self)


class GameManager:
    """
    Installation manager for YATL.

    This class handles:
    - Mapping identifiers to installation directories
    - Tracking the set of installed games
    - Admission of download and delete operations
    - Recovering the installed set from disk
    """

    def __init__(self, install_root: Path, event_manager: Optional[EventManager] = None,
                 temp_dir: Optional[Path] = None, cache_dir: Optional[Path] = None,
                 downloader: Optional[Downloader] = None):
        """
        Initialize the game manager and scan the installation root.

        Args:
            install_root: Directory holding all installations
            event_manager: Event manager for UI communication
            temp_dir: Directory for archives being downloaded, defaults to the staging directory
            cache_dir: Directory for kept archives, defaults to the temp directory
            downloader: Downloader used when a download does not bring its own
        """
        self.logger = logging.getLogger("YATL")
        self.install_root = Path(install_root)
        self.staging_root = self.install_root / STAGING_DIRNAME
        self.temp_dir = Path(temp_dir) if temp_dir else self.staging_root
        self.cache_dir = Path(cache_dir) if cache_dir else self.temp_dir
        self.event_manager = event_manager
        self.file_ops = FileOperations()
        self._downloader = downloader

        self._lock = threading.Lock()
        self._installed: FrozenSet[GameIdentifier] = frozenset()
        self._leases: Dict[GameIdentifier, Lease] = {}
        self._listeners: List[Callable] = []

        self.install_root.mkdir(parents=True, exist_ok=True)
        self.scan()

    # Directory layout

    def get_install_directory(self, game_id: GameIdentifier) -> Path:
        """
        Get the directory an identifier is installed to.

        The directory depends on the identifier only, and distinct identifiers
        never share a directory.

        Args:
            game_id: Game identifier

        Returns:
            Path: Installation directory (which may not exist)
        """
        return (self.install_root / game_id.profile.value / game_id.build.value
                / _encode_version(game_id.version))

    def new_staging_directory(self) -> Path:
        """Create a fresh directory to extract into."""
        directory = self.staging_root / uuid.uuid4().hex
        directory.mkdir(parents=True)
        return directory

    def get_cached_archive_path(self, game_id: GameIdentifier, extension: str) -> Path:
        """Get the path a kept archive for an identifier is stored at."""
        name = f"{game_id.profile.value}-{game_id.build.value}-{_encode_version(game_id.version)}"
        return self.cache_dir / f"{name}{extension}"

    # Installed set

    def get_installation(self, game_id: GameIdentifier) -> Installation:
        """
        Get the installation of an identifier.

        Raises:
            NotFoundError: If the installation directory does not exist
        """
        directory = self.get_install_directory(game_id)
        if not directory.is_dir():
            raise NotFoundError(f"{game_id} is not installed")
        return Installation(directory)

    def get_installed_games(self) -> FrozenSet[GameIdentifier]:
        with self._lock:
            return self._installed

    def is_installed(self, game_id: GameIdentifier) -> bool:
        return game_id in self.get_installed_games()

    def subscribe(self, listener: Callable):
        """
        Register a listener for installed-set changes.

        Listeners are called as ``listener(manager, added=..., removed=..., installed=...)``.
        """
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Callable):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def scan(self) -> FrozenSet[GameIdentifier]:
        """
        Rebuild the installed set from the installation root.

        Leftover staging directories are removed first. Directories without a
        valid completion marker are ignored.

        Returns:
            frozenset: Installed identifiers
        """
        self._remove_staging_leftovers()

        found = set()
        for profile_dir in _subdirectories(self.install_root):
            if profile_dir.name == STAGING_DIRNAME:
                continue
            try:
                profile = Profile(profile_dir.name)
            except ValueError:
                self.logger.warning(f"Ignoring unknown profile directory: {profile_dir}")
                continue

            for build_dir in _subdirectories(profile_dir):
                try:
                    build = Build(build_dir.name)
                except ValueError:
                    self.logger.warning(f"Ignoring unknown build directory: {build_dir}")
                    continue

                for version_dir in _subdirectories(build_dir):
                    game_id = self._identify(profile, build, version_dir)
                    if game_id is not None:
                        found.add(game_id)

        self._update_installed(lambda installed: frozenset(found))
        self.logger.info(f"Found {len(found)} installed games in {self.install_root}")
        return self.get_installed_games()

    def _identify(self, profile: Profile, build: Build, version_dir: Path) -> Optional[GameIdentifier]:
        try:
            game_id = GameIdentifier(profile, build, unquote(version_dir.name))
        except ValueError:
            self.logger.warning(f"Ignoring invalid installation directory: {version_dir}")
            return None

        if self.get_install_directory(game_id) != version_dir:
            self.logger.warning(f"Ignoring installation directory with unexpected name: {version_dir}")
            return None

        try:
            info = Installation(version_dir).read_info()
        except InstallationError as e:
            self.logger.warning(f"Ignoring incomplete installation: {e}")
            return None

        if info.id != game_id:
            self.logger.warning(f"Ignoring installation of {info.id} found at {version_dir}")
            return None
        return game_id

    def _remove_staging_leftovers(self):
        for leftover in _subdirectories(self.staging_root):
            self.logger.info(f"Removing interrupted installation data: {leftover}")
            self.file_ops.remove_directory(leftover)

    def _mark_installed(self, game_id: GameIdentifier):
        self._update_installed(lambda installed: installed | {game_id})

    def _mark_removed(self, game_id: GameIdentifier):
        self._update_installed(lambda installed: installed - {game_id})

    def _update_installed(self, update: Callable[[FrozenSet[GameIdentifier]], FrozenSet[GameIdentifier]]):
        # derived from the current set and swapped in within one critical section
        with self._lock:
            previous = self._installed
            installed = update(previous)
            self._installed = installed
            listeners = list(self._listeners)

        added = installed - previous
        removed = previous - installed
        if not added and not removed:
            return

        self.logger.debug(f"Installed games changed: +{len(added)} -{len(removed)}")
        for listener in listeners:
            try:
                listener(self, added=added, removed=removed, installed=installed)
            except Exception as e:
                self.logger.error(f"Error in installed games listener {listener}: {e}")

        if self.event_manager:
            self.event_manager.emit(Events.INSTALLED_GAMES_CHANGED,
                                    added=added,
                                    removed=removed,
                                    installed=installed)

    # Admission

    def acquire(self, game_id: GameIdentifier) -> Lease:
        """
        Claim an identifier for one operation.

        Raises:
            ConflictError: If another operation holds the identifier
        """
        with self._lock:
            if game_id in self._leases:
                raise ConflictError(f"An operation on {game_id} is already in progress")
            lease = Lease(self, game_id)
            self._leases[game_id] = lease
        self.logger.debug(f"Acquired lease for {game_id}")
        return lease

    def is_busy(self, game_id: GameIdentifier) -> bool:
        with self._lock:
            return game_id in self._leases

    def _release(self, lease: Lease):
        with self._lock:
            if self._leases.get(lease.game_id) is lease:
                del self._leases[lease.game_id]
        self.logger.debug(f"Released lease for {lease.game_id}")

    def download(self, release: GameRelease, downloader: Optional[Downloader] = None,
                 keep_archive: bool = False) -> DownloadTask:
        """
        Create the task installing a release.

        Args:
            release: Release to install
            downloader: Downloader to use, defaults to the manager's
            keep_archive: Keep the archive in the cache directory and reuse it

        Returns:
            DownloadTask: Pending task holding the identifier's lease

        Raises:
            ConflictError: If another operation holds the identifier
        """
        lease = self.acquire(release.id)
        return DownloadTask(self, release, lease,
                            downloader=downloader or self.get_downloader(),
                            event_manager=self.event_manager,
                            keep_archive=keep_archive)

    def delete(self, game_id: GameIdentifier, game_service=None) -> DeleteTask:
        """
        Create the task removing an installation.

        Args:
            game_id: Identifier to remove
            game_service: Run supervisor consulted for a running session

        Returns:
            DeleteTask: Pending task holding the identifier's lease

        Raises:
            ConflictError: If another operation holds the identifier or the
                game is running
        """
        directory = self.get_install_directory(game_id)
        if game_service is not None and game_service.is_running_installation(directory):
            raise ConflictError(f"{game_id} is running and cannot be deleted")

        lease = self.acquire(game_id)
        return DeleteTask(self, game_id, lease,
                          game_service=game_service,
                          event_manager=self.event_manager)

    def get_downloader(self) -> Downloader:
        if self._downloader is None:
            self._downloader = Downloader()
        return self._downloader


def _encode_version(version: str) -> str:
    # quote leaves dots alone, so the dot-only names need escaping by hand
    if version in (".", ".."):
        return "%2E" * len(version)
    return quote(version, safe="")


def _subdirectories(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.iterdir() if path.is_dir() and not path.is_symlink())
