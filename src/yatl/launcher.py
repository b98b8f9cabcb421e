"""
YATL Launcher

This module wires the release catalog, the installation manager, the task lane
and the run supervisor together and exposes the operations a front end needs.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from yatl.models.exceptions import ConflictError, InstallationError, NotFoundError
from yatl.models.game_manager import GameManager
from yatl.models.release import GameIdentifier, GameRelease, Profile
from yatl.models.repository_manager import RepositoryManager
from yatl.services import downloader, events, paths, settings
from yatl.services.catalog_sources import CatalogSource, build_sources
from yatl.services.events import EventManager, Events
from yatl.services.game_service import GameService, LaunchSettings, RunSession
from yatl.services.task_queue import TaskQueue
from yatl.tasks.delete_task import DeleteTask
from yatl.tasks.download_task import DownloadTask
from yatl.tasks.task import Task, TaskState
from yatl.utils.helpers import get_free_space
from yatl.utils.logging_handler import add_event_manager_handler_to_logger


class GameAction(Enum):
    """Action offered for a release."""
    PLAY = "play"
    DOWNLOAD = "download"
    CANCEL = "cancel"


@dataclass
class LauncherConfiguration:
    """Everything the launcher needs, resolved before it starts."""
    install_directory: Path
    game_data_directory: Path
    downloads_directory: Path
    temp_directory: Path
    settings: settings.SettingsManager
    event_manager: EventManager
    sources: List[CatalogSource] = field(default_factory=list)


class Launcher:
    """
    Main launcher class for YATL.

    This class handles:
    - Building and owning the lifecycle components
    - Admitting downloads, deletions and game starts
    - Remembering the last played game
    - Warning when the installation root runs low on space
    """

    LOW_SPACE_THRESHOLD = 200 * 1024 * 1024  # 200 MB

    def __init__(self, config: LauncherConfiguration, spawn: Callable = subprocess.Popen,
                 game_downloader: Optional[downloader.Downloader] = None):
        """
        Initialize the launcher.

        Args:
            config: Resolved launcher configuration
            spawn: Process factory handed to the run supervisor
            game_downloader: Downloader for game archives, a new one if None
        """
        self.logger = logging.getLogger("YATL")
        self.config = config
        self.settings = config.settings
        self.event_manager = config.event_manager

        self.downloader = game_downloader or downloader.Downloader()
        self.repository = RepositoryManager(config.sources, self.event_manager)
        self.game_manager = GameManager(config.install_directory, self.event_manager,
                                        temp_dir=config.temp_directory,
                                        cache_dir=config.downloads_directory,
                                        downloader=self.downloader)
        self.task_queue = TaskQueue(self.event_manager)
        self.game_service = GameService(self.event_manager, spawn=spawn)

        self.event_manager.subscribe(Events.GAME_STARTED, self._on_game_started, weak=False)
        self.event_manager.subscribe(Events.TASK_FINISHED, self._on_task_finished, weak=False)

        self.logger.info("Launcher initialized")
        self.check_free_space()

    def refresh(self) -> List[str]:
        """Refresh the release catalog. Returns the unavailable source names."""
        return self.repository.refresh()

    def get_releases(self, profile: Optional[Profile] = None) -> List[GameRelease]:
        """Get the releases to show, honouring the pre-release setting."""
        return self.repository.get_releases_for(profile, bool(self.settings.read("show_pre_releases", False)))

    def get_default_release(self, profile: Optional[Profile] = None) -> Optional[GameRelease]:
        return self.repository.select_default_release(
            profile,
            last_played=self.settings.get_last_played_game(),
            installed=self.game_manager.get_installed_games(),
            include_pre_releases=bool(self.settings.read("show_pre_releases", False)),
        )

    def download(self, release: GameRelease) -> DownloadTask:
        """
        Queue the installation of a release.

        Raises:
            ConflictError: If an operation on the release is already in progress
        """
        self.check_free_space()
        task = self.game_manager.download(
            release, keep_archive=bool(self.settings.read("keep_downloaded_files", False)))
        self.task_queue.submit(task)
        return task

    def delete(self, game_id: GameIdentifier) -> DeleteTask:
        """
        Queue the removal of an installation.

        The last played game is forgotten once its deletion succeeded.

        Raises:
            ConflictError: If an operation on the game is already in progress
                or the game is running
        """
        task = self.game_manager.delete(game_id, game_service=self.game_service)
        self.task_queue.submit(task)
        return task

    def cancel(self, task: Task) -> bool:
        """Cancel a queued or running task."""
        return task.cancel()

    def start(self, game_id: GameIdentifier) -> RunSession:
        """
        Start an installed game.

        Raises:
            NotFoundError: If the game is not installed
            ConflictError: If a game is running or the game is being modified
        """
        if self.game_manager.is_busy(game_id):
            raise ConflictError(f"{game_id} is being downloaded or deleted")
        if not self.game_manager.is_installed(game_id):
            raise NotFoundError(f"{game_id} is not installed")
        installation = self.game_manager.get_installation(game_id)

        launch_settings = LaunchSettings.from_settings(self.settings, self.config.game_data_directory)
        return self.game_service.start(installation, launch_settings)

    def game_action(self, release: GameRelease) -> GameAction:
        """Get the action to offer for a release."""
        if self.task_queue.find_task(release.id) is not None:
            return GameAction.CANCEL
        if self.game_manager.is_installed(release.id):
            return GameAction.PLAY
        return GameAction.DOWNLOAD

    def check_free_space(self) -> bool:
        """
        Warn when the installation root is low on free space.

        Returns:
            bool: True if there is enough space
        """
        free_space = get_free_space(self.game_manager.install_root)
        if free_space < self.LOW_SPACE_THRESHOLD:
            self.logger.warning(f"Low on disk space: {free_space // (1024 * 1024)} MB free in "
                                f"{self.game_manager.install_root}")
            self.event_manager.emit(Events.WARNING_RAISED,
                                    warning="low_on_space",
                                    free_space=free_space)
            return False
        return True

    def _on_game_started(self, sender, **kwargs):
        installation = kwargs.get("installation")
        if installation is None:
            return

        try:
            game_id = installation.read_info().id
        except InstallationError as e:
            self.logger.warning(f"Could not remember last played game: {e}")
        else:
            self.settings.set_last_played_game(game_id)
            self.settings.save_user()

        if self.settings.read("close_after_start", False):
            if self.task_queue.active_tasks():
                self.logger.info("Keeping launcher open while tasks are running")
            else:
                self.logger.info("Closing launcher as per settings")
                self.event_manager.emit(Events.APP_EXIT_REQUESTED)

    def _on_task_finished(self, sender, **kwargs):
        task = kwargs.get("task")
        if not isinstance(task, DeleteTask) or kwargs.get("state") != TaskState.SUCCEEDED:
            return
        if self.settings.get_last_played_game() == task.target:
            self.settings.set_last_played_game(None)
            self.settings.save_user()

    def shutdown(self, timeout: float = 5.0):
        """Cancel outstanding tasks and persist settings."""
        self.logger.info("Shutting down launcher...")
        self.event_manager.unsubscribe(Events.GAME_STARTED, self._on_game_started)
        self.event_manager.unsubscribe(Events.TASK_FINISHED, self._on_task_finished)
        self.task_queue.shutdown(timeout)
        self.downloader.shutdown()
        self.settings.save()
        self.logger.info("Launcher shutdown complete")


def initialize_logging(logs_dir: Path, event_manager: EventManager, debug: bool = False) -> bool:
    """
    Attach the log file and the event manager to the YATL logger.

    Args:
        logs_dir: Directory for the log file
        event_manager: Event manager receiving status messages
        debug: Log debug messages

    Returns:
        bool: True if initialization was successful
    """
    logger = logging.getLogger("YATL")
    try:
        logger.setLevel(logging.DEBUG if debug else logging.INFO)

        log_file = logs_dir / "yatl.log"
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(logger.level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(module)s [%(levelname)s] %(message)s', datefmt='%H:%M:%S'
        ))
        logger.addHandler(file_handler)

        add_event_manager_handler_to_logger(logger, event_manager, logger.level,
            logging.Formatter('%(asctime)s - [%(levelname)s] %(message)s', datefmt='%H:%M:%S'))
        return True

    except Exception as e:
        logger.error(f"Failed to initialize logging handler: {e}")
        return False


def create_launcher(base_dir: Optional[Path] = None, spawn: Callable = subprocess.Popen,
                    debug: bool = False) -> Launcher:
    """
    Initialize the core systems and build a launcher.

    Args:
        base_dir: Directory holding the launcher directory, defaults to home
        spawn: Process factory handed to the run supervisor
        debug: Log debug messages

    Returns:
        Launcher: Ready launcher

    Raises:
        RuntimeError: If a core system fails to initialize
    """
    logger = logging.getLogger("YATL")
    logger.info("Initializing core systems...")

    if not paths.initialize_paths("YATL", base_dir):
        raise RuntimeError("Failed to initialize path manager")
    path_manager = paths.get_paths()

    if not settings.initialize_settings(path_manager.config_dir):
        raise RuntimeError("Failed to initialize settings manager")
    app_settings = settings.get_settings()

    if not events.initialize_event_manager():
        raise RuntimeError("Failed to initialize event manager")
    event_manager = events.get_event_manager()

    if not initialize_logging(path_manager.logs_dir, event_manager, debug):
        raise RuntimeError("Failed to initialize logging handler")

    if not downloader.initialize_downloader():
        raise RuntimeError("Failed to initialize downloader")
    game_downloader = downloader.get_downloader()

    install_directory = app_settings.read_core("install_directory")
    config = LauncherConfiguration(
        install_directory=Path(install_directory) if install_directory else path_manager.games_dir,
        game_data_directory=path_manager.game_data_dir,
        downloads_directory=path_manager.downloads_dir,
        temp_directory=path_manager.temp_dir,
        settings=app_settings,
        event_manager=event_manager,
        sources=build_sources(app_settings.read_core("catalog_sources", []), game_downloader.session),
    )

    launcher = Launcher(config, spawn=spawn, game_downloader=game_downloader)
    event_manager.emit(Events.APP_INITIALIZED)
    return launcher


def shutdown_launcher(launcher: Launcher, timeout: float = 5.0):
    """Shut down a launcher built by create_launcher and the core systems."""
    try:
        launcher.event_manager.emit(Events.APP_SHUTDOWN)
        launcher.shutdown(timeout)
    finally:
        downloader.shutdown_downloader()
        settings.shutdown_settings()
        events.shutdown_event_manager()
        paths.shutdown_paths()
