"""
Game Run Supervisor for YATL

This module provides the GameService class which starts an installed game as a
child process and follows it until it exits. At most one game runs at a time.
"""

import logging
import shlex
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from yatl.models.exceptions import ConflictError, GameExitError, LauncherError, ProcessSpawnError
from yatl.models.installation import Installation
from yatl.models.release import GameIdentifier
from yatl.services.events import EventManager, Events
from yatl.services.settings import SettingsManager


class RunState(Enum):
    """Run session state enumeration."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


def _parameter_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    return [str(item) for item in value]


@dataclass(frozen=True)
class LaunchSettings:
    """Settings snapshot used to start a game."""
    max_heap_size: Optional[str] = None
    min_heap_size: Optional[str] = None
    extra_java_parameters: List[str] = field(default_factory=list)
    extra_game_parameters: List[str] = field(default_factory=list)
    close_after_start: bool = False
    last_played_game_version: Optional[GameIdentifier] = None
    java_executable: str = "java"
    game_data_directory: Optional[Path] = None

    @classmethod
    def from_settings(cls, settings: SettingsManager,
                      default_game_data_directory: Optional[Path] = None) -> 'LaunchSettings':
        """
        Take a snapshot of the user settings.

        Args:
            settings: Settings manager to read from
            default_game_data_directory: Used when no game data directory is configured

        Returns:
            LaunchSettings: Current launch settings
        """
        game_data_directory = settings.read("game_data_directory") or default_game_data_directory
        return cls(
            max_heap_size=settings.read("max_heap_size") or None,
            min_heap_size=settings.read("min_heap_size") or None,
            extra_java_parameters=_parameter_list(settings.read("extra_java_parameters")),
            extra_game_parameters=_parameter_list(settings.read("extra_game_parameters")),
            close_after_start=bool(settings.read("close_after_start", False)),
            last_played_game_version=settings.get_last_played_game(),
            java_executable=settings.read("java_executable") or "java",
            game_data_directory=Path(game_data_directory) if game_data_directory else None,
        )


@dataclass(frozen=True)
class LaunchSpec:
    """Command line and working directory of a game process."""
    executable: str
    arguments: List[str]
    working_directory: Path

    @property
    def command(self) -> List[str]:
        return [self.executable] + list(self.arguments)


class RunSession:
    """One attempt to run a game."""

    def __init__(self, installation: Installation):
        self.installation = installation
        self.state = RunState.STARTING
        self.process = None
        self.exit_code: Optional[int] = None
        self.error: Optional[Exception] = None
        self._done = threading.Event()

    def __repr__(self) -> str:
        return f"RunSession({self.installation.install_directory}, {self.state.value})"

    @property
    def is_active(self) -> bool:
        return self.state in (RunState.STARTING, RunState.RUNNING)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session finished or failed."""
        return self._done.wait(timeout)


class GameService:
    """
    Run supervisor for YATL.

    This class handles:
    - Building the java command line of an installation
    - Spawning the game process
    - Following the process on a supervisor thread
    - Reporting start, exit and failures as events
    """

    def __init__(self, event_manager: Optional[EventManager] = None,
                 spawn: Callable = subprocess.Popen):
        """
        Initialize the game service.

        Args:
            event_manager: Event manager for UI communication
            spawn: Process factory called as ``spawn(args, cwd=...)``
        """
        self.logger = logging.getLogger("YATL")
        self.event_manager = event_manager
        self._spawn = spawn
        self._lock = threading.Lock()
        self._session: Optional[RunSession] = None

    @property
    def session(self) -> Optional[RunSession]:
        with self._lock:
            return self._session

    def is_running(self) -> bool:
        session = self.session
        return session is not None and session.is_active

    def is_running_installation(self, install_directory: Path) -> bool:
        """Check whether the active session runs the game in a directory."""
        session = self.session
        return (session is not None and session.is_active
                and session.installation.install_directory == Path(install_directory))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current session ended. True if there is none."""
        session = self.session
        return session.wait(timeout) if session else True

    def start(self, installation: Installation, settings: LaunchSettings) -> RunSession:
        """
        Start a game.

        Preparation and the process itself are handled on a supervisor thread;
        the outcome is reported through GAME_STARTED, GAME_FINISHED and
        GAME_FAILED.

        Args:
            installation: Installation to run
            settings: Launch settings snapshot

        Returns:
            RunSession: The new session, in STARTING state

        Raises:
            ConflictError: If a game is already starting or running
        """
        with self._lock:
            if self._session is not None and self._session.is_active:
                raise ConflictError(f"A game is already running: {self._session.installation.install_directory}")
            session = RunSession(installation)
            self._session = session

        self.logger.info(f"Starting game from {installation.install_directory}")
        thread = threading.Thread(target=self._supervise, args=(session, settings),
                                  name="GameSupervisor", daemon=True)
        thread.start()
        return session

    def build_launch_spec(self, installation: Installation, settings: LaunchSettings) -> LaunchSpec:
        """
        Build the command line of an installation.

        The engine version is resolved first; an installation whose engine
        cannot be identified is not started.

        Raises:
            InstallationError: If the installation has no game jar or no
                readable engine version
        """
        engine_version = installation.engine_version()
        self.logger.info(f"Preparing engine {engine_version} from {installation.install_directory}")

        arguments: List[str] = []
        if settings.max_heap_size:
            arguments.append(f"-Xmx{settings.max_heap_size}")
        if settings.min_heap_size:
            arguments.append(f"-Xms{settings.min_heap_size}")
        arguments.extend(settings.extra_java_parameters)

        arguments.extend(["-jar", str(installation.game_jar_path())])

        if settings.game_data_directory:
            arguments.append(f"-homedir={settings.game_data_directory}")
        arguments.extend(settings.extra_game_parameters)

        return LaunchSpec(settings.java_executable, arguments, installation.install_directory)

    def _supervise(self, session: RunSession, settings: LaunchSettings):
        try:
            self._run(session, settings)
        except Exception as e:
            self.logger.exception("Unexpected error while supervising the game")
            if session.is_active:
                self._fail(session, ProcessSpawnError(f"Could not run the game: {e}"))

    def _run(self, session: RunSession, settings: LaunchSettings):
        try:
            spec = self.build_launch_spec(session.installation, settings)
            if settings.game_data_directory:
                Path(settings.game_data_directory).mkdir(parents=True, exist_ok=True)
        except LauncherError as e:
            self._fail(session, e)
            return
        except OSError as e:
            self._fail(session, ProcessSpawnError(f"Could not create game data directory: {e}"))
            return

        self.logger.info(f"Executing: {' '.join(spec.command)}")
        try:
            process = self._spawn(spec.command, cwd=str(spec.working_directory))
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            self._fail(session, ProcessSpawnError(f"Could not start {spec.executable}: {e}"))
            return

        with self._lock:
            session.process = process
            session.state = RunState.RUNNING
        if self.event_manager:
            self.event_manager.emit(Events.GAME_STARTED, session=session,
                                    installation=session.installation)

        exit_code = process.wait()

        if exit_code == 0:
            with self._lock:
                session.exit_code = exit_code
                session.state = RunState.FINISHED
            self.logger.info("Game finished")
            if self.event_manager:
                self.event_manager.emit(Events.GAME_FINISHED, session=session, exit_code=exit_code)
            session._done.set()
        else:
            with self._lock:
                session.exit_code = exit_code
            self._fail(session, GameExitError(exit_code))

    def _fail(self, session: RunSession, error: Exception):
        with self._lock:
            session.error = error
            session.state = RunState.FAILED
        self.logger.error(f"Game failed: {error}")
        if self.event_manager:
            self.event_manager.emit(Events.GAME_FAILED, session=session, error=error)
        session._done.set()
