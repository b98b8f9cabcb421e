"""
Tests for the game run supervisor.
"""

import threading
import pytest
from pathlib import Path
from unittest.mock import Mock

from conftest import engine_jar_bytes
from yatl.models.exceptions import ConflictError, GameExitError, InstallationError, ProcessSpawnError
from yatl.models.installation import Installation
from yatl.services.events import Events
from yatl.services.game_service import GameService, LaunchSettings, RunState
from yatl.services.settings import SettingsManager


class FakeProcess:
    """Process that exits when told to."""

    def __init__(self, exit_code=0):
        self.exit_code = exit_code
        self.exited = threading.Event()
        self.returncode = None

    def wait(self, timeout=None):
        self.exited.wait(timeout)
        self.returncode = self.exit_code
        return self.exit_code

    def poll(self):
        return self.returncode


@pytest.fixture
def installation(temp_dir):
    directory = temp_dir / "omega" / "stable" / "1.0.0"
    (directory / "lib").mkdir(parents=True)
    (directory / "lib" / "Terasology.jar").write_bytes(b"jar")
    (directory / "lib" / "engine-5.3.0.jar").write_bytes(engine_jar_bytes())
    return Installation(directory)


class TestLaunchSpec:
    """Tests for the game command line."""

    def test_full_command_line(self, installation, temp_dir):
        settings = LaunchSettings(
            max_heap_size="4g",
            min_heap_size="1g",
            extra_java_parameters=["-XX:+UseG1GC"],
            extra_game_parameters=["-noCrashReport"],
            game_data_directory=temp_dir / "data",
        )

        spec = GameService().build_launch_spec(installation, settings)

        assert spec.command == [
            "java", "-Xmx4g", "-Xms1g", "-XX:+UseG1GC",
            "-jar", str(installation.install_directory / "lib" / "Terasology.jar"),
            f"-homedir={temp_dir / 'data'}", "-noCrashReport",
        ]
        assert spec.working_directory == installation.install_directory

    def test_minimal_command_line(self, installation):
        spec = GameService().build_launch_spec(installation, LaunchSettings(java_executable="/opt/jdk/bin/java"))

        assert spec.command == ["/opt/jdk/bin/java", "-jar",
                                str(installation.install_directory / "lib" / "Terasology.jar")]

    def test_missing_jar(self, installation):
        (installation.install_directory / "lib" / "Terasology.jar").unlink()

        with pytest.raises(InstallationError):
            GameService().build_launch_spec(installation, LaunchSettings())

    def test_missing_engine_jar(self, installation):
        (installation.install_directory / "lib" / "engine-5.3.0.jar").unlink()

        with pytest.raises(InstallationError):
            GameService().build_launch_spec(installation, LaunchSettings())

    def test_from_settings(self, temp_dir):
        manager = SettingsManager()
        manager.initialize(temp_dir / "config")
        manager.store("max_heap_size", "2g")
        manager.store("extra_game_parameters", "-a '-b c'")

        settings = LaunchSettings.from_settings(manager, temp_dir / "gamedata")

        assert settings.max_heap_size == "2g"
        assert settings.min_heap_size is None
        assert settings.extra_game_parameters == ["-a", "-b c"]
        assert settings.extra_java_parameters == ["-XX:+UseG1GC", "-XX:MaxGCPauseMillis=20"]
        assert settings.java_executable == "java"
        assert settings.game_data_directory == temp_dir / "gamedata"


class TestGameService:
    """Tests for game sessions."""

    def test_session_lifecycle(self, installation, mock_event_manager):
        process = FakeProcess(exit_code=0)
        spawn = Mock(return_value=process)
        service = GameService(mock_event_manager, spawn=spawn)

        session = service.start(installation, LaunchSettings())
        assert service.is_running()
        assert service.is_running_installation(installation.install_directory)

        process.exited.set()
        assert session.wait(5)

        assert session.state == RunState.FINISHED
        assert session.exit_code == 0
        assert not service.is_running()
        spawn.assert_called_once()
        assert spawn.call_args.kwargs["cwd"] == str(installation.install_directory)
        events = [c.args[0] for c in mock_event_manager.emit.call_args_list]
        assert events == [Events.GAME_STARTED, Events.GAME_FINISHED]

    def test_double_start_conflicts(self, installation):
        process = FakeProcess()
        spawn = Mock(return_value=process)
        service = GameService(spawn=spawn)

        session = service.start(installation, LaunchSettings())
        with pytest.raises(ConflictError):
            service.start(installation, LaunchSettings())

        process.exited.set()
        assert session.wait(5)
        spawn.assert_called_once()

    def test_start_again_after_exit(self, installation):
        spawn = Mock(side_effect=lambda *args, **kwargs: FakeProcess())
        service = GameService(spawn=spawn)

        for _ in range(2):
            session = service.start(installation, LaunchSettings())
            while session.process is None and not session.wait(0.01):
                pass
            session.process.exited.set()
            assert session.wait(5)
            assert session.state == RunState.FINISHED

        assert spawn.call_count == 2

    def test_spawn_failure(self, installation, mock_event_manager):
        service = GameService(mock_event_manager, spawn=Mock(side_effect=FileNotFoundError("java")))

        session = service.start(installation, LaunchSettings())

        assert session.wait(5)
        assert session.state == RunState.FAILED
        assert isinstance(session.error, ProcessSpawnError)
        assert not service.is_running()
        mock_event_manager.emit.assert_called_once_with(Events.GAME_FAILED, session=session, error=session.error)

    def test_preparation_failure(self, temp_dir, mock_event_manager):
        spawn = Mock()
        service = GameService(mock_event_manager, spawn=spawn)

        session = service.start(Installation(temp_dir), LaunchSettings())

        assert session.wait(5)
        assert isinstance(session.error, InstallationError)
        spawn.assert_not_called()

    def test_non_zero_exit(self, installation, mock_event_manager):
        process = FakeProcess(exit_code=3)
        process.exited.set()
        service = GameService(mock_event_manager, spawn=Mock(return_value=process))

        session = service.start(installation, LaunchSettings())

        assert session.wait(5)
        assert session.state == RunState.FAILED
        assert session.exit_code == 3
        assert isinstance(session.error, GameExitError)
        events = [c.args[0] for c in mock_event_manager.emit.call_args_list]
        assert events == [Events.GAME_STARTED, Events.GAME_FAILED]

    def test_other_directory_is_not_running(self, installation):
        process = FakeProcess()
        service = GameService(spawn=Mock(return_value=process))
        session = service.start(installation, LaunchSettings())

        assert not service.is_running_installation(Path("/elsewhere"))

        process.exited.set()
        assert session.wait(5)

    def test_installation_without_engine_fails(self, installation, mock_event_manager):
        (installation.install_directory / "lib" / "engine-5.3.0.jar").unlink()
        spawn = Mock()
        service = GameService(mock_event_manager, spawn=spawn)

        session = service.start(installation, LaunchSettings())

        assert session.wait(5)
        assert session.state == RunState.FAILED
        assert isinstance(session.error, InstallationError)
        spawn.assert_not_called()

    def test_unexpected_spawn_error(self, installation, mock_event_manager):
        service = GameService(mock_event_manager, spawn=Mock(side_effect=TypeError("expected str")))

        session = service.start(installation, LaunchSettings())

        assert session.wait(5)
        assert session.state == RunState.FAILED
        assert isinstance(session.error, ProcessSpawnError)
        assert not service.is_running()
        mock_event_manager.emit.assert_called_once_with(Events.GAME_FAILED, session=session, error=session.error)

    def test_unexpected_error_while_running(self, installation, mock_event_manager):
        process = Mock()
        process.wait.side_effect = RuntimeError("lost the process")
        service = GameService(mock_event_manager, spawn=Mock(return_value=process))

        session = service.start(installation, LaunchSettings())

        assert session.wait(5)
        assert session.state == RunState.FAILED
        events = [c.args[0] for c in mock_event_manager.emit.call_args_list]
        assert events == [Events.GAME_STARTED, Events.GAME_FAILED]

    def test_start_again_after_unexpected_error(self, installation):
        process = FakeProcess()
        process.exited.set()
        spawn = Mock(side_effect=[TypeError("expected str"), process])
        service = GameService(spawn=spawn)

        assert service.start(installation, LaunchSettings()).wait(5)
        session = service.start(installation, LaunchSettings())

        assert session.wait(5)
        assert session.state == RunState.FINISHED
