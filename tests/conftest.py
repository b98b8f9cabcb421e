"""
Pytest configuration and fixtures for YATL tests.
"""

import io
import tarfile
import threading
import zipfile
import pytest
import tempfile
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import Mock

from yatl.models.installation import ENGINE_VERSION_ENTRY
from yatl.models.release import Build, GameIdentifier, GameRelease, Profile
from yatl.services.events import EventManager


def engine_jar_bytes(engine_version: str = "5.3.0-SNAPSHOT") -> bytes:
    """Build an engine jar carrying a version file."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as jar:
        jar.writestr(ENGINE_VERSION_ENTRY, f"# generated\nengineVersion={engine_version}\n")
    return buffer.getvalue()


def game_files(root: str = "Terasology", engine_version: str = "5.3.0-SNAPSHOT") -> Dict[str, bytes]:
    """Files of a minimal game distribution."""
    prefix = f"{root}/" if root else ""
    return {
        f"{prefix}lib/Terasology.jar": b"game jar",
        f"{prefix}libs/engine-5.3.0.jar": engine_jar_bytes(engine_version),
        f"{prefix}README.markdown": b"# Terasology",
        f"{prefix}modules/core.jar": b"module",
    }


def make_zip(path: Path, files: Dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, 'w') as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return path


def make_tar_gz(path: Path, files: Dict[str, bytes]) -> Path:
    with tarfile.open(path, 'w:gz') as archive:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return path


class FakeDownloader:
    """
    Downloader serving a local file.

    The transfer blocks before every chunk until ``proceed`` is set, checking
    for cancellation while it waits.
    """

    def __init__(self, source: Path, chunk_size: int = 256, report_length: bool = True,
                 error: Optional[Exception] = None):
        self.source = Path(source)
        self.chunk_size = chunk_size
        self.report_length = report_length
        self.error = error
        self.started = threading.Event()
        self.proceed = threading.Event()
        self.proceed.set()
        self.urls = []

    def fetch(self, url, file_path, progress_callback=None, check_cancelled=None):
        self.urls.append(url)
        self.started.set()
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        data = self.source.read_bytes()
        total = len(data) if self.report_length else None
        success = False
        try:
            with open(file_path, 'wb') as f:
                for offset in range(0, len(data), self.chunk_size):
                    while not self.proceed.wait(0.01):
                        if check_cancelled:
                            check_cancelled()
                    chunk = data[offset:offset + self.chunk_size]
                    f.write(chunk)
                    if progress_callback:
                        progress_callback(offset + len(chunk), total)
                    if check_cancelled:
                        check_cancelled()
            if self.error:
                raise self.error
            success = True
            return len(data)
        finally:
            if not success:
                file_path.unlink(missing_ok=True)

    def shutdown(self):
        pass


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_event_manager():
    """Create a mock event manager."""
    event_manager = Mock(spec=EventManager)
    event_manager.emit = Mock()
    event_manager.subscribe = Mock()
    event_manager.unsubscribe = Mock()
    return event_manager


@pytest.fixture
def game_id():
    """The identifier most tests install."""
    return GameIdentifier(Profile.OMEGA, Build.STABLE, "1.0.0")


@pytest.fixture
def game_zip(temp_dir):
    """A game distribution packed as zip."""
    return make_zip(temp_dir / "TerasologyOmega.zip", game_files())


@pytest.fixture
def release_factory():
    """Build releases without repeating every field."""
    def create(profile=Profile.OMEGA, build=Build.STABLE, version="1.0.0",
               timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
               url="https://example.org/TerasologyOmega.zip", changelog=""):
        return GameRelease(GameIdentifier(profile, build, version), timestamp, url, changelog)
    return create
