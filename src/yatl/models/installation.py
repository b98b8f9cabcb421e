"""
Installation Data Models for YATL

This module contains the on-disk view of an installed game and the metadata
written into every complete installation.

An Installation never caches what it reads. The directory it points at can be
replaced or removed by a download or delete task at any moment, so every query
goes back to the filesystem.
"""

import re
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from packaging.version import InvalidVersion, Version

from yatl.models.exceptions import InstallationError
from yatl.models.release import GameIdentifier, GameRelease
from yatl.utils.helpers import load_json_file, save_json_file

INFO_FILENAME: str = "install_info.json"

GAME_JAR_CANDIDATES = ("lib/Terasology.jar", "libs/Terasology.jar")
LIBRARY_DIRECTORIES = ("lib", "libs")
ENGINE_VERSION_ENTRY = "org/terasology/engine/version/versionInfo.properties"
ENGINE_VERSION_KEY = "engineVersion"


@dataclass(frozen=True)
class InstallInfo:
    """Metadata recorded when an installation is finalized."""
    id: GameIdentifier
    release_timestamp: str = ""
    download_url: str = ""
    install_date: str = ""
    metadata_version: str = "1.0"

    @classmethod
    def for_release(cls, release: GameRelease) -> 'InstallInfo':
        """Create the metadata for a freshly installed release."""
        return cls(
            id=release.id,
            release_timestamp=release.timestamp.isoformat(),
            download_url=release.download_url,
            install_date=datetime.now().isoformat(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InstallInfo':
        """Create an InstallInfo from a dictionary."""
        return cls(
            id=GameIdentifier.from_dict(data["id"]),
            release_timestamp=data.get("release_timestamp", ""),
            download_url=data.get("download_url", ""),
            install_date=data.get("install_date", ""),
            metadata_version=data.get("metadata_version", "1.0"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the InstallInfo to a dictionary for serialization."""
        return {
            "metadata_version": self.metadata_version,
            "id": self.id.to_dict(),
            "release_timestamp": self.release_timestamp,
            "download_url": self.download_url,
            "install_date": self.install_date,
        }

    def save(self, directory: Path) -> bool:
        """Write the metadata file into an installation directory."""
        return save_json_file(Path(directory) / INFO_FILENAME, self.to_dict())


class Installation:
    """A locally present copy of the game."""

    def __init__(self, install_directory: Path):
        self.install_directory = Path(install_directory)

    def __repr__(self) -> str:
        return f"Installation({str(self.install_directory)!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Installation):
            return NotImplemented
        return self.install_directory == other.install_directory

    def __hash__(self) -> int:
        return hash(self.install_directory)

    @property
    def info_file(self) -> Path:
        return self.install_directory / INFO_FILENAME

    def exists(self) -> bool:
        return self.install_directory.is_dir()

    def is_complete(self) -> bool:
        """Check whether the directory carries a completion marker."""
        return self.info_file.is_file()

    def read_info(self) -> InstallInfo:
        """
        Read the installation metadata.

        Raises:
            InstallationError: If the marker is missing or cannot be parsed
        """
        if not self.is_complete():
            raise InstallationError(f"Installation is not complete: {self.install_directory}")

        data = load_json_file(self.info_file)
        if not data:
            raise InstallationError(f"Could not read installation metadata: {self.info_file}")
        try:
            return InstallInfo.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise InstallationError(f"Invalid installation metadata in {self.info_file}: {e}")

    def game_jar_path(self) -> Path:
        """
        Locate the game jar inside the installation.

        Raises:
            InstallationError: If no game jar is present
        """
        for candidate in GAME_JAR_CANDIDATES:
            jar_path = self.install_directory / candidate
            if jar_path.is_file():
                return jar_path
        raise InstallationError(f"Could not find the game jar in {self.install_directory}")

    def engine_version_string(self) -> str:
        """
        Read the raw engine version from the engine library.

        Raises:
            InstallationError: If no engine jar exists or it carries no version
        """
        engine_jar = self._find_engine_jar()
        try:
            with zipfile.ZipFile(engine_jar, 'r') as jar:
                raw = jar.read(ENGINE_VERSION_ENTRY).decode('utf-8')
        except KeyError:
            raise InstallationError(f"No version information in {engine_jar}")
        except (OSError, zipfile.BadZipFile) as e:
            raise InstallationError(f"Could not read engine jar {engine_jar}: {e}")

        properties = _parse_properties(raw)
        version = properties.get(ENGINE_VERSION_KEY)
        if not version:
            raise InstallationError(f"'{ENGINE_VERSION_KEY}' missing from {engine_jar}")
        return version

    def engine_version(self) -> Version:
        """
        Read the engine version of this installation.

        Semantic version suffixes ("-SNAPSHOT", "+build.5") are dropped before
        parsing.

        Raises:
            InstallationError: If the version cannot be read or parsed
        """
        raw_version = self.engine_version_string()
        match = re.match(r"\d+(\.\d+)*", raw_version)
        try:
            if not match:
                raise InvalidVersion(raw_version)
            return Version(match.group(0))
        except InvalidVersion:
            raise InstallationError(f"Invalid engine version '{raw_version}' in {self.install_directory}")

    def _find_engine_jar(self) -> Path:
        for library_dir in LIBRARY_DIRECTORIES:
            directory = self.install_directory / library_dir
            if not directory.is_dir():
                continue
            for jar_path in sorted(directory.glob("engine*.jar")):
                return jar_path
        raise InstallationError(f"Could not find the engine jar in {self.install_directory}")


def _parse_properties(text: str) -> Dict[str, str]:
    """Parse the subset of Java properties syntax used by version files."""
    properties = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(('#', '!')):
            continue
        key, sep, value = line.partition('=')
        if not sep:
            key, sep, value = line.partition(':')
        if sep:
            properties[key.strip()] = value.strip()
    return properties
