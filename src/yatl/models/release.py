"""
Release Data Models for YATL

This module contains the value types describing which game is meant
(GameIdentifier) and what can be downloaded for it (GameRelease).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class Profile(Enum):
    """Game profile enumeration."""
    OMEGA = "omega"
    ENGINE = "engine"

    @classmethod
    def parse(cls, value: str) -> 'Profile':
        """Parse a profile from its name or value, ignoring case."""
        return _parse_enum(cls, value)


class Build(Enum):
    """Build channel enumeration."""
    STABLE = "stable"
    NIGHTLY = "nightly"

    @classmethod
    def parse(cls, value: str) -> 'Build':
        """Parse a build channel from its name or value, ignoring case."""
        return _parse_enum(cls, value)


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    normalized = str(value).strip().lower()
    for member in enum_cls:
        if member.value == normalized:
            return member
    raise ValueError(f"Unknown {enum_cls.__name__.lower()}: {value!r}")


@dataclass(frozen=True)
class GameIdentifier:
    """
    Identifies one distinct game version.

    Used as the key for everything that asks "which game": the catalog,
    the installed-set, install directories and task admission.
    """
    profile: Profile
    build: Build
    version: str

    def __post_init__(self):
        if not isinstance(self.profile, Profile):
            object.__setattr__(self, "profile", Profile.parse(self.profile))
        if not isinstance(self.build, Build):
            object.__setattr__(self, "build", Build.parse(self.build))
        if not self.version or not str(self.version).strip():
            raise ValueError("Game version cannot be empty")

    def __str__(self) -> str:
        return f"{self.profile.value}/{self.build.value}/{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert the identifier to a dictionary for serialization."""
        return {
            "profile": self.profile.value,
            "build": self.build.value,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameIdentifier':
        """Create a GameIdentifier from a dictionary."""
        return cls(
            profile=Profile.parse(data["profile"]),
            build=Build.parse(data["build"]),
            version=str(data["version"]),
        )


@dataclass(frozen=True)
class GameRelease:
    """A downloadable release of one game version."""
    id: GameIdentifier
    timestamp: datetime
    download_url: str
    changelog: str = ""

    def __post_init__(self):
        # naive timestamps are taken as UTC so releases from any source compare
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))

    def __str__(self) -> str:
        return f"{self.id} ({self.timestamp.isoformat()})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert the release to a dictionary for serialization."""
        data = self.id.to_dict()
        data.update({
            "timestamp": self.timestamp.isoformat(),
            "url": self.download_url,
            "changelog": self.changelog,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameRelease':
        """
        Create a GameRelease from a catalog record.

        Args:
            data: Record with profile, build, version, timestamp, url and
                an optional changelog

        Raises:
            KeyError, ValueError: If the record is incomplete or malformed
        """
        timestamp = data["timestamp"]
        if not isinstance(timestamp, datetime):
            timestamp = datetime.fromisoformat(str(timestamp))

        return cls(
            id=GameIdentifier.from_dict(data),
            timestamp=timestamp,
            download_url=data["url"],
            changelog=data.get("changelog") or "",
        )
