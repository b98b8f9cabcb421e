"""
Settings Management System for YATL

This module keeps the launcher's two JSON settings files, each layered over
packaged defaults from ``resources/config``:

- user settings hold what a player edits: heap sizes, extra parameters,
  launcher behaviour and the last played game;
- core settings hold launcher wiring: catalog sources and an install
  directory override.

Settings are read and written from the UI thread, the task lane and the run
supervisor, so every access goes through one lock.
"""

import json
import logging
import os
import re
import threading
from enum import Enum
from typing import Any, Dict, Optional
from pathlib import Path

from yatl.models.release import GameIdentifier
from yatl.utils.helpers import get_resource_base_path


class SettingsScope(Enum):
    """Which settings file a value lives in."""
    USER = "user"
    CORE = "core"

    @property
    def filename(self) -> str:
        return f"{self.value}_settings.json"

    @property
    def defaults_filename(self) -> str:
        return f"{self.value}_defaults.json"


# JVM memory sizes as accepted by -Xmx/-Xms, e.g. 512m or 4G
HEAP_SIZE_PATTERN = re.compile(r"^[1-9]\d*[kKmMgG]?$")
HEAP_SIZE_SETTINGS = ("max_heap_size", "min_heap_size")


class SettingsFile:
    """One settings file and the defaults it is layered over."""

    def __init__(self, path: Path, defaults: Dict[str, Any]):
        self.path = path
        self.defaults = defaults
        self.values: Dict[str, Any] = dict(defaults)

    def load(self, logger: logging.Logger):
        self.values = dict(self.defaults)
        if not self.path.exists():
            logger.info(f"No settings file at {self.path}, using defaults")
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Ignoring unreadable settings file {self.path}: {e}")
            return
        if not isinstance(stored, dict):
            logger.error(f"Ignoring settings file {self.path}: expected a JSON object")
            return
        self.values.update(stored)
        logger.info(f"Loaded settings from {self.path}")

    def save(self, content: str):
        # written next to the target and swapped in so a crash never leaves half a file
        partial = self.path.with_name(self.path.name + ".tmp")
        with open(partial, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(partial, self.path)


class SettingsManager:
    """
    Settings management system for YATL.

    Values are looked up in the loaded file first, then in its defaults.
    Before ``initialize`` only the packaged defaults are visible and stores
    are refused.
    """

    USER_SETTINGS_FILE = SettingsScope.USER.filename
    CORE_SETTINGS_FILE = SettingsScope.CORE.filename
    LAST_PLAYED_KEY = "last_played_game_version"

    def __init__(self):
        self.logger = logging.getLogger("YATL")
        self._files: Dict[SettingsScope, SettingsFile] = {}
        self._lock = threading.RLock()

    @property
    def is_loaded(self) -> bool:
        return bool(self._files)

    def _load_defaults(self, scope: SettingsScope) -> Dict[str, Any]:
        defaults_path = get_resource_base_path() / "config" / scope.defaults_filename
        try:
            with open(defaults_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"No usable {scope.value} defaults at {defaults_path}: {e}")
            return {}

    def initialize(self, settings_dir: Path) -> bool:
        """
        Load both settings files from a directory, creating it if needed.

        Args:
            settings_dir: Directory holding the settings files

        Returns:
            bool: True if initialization was successful
        """
        try:
            settings_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Cannot create settings directory {settings_dir}: {e}")
            return False

        files = {}
        for scope in SettingsScope:
            settings_file = SettingsFile(settings_dir / scope.filename, self._load_defaults(scope))
            settings_file.load(self.logger)
            files[scope] = settings_file

        with self._lock:
            self._files = files
        return True

    def read(self, setting_name: str, default: Any = None,
             scope: SettingsScope = SettingsScope.USER) -> Any:
        """
        Read a setting value.

        Args:
            setting_name: Name of the setting to read
            default: Returned when the setting is neither stored nor defaulted
            scope: Settings file to read from

        Returns:
            Any: Setting value or default
        """
        with self._lock:
            settings_file = self._files.get(scope)
            if settings_file is not None:
                return settings_file.values.get(setting_name, default)
        return self._load_defaults(scope).get(setting_name, default)

    def read_user(self, setting_name: str, default: Any = None) -> Any:
        return self.read(setting_name, default, SettingsScope.USER)

    def read_core(self, setting_name: str, default: Any = None) -> Any:
        return self.read(setting_name, default, SettingsScope.CORE)

    def store(self, setting_name: str, value: Any,
              scope: SettingsScope = SettingsScope.USER) -> bool:
        """
        Store a setting value in memory; ``save`` persists it.

        Heap sizes must look like ``512m`` or ``4g`` (or be empty to unset).

        Returns:
            bool: True if the value was stored
        """
        if setting_name in HEAP_SIZE_SETTINGS and value and not HEAP_SIZE_PATTERN.match(str(value)):
            self.logger.warning(f"Rejecting invalid heap size for '{setting_name}': {value!r}")
            return False

        with self._lock:
            settings_file = self._files.get(scope)
            if settings_file is None:
                self.logger.warning(f"Settings not loaded, cannot store '{setting_name}'")
                return False
            settings_file.values[setting_name] = value
        self.logger.debug(f"{scope.value.capitalize()} setting '{setting_name}' = {value}")
        return True

    def get_last_played_game(self) -> Optional[GameIdentifier]:
        """
        Get the identifier of the game that was started last.

        Returns:
            GameIdentifier: The last played game, or None if unset or unreadable
        """
        data = self.read(self.LAST_PLAYED_KEY)
        if not data:
            return None
        try:
            return GameIdentifier.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Ignoring invalid last played game setting {data!r}: {e}")
            return None

    def set_last_played_game(self, game_id: Optional[GameIdentifier]) -> bool:
        """Store (or clear, with None) the last played game."""
        return self.store(self.LAST_PLAYED_KEY, game_id.to_dict() if game_id else None)

    def _save_scope(self, scope: SettingsScope) -> bool:
        with self._lock:
            settings_file = self._files.get(scope)
            if settings_file is None:
                return False
            content = json.dumps(settings_file.values, indent=2)
        try:
            settings_file.save(content)
        except OSError as e:
            self.logger.error(f"Failed to save settings to {settings_file.path}: {e}")
            return False
        self.logger.debug(f"Settings saved to {settings_file.path}")
        return True

    def save_user(self) -> bool:
        return self._save_scope(SettingsScope.USER)

    def save(self) -> bool:
        """Save every loaded settings file. True if all of them were written."""
        results = [self._save_scope(scope) for scope in SettingsScope]
        return all(results)

    def shutdown(self):
        if self.is_loaded:
            self.save()
        self.logger.debug("Settings manager shutdown complete")


# Global settings instance (will be initialized by the application)
settings: Optional[SettingsManager] = None


def get_settings() -> SettingsManager:
    """
    Get the global settings instance.

    Raises:
        RuntimeError: If settings haven't been initialized
    """
    if settings is None:
        raise RuntimeError("Settings manager not initialized")
    return settings


def initialize_settings(settings_dir: Path) -> bool:
    """
    Initialize the global settings instance.

    Args:
        settings_dir: Directory where settings should be stored

    Returns:
        bool: True if initialization was successful
    """
    global settings
    settings = SettingsManager()
    return settings.initialize(settings_dir)


def shutdown_settings():
    """Shutdown the global settings instance."""
    global settings
    if settings:
        settings.shutdown()
        settings = None
