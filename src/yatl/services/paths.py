"""
Path Management System for YATL

This module resolves the launcher directory and everything below it: settings,
the game installation root, the game data directory handed to the game, the
download cache and logs.

The launcher directory is ``~/yatl`` unless a base directory is given or the
``YATL_HOME`` environment variable points somewhere else.
"""

import logging
import os
import shutil
from typing import Dict, Optional
from pathlib import Path

HOME_ENV_VAR = "YATL_HOME"


class PathManager:
    """
    Path management system for YATL.

    Every managed directory is declared in ``LAYOUT`` relative to the launcher
    directory and exposed as an attribute of the same name.
    """

    LAYOUT: Dict[str, str] = {
        "config_dir": "config",
        "games_dir": "data/games",
        "game_data_dir": "data/gamedata",
        "downloads_dir": "cache/downloads",
        "temp_dir": "cache/temp",
        "logs_dir": "logs",
    }

    def __init__(self):
        self.logger = logging.getLogger("YATL")
        self.app_dir: Optional[Path] = None
        self.config_dir: Path
        self.games_dir: Path
        self.game_data_dir: Path
        self.downloads_dir: Path
        self.temp_dir: Path
        self.logs_dir: Path
        self._is_initialized = False

    @staticmethod
    def resolve_app_dir(app_name: str = "YATL", base_dir: Optional[Path] = None) -> Path:
        """
        Work out the launcher directory.

        Args:
            app_name: Application name, lowercased for the directory name
            base_dir: Directory holding the launcher directory

        Returns:
            Path: The launcher directory
        """
        if base_dir:
            return Path(base_dir) / app_name.lower()
        override = os.environ.get(HOME_ENV_VAR)
        if override:
            return Path(override).expanduser()
        return Path.home() / app_name.lower()

    def initialize(self, app_name: str = "YATL", base_dir: Optional[Path] = None) -> bool:
        """
        Resolve and create the directory structure.

        Args:
            app_name: Name of the application for directory naming
            base_dir: Directory to place the launcher directory in

        Returns:
            bool: True if initialization was successful
        """
        try:
            self.app_dir = self.resolve_app_dir(app_name, base_dir)
            self.logger.info(f"Initializing launcher directory {self.app_dir}")

            for attribute, relative in self.LAYOUT.items():
                directory = self.app_dir / relative
                directory.mkdir(parents=True, exist_ok=True)
                setattr(self, attribute, directory)

            self._is_initialized = True
            return True

        except OSError as e:
            self.logger.error(f"Failed to create launcher directory structure: {e}")
            return False

    def cleanup_temp_files(self):
        """Remove everything left in the temporary directory."""
        if not self._is_initialized or not self.temp_dir.exists():
            return

        removed = 0
        for entry in self.temp_dir.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError as e:
                self.logger.warning(f"Could not remove temporary entry {entry}: {e}")

        if removed:
            self.logger.info(f"Removed {removed} temporary entries")

    def shutdown(self):
        """Shutdown the path manager and clean up."""
        self.cleanup_temp_files()
        self.logger.debug("Path manager shutdown complete")


# Global path manager instance (will be initialized by the application)
paths: Optional[PathManager] = None


def get_paths() -> PathManager:
    """
    Get the global path manager instance.

    Raises:
        RuntimeError: If path manager hasn't been initialized
    """
    if paths is None:
        raise RuntimeError("Path manager not initialized")
    return paths


def initialize_paths(app_name: str = "YATL", base_dir: Optional[Path] = None) -> bool:
    """Initialize the global path manager instance."""
    global paths
    paths = PathManager()
    return paths.initialize(app_name, base_dir)


def shutdown_paths():
    """Shutdown the global path manager instance."""
    global paths
    if paths:
        paths.shutdown()
        paths = None
