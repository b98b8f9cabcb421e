"""
Exceptions for YATL

This module contains the error taxonomy shared by the release catalog, the
installation manager, the task engine and the run supervisor.
"""

from pathlib import Path
from typing import List, Optional


class LauncherError(Exception):
    """Base exception raised for launcher-related errors."""
    pass


class SourceUnavailable(LauncherError):
    """Exception raised when a catalog source cannot be queried."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Catalog source '{source}' unavailable: {message}")
        self.source = source


class NotFoundError(LauncherError):
    """Exception raised when no installation can be resolved for an identifier."""
    pass


class ConflictError(LauncherError):
    """Exception raised when an operation collides with one already in progress."""
    pass


class TransferError(LauncherError):
    """Exception raised for network or IO failures while downloading."""
    pass


class ExtractionError(LauncherError):
    """Exception raised for malformed archives or extraction IO failures."""
    pass


class ProcessSpawnError(LauncherError):
    """Exception raised when the game process fails to start."""
    pass


class GameExitError(LauncherError):
    """Exception raised when the game process exits with a non-zero code."""

    def __init__(self, exit_code: int):
        super().__init__(f"Game exited with code {exit_code}")
        self.exit_code = exit_code


class InstallationError(LauncherError):
    """Exception raised when an installation directory cannot be inspected."""
    pass


class DeletionError(LauncherError):
    """Exception raised when an installation could not be fully removed."""

    def __init__(self, message: str, failed_paths: Optional[List[Path]] = None):
        super().__init__(message)
        self.failed_paths: List[Path] = list(failed_paths or [])


class TaskCancelled(LauncherError):
    """Raised inside a running task when cancellation has been requested."""
    pass
