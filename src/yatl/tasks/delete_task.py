"""
Delete Task for YATL

This module provides the DeleteTask which removes an installation directory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from yatl.models.exceptions import ConflictError, DeletionError
from yatl.models.release import GameIdentifier
from yatl.services.events import EventManager
from yatl.tasks.task import Task

if TYPE_CHECKING:
    from yatl.models.game_manager import GameManager, Lease
    from yatl.services.game_service import GameService


class DeleteTask(Task):
    """
    Remove one installation.

    Entries that cannot be removed are collected and reported together. Running
    the task again removes whatever is left.
    """

    kind = "delete"

    def __init__(self, manager: GameManager, game_id: GameIdentifier, lease: Optional[Lease],
                 game_service: Optional[GameService] = None,
                 event_manager: Optional[EventManager] = None):
        super().__init__(game_id, lease, event_manager)
        self.manager = manager
        self.game_service = game_service
        self._total = 0
        self._removed = 0

    def _execute(self):
        directory = self.manager.get_install_directory(self.target)

        if self.game_service is not None and self.game_service.is_running_installation(directory):
            raise ConflictError(f"{self.target} is running and cannot be deleted")

        if directory.exists() or directory.is_symlink():
            self._total = sum(1 for path in directory.rglob("*") if not path.is_dir())
            self._set_progress(0.0 if self._total else None, f"Deleting {self.target}...")

            failed = self.manager.file_ops.remove_directory(directory, check_cancelled=self._on_entry)
            if failed:
                raise DeletionError(f"Could not remove {len(failed)} entries of {self.target}",
                                    failed_paths=failed)
        else:
            self.logger.info(f"Nothing to delete for {self.target}, {directory} does not exist")

        self.manager._mark_removed(self.target)

    def _on_entry(self):
        self.check_cancelled()
        if self._total:
            self._set_progress(self._removed / self._total)
            self._removed += 1
