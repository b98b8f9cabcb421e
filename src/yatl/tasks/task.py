"""
Task Engine for YATL

This module provides the Task base class shared by the download and delete
operations. A task is created for one game identifier, runs once on the task
lane and ends in exactly one terminal state.
"""

from __future__ import annotations

import logging
import threading
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Optional

from yatl.models.exceptions import LauncherError, TaskCancelled
from yatl.models.release import GameIdentifier
from yatl.services.events import EventManager, Events

if TYPE_CHECKING:
    from yatl.models.game_manager import Lease


class TaskState(Enum):
    """Task state enumeration."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED)


class Task:
    """
    A long-running operation on one game identifier.

    This class handles:
    - The PENDING -> RUNNING -> terminal state machine
    - Monotonic progress reporting
    - Cooperative cancellation
    - Releasing the identifier lease exactly once
    """

    kind = "task"

    def __init__(self, target: GameIdentifier, lease: Optional[Lease] = None,
                 event_manager: Optional[EventManager] = None):
        """
        Initialize the task.

        Args:
            target: Identifier the task operates on
            lease: Lease held for the identifier, released when the task ends
            event_manager: Event manager for progress and state events
        """
        self.logger = logging.getLogger("YATL")
        self.task_id = str(uuid.uuid4())
        self.target = target
        self.event_manager = event_manager

        self.state = TaskState.PENDING
        self.progress: Optional[float] = None
        self.message = ""
        self.error: Optional[Exception] = None

        self._lease = lease
        self._lock = threading.Lock()
        self._cancel_requested = threading.Event()
        self._done = threading.Event()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target}, {self.state.value})"

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def cancel(self) -> bool:
        """
        Request cancellation.

        A pending task is cancelled right away; a running task stops at its next
        cancellation check.

        Returns:
            bool: False if the task had already ended
        """
        with self._lock:
            if self.state.is_terminal:
                return False
            self._cancel_requested.set()
            pending = self.state == TaskState.PENDING
            if pending:
                self.state = TaskState.CANCELLED

        self.logger.info(f"Cancellation requested for {self.kind} of {self.target}")
        if pending:
            self._complete(TaskState.CANCELLED, None)
        return True

    def check_cancelled(self):
        """
        Raise TaskCancelled if cancellation was requested.

        Raises:
            TaskCancelled: If the task should stop
        """
        if self._cancel_requested.is_set():
            raise TaskCancelled(f"{self.kind} of {self.target} cancelled")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the task reached a terminal state.

        Returns:
            bool: True if the task is done
        """
        return self._done.wait(timeout)

    def run(self):
        """Execute the task. Called once, from the task lane."""
        with self._lock:
            if self.state != TaskState.PENDING:
                return
            self.state = TaskState.RUNNING

        self.logger.info(f"Starting {self.kind} of {self.target}")
        if self.event_manager:
            self.event_manager.emit(Events.TASK_STARTED, task=self)

        try:
            self.check_cancelled()
            self._execute()
        except TaskCancelled:
            self.logger.info(f"{self.kind.capitalize()} of {self.target} cancelled")
            self._cleanup()
            self._finish(TaskState.CANCELLED)
        except LauncherError as e:
            self.logger.error(f"{self.kind.capitalize()} of {self.target} failed: {e}")
            self._cleanup()
            self._finish(TaskState.FAILED, e)
        except Exception as e:
            self.logger.exception(f"Unexpected error during {self.kind} of {self.target}")
            self._cleanup()
            self._finish(TaskState.FAILED, e)
        else:
            self.logger.info(f"{self.kind.capitalize()} of {self.target} succeeded")
            self._finish(TaskState.SUCCEEDED)

    def _execute(self):
        """Do the work. Raises on failure or cancellation."""
        raise NotImplementedError

    def _cleanup(self):
        """Undo partial work after a failure or a cancellation."""
        pass

    def _set_progress(self, progress: Optional[float], message: str = ""):
        """
        Update the progress.

        Once a fraction was reported, lower values and None are ignored.
        """
        with self._lock:
            if progress is None:
                if self.progress is not None:
                    progress = self.progress
            else:
                progress = max(0.0, min(1.0, progress))
                if self.progress is not None and progress < self.progress:
                    progress = self.progress
            changed = progress != self.progress or (message and message != self.message)
            self.progress = progress
            if message:
                self.message = message

        if changed and self.event_manager:
            self.event_manager.emit(Events.TASK_PROGRESS,
                                    task=self,
                                    progress=progress,
                                    message=self.message)

    def _finish(self, state: TaskState, error: Optional[Exception] = None):
        with self._lock:
            if self.state.is_terminal:
                return
            self.state = state
            self.error = error
            if state == TaskState.SUCCEEDED:
                self.progress = 1.0
        self._complete(state, error)

    def _complete(self, state: TaskState, error: Optional[Exception]):
        if self._lease is not None:
            self._lease.release()

        if self.event_manager:
            self.event_manager.emit(Events.TASK_FINISHED,
                                    task=self,
                                    state=state,
                                    error=error)
        self._done.set()
