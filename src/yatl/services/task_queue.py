"""
Task Queue for YATL

This module provides the single task lane: download and delete tasks run one
after the other, in submission order, on a background worker thread.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from yatl.services.events import EventManager, Events
from yatl.tasks.task import Task


class TaskQueue:
    """
    Task lane for YATL.

    This class handles:
    - Running tasks sequentially on a worker thread
    - Tracking the tasks that have not ended yet
    - Cancelling outstanding tasks on shutdown
    """

    def __init__(self, event_manager: Optional[EventManager] = None):
        """
        Initialize the task queue.

        Args:
            event_manager: Event manager for UI communication
        """
        self.logger = logging.getLogger("YATL")
        self.event_manager = event_manager
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="TaskLane")
        self._tasks: List[Task] = []
        self._lock = threading.Lock()
        self._is_shutting_down = False

    def submit(self, task: Task) -> Task:
        """
        Queue a task.

        Args:
            task: Pending task

        Returns:
            Task: The submitted task

        Raises:
            RuntimeError: If the queue was shut down
        """
        with self._lock:
            if self._is_shutting_down:
                raise RuntimeError("Task queue is shut down")
            self._tasks = [t for t in self._tasks if not t.is_done]
            self._tasks.append(task)

        self.executor.submit(self._run, task)
        self.logger.info(f"Queued {task.kind} of {task.target}")
        if self.event_manager:
            self.event_manager.emit(Events.TASK_SUBMITTED, task=task)
        return task

    def _run(self, task: Task):
        try:
            task.run()
        finally:
            with self._lock:
                if task in self._tasks and task.is_done:
                    self._tasks.remove(task)

    def active_tasks(self) -> List[Task]:
        """Get the tasks that are pending or running."""
        with self._lock:
            return [task for task in self._tasks if not task.is_done]

    def find_task(self, game_id) -> Optional[Task]:
        """Get the active task for a game identifier, if any."""
        for task in self.active_tasks():
            if task.target == game_id:
                return task
        return None

    def shutdown(self, timeout: float = 5.0):
        """
        Cancel all outstanding tasks and stop the lane.

        Args:
            timeout: Seconds to wait for the tasks to end
        """
        with self._lock:
            self._is_shutting_down = True
            tasks = list(self._tasks)

        if tasks:
            self.logger.info(f"Cancelling {len(tasks)} outstanding tasks")
        for task in tasks:
            task.cancel()

        deadline = time.monotonic() + timeout
        for task in tasks:
            if not task.wait(max(0.0, deadline - time.monotonic())):
                self.logger.warning(f"{task.kind.capitalize()} of {task.target} did not stop in time")

        self.executor.shutdown(wait=False, cancel_futures=True)
        self.logger.info("Task queue shutdown complete")
