"""
Tests for the task queue.
"""

import threading
import pytest
from unittest.mock import Mock

from yatl.models.release import Build, GameIdentifier, Profile
from yatl.services.events import Events
from yatl.services.task_queue import TaskQueue
from yatl.tasks.task import Task, TaskState


class BlockingTask(Task):
    """Task that runs until released or cancelled."""

    kind = "blocking"

    def __init__(self, target, lease=None, log=None):
        super().__init__(target, lease)
        self.started = threading.Event()
        self.release = threading.Event()
        self.log = log if log is not None else []

    def _execute(self):
        self.log.append(("start", self.target.version))
        self.started.set()
        while not self.release.wait(0.01):
            self.check_cancelled()
        self.log.append(("end", self.target.version))


def identifier(version):
    return GameIdentifier(Profile.OMEGA, Build.STABLE, version)


@pytest.fixture
def queue(mock_event_manager):
    task_queue = TaskQueue(mock_event_manager)
    yield task_queue
    task_queue.shutdown(timeout=1.0)


class TestTaskQueue:
    """Tests for the single task lane."""

    def test_runs_tasks_in_order_one_at_a_time(self, queue):
        log = []
        first = BlockingTask(identifier("1"), log=log)
        second = BlockingTask(identifier("2"), log=log)
        queue.submit(first)
        queue.submit(second)

        assert first.started.wait(5)
        assert not second.started.wait(0.1)
        first.release.set()
        second.release.set()
        assert second.wait(5)

        assert log == [("start", "1"), ("end", "1"), ("start", "2"), ("end", "2")]

    def test_active_tasks(self, queue):
        task = BlockingTask(identifier("1"))
        queue.submit(task)
        assert task.started.wait(5)

        assert queue.active_tasks() == [task]
        assert queue.find_task(identifier("1")) is task

        task.release.set()
        assert task.wait(5)
        assert queue.find_task(identifier("1")) is None

    def test_submit_emits_event(self, queue, mock_event_manager):
        task = BlockingTask(identifier("1"))
        task.release.set()

        queue.submit(task)

        mock_event_manager.emit.assert_any_call(Events.TASK_SUBMITTED, task=task)

    def test_shutdown_cancels_outstanding_tasks(self, mock_event_manager):
        queue = TaskQueue(mock_event_manager)
        running_lease, pending_lease = Mock(), Mock()
        running = BlockingTask(identifier("1"), lease=running_lease)
        pending = BlockingTask(identifier("2"), lease=pending_lease)
        queue.submit(running)
        queue.submit(pending)
        assert running.started.wait(5)

        queue.shutdown(timeout=5.0)

        assert running.state == TaskState.CANCELLED
        assert pending.state == TaskState.CANCELLED
        assert not pending.started.is_set()
        running_lease.release.assert_called_once()
        pending_lease.release.assert_called_once()

    def test_submit_after_shutdown(self, mock_event_manager):
        queue = TaskQueue(mock_event_manager)
        queue.shutdown()

        with pytest.raises(RuntimeError):
            queue.submit(BlockingTask(identifier("1")))
