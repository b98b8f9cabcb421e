"""
Event Management System for YATL

This module provides the publish/subscribe channel components use to report
state changes: installed-set deltas, task progress, run supervisor signals and
log messages. It is built on Blinker signals, one per event name, with weak
receiver references by default.

Events are delivered synchronously on the thread that emits them. Receivers
that touch UI state must hand the call over to their own thread.
"""

import logging
from typing import Optional, Callable

from blinker import Namespace


class EventManager:
    """
    Central event hub for YATL.

    Every receiver is called as ``callback(sender, **kwargs)`` with the event
    manager as sender. A receiver that raises is logged and skipped; the
    remaining receivers still get the event and the emitter never sees the
    error.
    """

    def __init__(self):
        self.logger = logging.getLogger("YATL")
        self._namespace = Namespace()

    def subscribe(self, event_name: str, callback: Callable, weak: bool = True) -> bool:
        """
        Subscribe to an event.

        Args:
            event_name: Name of the event to subscribe to
            callback: Function to call when the event is emitted
            weak: Hold the callback through a weak reference. Pass False for
                lambdas and other callables nothing else keeps alive.

        Returns:
            bool: True if subscription was successful
        """
        try:
            self._namespace.signal(event_name).connect(callback, weak=weak)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Failed to subscribe to event '{event_name}': {e}")
            return False
        self.logger.debug(f"Subscribed to event '{event_name}': {callback}")
        return True

    def unsubscribe(self, event_name: str, callback: Callable) -> bool:
        """
        Unsubscribe from an event.

        Returns:
            bool: True if the callback was subscribed
        """
        signal = self._namespace.signal(event_name)
        was_connected = any(receiver == callback for receiver in signal.receivers_for(self))
        signal.disconnect(callback)
        return was_connected

    def emit(self, event_name: str, **kwargs) -> int:
        """
        Emit an event to all subscribers.

        Args:
            event_name: Name of the event to emit
            **kwargs: Keyword arguments to pass to callbacks

        Returns:
            int: Number of callbacks that returned without raising
        """
        signal = self._namespace.get(event_name)
        if signal is None or not signal.receivers:
            return 0

        delivered = 0
        for receiver in list(signal.receivers_for(self)):
            try:
                receiver(self, **kwargs)
                delivered += 1
            except Exception as e:
                self.logger.error(f"Receiver {receiver} failed on event '{event_name}': {e}")
        return delivered

    def has_subscribers(self, event_name: str) -> bool:
        signal = self._namespace.get(event_name)
        return signal is not None and bool(signal.receivers)

    def shutdown(self):
        """Disconnect every receiver."""
        self._namespace.clear()
        self.logger.debug("Event manager shutdown complete")


class Events:
    """Event names emitted by YATL components."""

    # Application
    APP_INITIALIZED = "app_initialized"
    APP_SHUTDOWN = "app_shutdown"
    APP_EXIT_REQUESTED = "app_exit_requested"  # close_after_start honoured

    # Release catalog
    RELEASE_FETCH_STARTED = "release_fetch_started"
    RELEASE_FETCH_COMPLETED = "release_fetch_completed"
    SOURCE_UNAVAILABLE = "source_unavailable"

    # Installed-set deltas: added, removed, installed
    INSTALLED_GAMES_CHANGED = "installed_games_changed"

    # Task lane
    TASK_SUBMITTED = "task_submitted"
    TASK_STARTED = "task_started"
    TASK_PROGRESS = "task_progress"
    TASK_FINISHED = "task_finished"

    # Run supervisor
    GAME_STARTED = "game_started"
    GAME_FINISHED = "game_finished"
    GAME_FAILED = "game_failed"

    # Status
    STATUS_MESSAGE = "status_message"
    WARNING_RAISED = "warning_raised"


# Global event manager instance (will be initialized by the application)
event_manager: Optional[EventManager] = None


def get_event_manager() -> EventManager:
    """
    Get the global event manager instance.

    Raises:
        RuntimeError: If event manager hasn't been initialized
    """
    if event_manager is None:
        raise RuntimeError("Event manager not initialized")
    return event_manager


def initialize_event_manager() -> bool:
    """Initialize the global event manager instance."""
    global event_manager
    event_manager = EventManager()
    return True


def shutdown_event_manager():
    """Shutdown the global event manager instance."""
    global event_manager
    if event_manager:
        event_manager.shutdown()
        event_manager = None
