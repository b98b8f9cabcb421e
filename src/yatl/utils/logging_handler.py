"""
Event Manager Logging Handler for YATL

This module bridges the ``"YATL"`` logger and the event manager: every record
is re-published as ``Events.STATUS_MESSAGE`` so a front end can show the
launcher log without owning a logging handler itself.
"""

import logging
import threading
from typing import Optional

from yatl.services.events import EventManager, Events


class EventManagerHandler(logging.Handler):
    """
    Logging handler that forwards records to the event manager.

    The event manager logs receivers that fail. Records produced while this
    handler is already emitting on the same thread are dropped so such a
    failure cannot feed back into the handler.
    """

    def __init__(self, event_manager: Optional[EventManager] = None, level: int = logging.NOTSET):
        super().__init__(level)
        self.event_manager = event_manager
        self._local = threading.local()
        self.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))

    def emit(self, record: logging.LogRecord) -> None:
        event_manager = self.event_manager
        if event_manager is None or getattr(self._local, "emitting", False):
            return
        if not event_manager.has_subscribers(Events.STATUS_MESSAGE):
            return

        self._local.emitting = True
        try:
            event_manager.emit(Events.STATUS_MESSAGE,
                               message=self.format(record),
                               message_type=record.levelname.lower())
        except Exception:
            self.handleError(record)
        finally:
            self._local.emitting = False

    def close(self) -> None:
        self.event_manager = None
        super().close()


def add_event_manager_handler_to_logger(
    logger: logging.Logger,
    event_manager: Optional[EventManager] = None,
    level: int = logging.INFO,
    formatter: Optional[logging.Formatter] = None
) -> EventManagerHandler:
    """
    Add an EventManagerHandler to an existing logger.

    Args:
        logger: Logger to add the handler to
        event_manager: Event manager instance to use
        level: Minimum log level to handle
        formatter: Custom formatter to use (optional)

    Returns:
        EventManagerHandler: The handler that was added to the logger
    """
    handler = EventManagerHandler(event_manager, level)
    if formatter:
        handler.setFormatter(formatter)
    logger.addHandler(handler)
    return handler
