"""Domain events of the library system.

This module provides the event payload types and the logging listeners
attached to the facade's event bus.
"""

from loguru import logger

from library_system.constants import (
    EVENT_BOOK_ADDED,
    EVENT_BOOK_BORROWED,
    EVENT_BOOK_RETURNED,
    EVENT_SYSTEM_INITIALIZED,
    EVENT_USER_REGISTERED,
)
from library_system.event_bus import EventBus
from library_system.events.handlers import (
    log_book_added,
    log_book_borrowed,
    log_book_returned,
    log_system_initialized,
    log_user_registered,
)
from library_system.events.types import (
    BookAddedEvent,
    BookBorrowedEvent,
    BookReturnedEvent,
    LibraryEvent,
    SystemInitializedEvent,
    UserRegisteredEvent,
)

__all__ = [
    "BookAddedEvent",
    "BookBorrowedEvent",
    "BookReturnedEvent",
    "LibraryEvent",
    "SystemInitializedEvent",
    "UserRegisteredEvent",
    "register_event_handlers",
]


def register_event_handlers(event_bus: EventBus) -> None:
    """Register the logging listeners on ``event_bus``."""
    logger.debug("Registering event handlers in event bus")

    event_bus.on(EVENT_SYSTEM_INITIALIZED, log_system_initialized)
    event_bus.on(EVENT_USER_REGISTERED, log_user_registered)
    event_bus.on(EVENT_BOOK_ADDED, log_book_added)
    event_bus.on(EVENT_BOOK_BORROWED, log_book_borrowed)
    event_bus.on(EVENT_BOOK_RETURNED, log_book_returned)

    logger.debug("Event handlers registered successfully")
