"""Listeners that log domain events.

These are registered on the facade's event bus during ``Library.initialize``.
"""

from loguru import logger

from library_system.events.types import (
    BookAddedEvent,
    BookBorrowedEvent,
    BookReturnedEvent,
    SystemInitializedEvent,
    UserRegisteredEvent,
)


def log_system_initialized(event: SystemInitializedEvent) -> None:
    logger.info(f"Library system initialized: {event.library_name}")


def log_user_registered(event: UserRegisteredEvent) -> None:
    logger.info(f"New user registered: {event.name} ({event.type})")


def log_book_added(event: BookAddedEvent) -> None:
    logger.info(f"New book added: {event.title} by {event.author}")


def log_book_borrowed(event: BookBorrowedEvent) -> None:
    """Log a borrow with its due date."""
    logger.info(f"Book borrowed: {event.book_title} by {event.user_name}")
    logger.debug(f"   Due: {event.due_date.date().isoformat()}")


def log_book_returned(event: BookReturnedEvent) -> None:
    """Log a return, with a warning when a late fee was charged."""
    logger.info(f"Book returned: {event.book_title} by {event.user_name}")
    if event.late_fee > 0:
        logger.warning(f"   Late fee for {event.user_name}: ${event.late_fee:.2f}")

