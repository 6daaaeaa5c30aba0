"""Core Event Bus Components.

This module contains the fundamental abstractions shared by the event bus
implementation and its callers.

## Key Components

- **Listener**: Type of a subscriber callback
- **EventBusError**: Base exception for all event bus related errors
- **HandlerRegistrationError**: Raised when an event name or callback is invalid

Listener failures are never raised from ``EventBus.emit``; they are logged
and re-published on the ``"error"`` event instead.
"""

from collections.abc import Callable
from typing import Any

Listener = Callable[..., Any]


class EventBusError(Exception):
    """Base exception for all event bus related errors.

    Use this for catching any event bus related error:
        ```python
        try:
            bus.on("", handler)
        except EventBusError as e:
            logger.error(f"Event bus error: {e}")
        ```
    """


class HandlerRegistrationError(EventBusError):
    """Raised when handler registration fails.

    This occurs when:
    - The event name is not a non-empty string
    - The listener is not callable
    """


def validate_event_name(event_name: Any) -> None:
    """Ensure ``event_name`` is a non-empty string.

    Raises:
        HandlerRegistrationError: If the name is invalid
    """
    if not isinstance(event_name, str) or not event_name:
        raise HandlerRegistrationError(f"Event name must be a non-empty string, got: {event_name!r}")


def validate_listener(listener: Any) -> None:
    """Ensure ``listener`` is callable.

    Raises:
        HandlerRegistrationError: If the listener is not callable
    """
    if not callable(listener):
        raise HandlerRegistrationError(f"Listener must be callable: {listener!r}")
