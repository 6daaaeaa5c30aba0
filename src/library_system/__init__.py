"""The library system package."""

from .event_bus import EventBus  # noqa: F401
from .models import Book, Transaction, User  # noqa: F401
from .services.library import Library, create_library  # noqa: F401
from .settings import Settings, get_settings  # noqa: F401

__all__ = ["Book", "EventBus", "Library", "Settings", "Transaction", "User", "create_library", "get_settings"]
