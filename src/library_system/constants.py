"""Global constants for the library system.

This module defines constants used throughout the application to avoid
hardcoded strings and make the codebase more maintainable.
"""

# Domain event names published by the Library facade
EVENT_SYSTEM_INITIALIZED = "system.initialized"
EVENT_USER_REGISTERED = "user.registered"
EVENT_BOOK_ADDED = "book.added"
EVENT_BOOK_BORROWED = "book.borrowed"
EVENT_BOOK_RETURNED = "book.returned"

# Emitted by the event bus when a listener raises
EVENT_ERROR = "error"

DEFAULT_MAX_LISTENERS = 100
DEFAULT_CONNECTION_STRING = "library_management_db"
DEFAULT_LIBRARY_NAME = "Central Library"

# Late fee charged per started day past the due date
FINE_PER_DAY = 0.5
